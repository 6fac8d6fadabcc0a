"""Configuration schema and YAML profiles for the memcached harness."""
