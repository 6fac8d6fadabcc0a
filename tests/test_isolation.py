from types import SimpleNamespace

import pytest

from isolation import (
    CLONE_NEWNET,
    CLONE_NEWPID,
    Cgroup,
    Taskset,
    decorate,
    decorators_from_config,
    new_namespace,
)


def test_pid_namespace_wraps_command():
    unshare = new_namespace(CLONE_NEWPID)
    assert unshare.decorate("memcached -p 1") == "unshare --fork --pid --mount-proc memcached -p 1"


def test_namespace_flags_combine_in_fixed_order():
    unshare = new_namespace(CLONE_NEWNET | CLONE_NEWPID)
    assert unshare.decorate("cmd") == "unshare --fork --pid --mount-proc --net cmd"


def test_namespace_rejects_invalid_flags():
    with pytest.raises(ValueError):
        new_namespace(0)
    with pytest.raises(ValueError):
        new_namespace(0x1)


def test_decorate_applies_in_caller_order():
    taskset = Taskset("0-3")
    cgroup = Cgroup(["cpu", "memory"], "/bench")

    assert decorate("cmd", [taskset, cgroup]) == "cgexec -g cpu,memory:/bench taskset -c 0-3 cmd"
    assert decorate("cmd", [cgroup, taskset]) == "taskset -c 0-3 cgexec -g cpu,memory:/bench cmd"
    assert decorate("cmd") == "cmd"


def test_cgroup_from_spec():
    cgroup = Cgroup.from_spec("cpuset:/memcached")
    assert cgroup.controllers == ["cpuset"]
    assert cgroup.path == "/memcached"

    with pytest.raises(ValueError):
        Cgroup.from_spec("no-separator")


def test_decorators_from_config():
    cfg = SimpleNamespace(pid_namespace=True, cpuset="1,3", cgroups=["cpu:/hp"])

    decorators = decorators_from_config(cfg)

    assert decorate("cmd", decorators) == "cgexec -g cpu:/hp taskset -c 1,3 unshare --fork --pid --mount-proc cmd"


def test_decorators_from_empty_config():
    cfg = SimpleNamespace(pid_namespace=False, cpuset=None, cgroups=[])
    assert decorators_from_config(cfg) == []
