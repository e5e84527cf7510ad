import threading

import pytest

from clusterkit.modules.errors import CancelledError, EngineUnavailableError
from clusterkit.modules.machine import DockerMachine
from clusterkit.modules.models import Cluster

from conftest import Fixture


def test_ensure_min_cpu_raises_allocation(f):
    settings = {"cpu": 2}
    assert f.machine.ensure_min_cpu(settings, 4)
    assert settings["cpu"] == 4


def test_ensure_min_cpu_never_lowers(f):
    settings = {"cpu": 4}
    assert not f.machine.ensure_min_cpu(settings, 2)
    assert settings["cpu"] == 4


def test_ensure_min_cpu_zero_is_noop(f):
    settings = {}
    assert not f.machine.ensure_min_cpu(settings, 0)
    assert settings == {}


def test_ensure_k8s_enabled(f):
    settings = {"k8sEnabled": False}
    assert f.machine.ensure_k8s_enabled(settings)
    assert settings["k8sEnabled"] is True
    assert not f.machine.ensure_k8s_enabled(settings)


def test_start_already_running(f):
    f.engine.started = True
    f.machine.start()
    assert not f.desktop.launched


def test_start_launches_desktop(f):
    f.machine.start()
    assert f.desktop.launched
    assert f.machine.engine_running()


def test_start_linux_engine_down(linux_fixture):
    with pytest.raises(EngineUnavailableError):
        linux_fixture.machine.start()
    assert not linux_fixture.desktop.launched


def test_reconcile_kind_leaves_k8s_toggle_alone(f):
    f.machine.start()
    assert not f.machine.reconcile(Cluster(product="kind"))
    assert f.desktop.write_count == 0
    assert "k8sEnabled" not in f.desktop.settings


def test_reconcile_writes_once(f):
    f.machine.start()
    desired = Cluster(product="docker-desktop", min_cpus=2)

    assert f.machine.reconcile(desired)
    assert not f.machine.reconcile(desired)
    assert f.machine.settings_write_count == 1
    assert f.sleeps[0] == f.config.engine.settings_settle_delay


def test_reconcile_linux_insufficient_cpus(linux_fixture):
    f = linux_fixture
    f.engine.started = True
    f.engine.ncpu = 2

    with pytest.raises(ValueError):
        f.machine.reconcile(Cluster(product="kind", min_cpus=4))
    assert f.desktop.write_count == 0


def test_reconcile_linux_enough_cpus(linux_fixture):
    f = linux_fixture
    f.engine.started = True
    f.engine.ncpu = 8
    assert not f.machine.reconcile(Cluster(product="kind", min_cpus=4))


def test_disable_k8s(f):
    f.machine.start()
    f.desktop.settings["k8sEnabled"] = True

    assert f.machine.disable_k8s()
    assert f.desktop.settings["k8sEnabled"] is False
    assert not f.machine.disable_k8s()
    assert f.machine.settings_write_count == 1


def test_restart_timeout(f):
    f.machine.start()
    f.engine.started = False
    with pytest.raises(EngineUnavailableError):
        f.machine.wait_for_restart()


def test_cancelled_wait():
    f = Fixture()
    cancel = threading.Event()
    cancel.set()
    f.desktop.launch_starts_engine = False
    machine = DockerMachine(
        f.engine, f.desktop, os_name="darwin", sleep=f.sleeps.append,
        err_out=f.err_out, cancel=cancel, config=f.config)

    with pytest.raises(CancelledError):
        machine.start()
    assert f.sleeps == []
