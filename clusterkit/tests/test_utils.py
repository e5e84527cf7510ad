import threading

import pytest
import yaml

from clusterkit.modules.errors import CancelledError
from clusterkit.modules.selector import FieldSelector
from clusterkit.utils import RetryError, wait_until
from clusterkit.utils.kube import ClientCache, Kubeconfig, KubeconfigStore

from conftest import FakeClusterClient


def test_wait_until_succeeds_after_retries():
    sleeps = []
    calls = iter([None, False, "ready"])

    result = wait_until(lambda: next(calls), attempts=5, interval=0.5, sleep=sleeps.append)

    assert result == "ready"
    assert sleeps == [0.5, 0.5]


def test_wait_until_exhausts_attempts():
    sleeps = []

    def boom():
        raise RuntimeError("connection refused")

    with pytest.raises(RetryError) as exc:
        wait_until(boom, attempts=3, interval=1, sleep=sleeps.append, description="engine")

    assert "engine" in str(exc.value)
    assert isinstance(exc.value.__cause__, RuntimeError)
    assert len(sleeps) == 2


def test_wait_until_cancelled_mid_wait():
    cancel = threading.Event()
    calls = []

    def check():
        calls.append(1)
        if len(calls) == 2:
            cancel.set()
        return False

    with pytest.raises(CancelledError):
        wait_until(check, attempts=10, interval=0, sleep=lambda s: None, cancel=cancel)
    assert len(calls) == 2


def _kubeconfig(server="https://127.0.0.1:6443"):
    return Kubeconfig(
        current_context="kind-kind",
        contexts={"kind-kind": {"cluster": "kind-kind", "user": "kind-kind"}},
        clusters={"kind-kind": {"server": server}},
    )


def test_client_cache_reuses_client():
    loads = []

    def loader(kubeconfig, name):
        loads.append(name)
        return FakeClusterClient()

    cache = ClientCache(loader)
    first = cache.get(_kubeconfig(), "kind-kind")
    second = cache.get(_kubeconfig(), "kind-kind")

    assert first is second
    assert loads == ["kind-kind"]


def test_client_cache_new_server_new_client():
    cache = ClientCache(lambda kubeconfig, name: FakeClusterClient())
    first = cache.get(_kubeconfig(), "kind-kind")
    second = cache.get(_kubeconfig("https://127.0.0.1:7443"), "kind-kind")
    assert first is not second


def test_client_cache_evict():
    cache = ClientCache(lambda kubeconfig, name: FakeClusterClient())
    first = cache.get(_kubeconfig(), "kind-kind")
    cache.evict("kind-kind")
    assert len(cache) == 0
    assert cache.get(_kubeconfig(), "kind-kind") is not first


def test_client_cache_unknown_context():
    cache = ClientCache(lambda kubeconfig, name: FakeClusterClient())
    with pytest.raises(KeyError):
        cache.get(_kubeconfig(), "minikube")


def _write_kubeconfig(path, contexts, current=''):
    path.write_text(yaml.safe_dump({
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": current,
        "contexts": [{"name": n, "context": {"cluster": n, "user": n}} for n in contexts],
        "clusters": [{"name": n, "cluster": {"server": f"https://{n}:6443"}} for n in contexts],
        "users": [{"name": n, "user": {}} for n in contexts],
    }))


def test_kubeconfig_store_merges_files(tmp_path):
    first = tmp_path / "a.yaml"
    second = tmp_path / "b.yaml"
    _write_kubeconfig(first, ["kind-kind"], current="kind-kind")
    _write_kubeconfig(second, ["kind-kind", "minikube"], current="minikube")

    kubeconfig = KubeconfigStore([first, second]).load()

    assert sorted(kubeconfig.contexts) == ["kind-kind", "minikube"]
    assert kubeconfig.current_context == "kind-kind"
    assert kubeconfig.sources["kind-kind"] == first
    assert kubeconfig.server("minikube") == "https://minikube:6443"


def test_kubeconfig_store_missing_file(tmp_path):
    kubeconfig = KubeconfigStore([tmp_path / "nope.yaml"]).load()
    assert kubeconfig.contexts == {}


def test_kubeconfig_store_remove_context(tmp_path):
    path = tmp_path / "config"
    _write_kubeconfig(path, ["kind-kind", "minikube"], current="minikube")
    store = KubeconfigStore([path])

    assert store.remove_context("minikube")
    assert not store.remove_context("minikube")

    kubeconfig = store.load()
    assert list(kubeconfig.contexts) == ["kind-kind"]
    assert kubeconfig.current_context == ''


def test_field_selector_parse():
    selector = FieldSelector.parse("product==kind, name!=kind-ci")
    assert selector.matches({"name": "kind-kind", "product": "kind"})
    assert not selector.matches({"name": "kind-ci", "product": "kind"})
    assert not selector.matches({"name": "minikube", "product": "minikube"})


def test_field_selector_empty_matches_all():
    selector = FieldSelector.parse("")
    assert selector.empty()
    assert selector.matches({"name": "anything"})


@pytest.mark.parametrize("text", ["product", "color=red", "=kind"])
def test_field_selector_invalid(text):
    with pytest.raises(ValueError):
        FieldSelector.parse(text)
