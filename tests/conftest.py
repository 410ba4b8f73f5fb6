"""
Shared fixtures: isolated vault directories, a controllable clock and fresh kernels.
"""

from datetime import datetime, timedelta, timezone

import pytest

from nexus.core.events import EventBus
from nexus.core.kernel import VaultKernel
from nexus.core.keychain import KeychainStore
from nexus.core.sync import CloudMirror
from nexus.vector.embeddings import HashedTokenEmbedding


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep real credentials and data directories out of every test."""
    for name in ("DEFAULT_PROVIDER_API_KEY", "API_KEY", "DEVELOPMENT_MODE",
                 "CLOUD_SYNC_ENTITLED", "STORAGE_QUOTA_BYTES", "PIPELINE_STEP_DELAY_SEC"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NEXUS_DATA_DIR", str(tmp_path / "default-data"))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def embedder():
    return HashedTokenEmbedding(dimension=128)


@pytest.fixture
def keychain(tmp_path):
    store = KeychainStore(str(tmp_path / "keychain.db"))
    yield store
    store.close()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def make_kernel(tmp_path, embedder, clock, events):
    """Factory for kernels sharing one data directory."""
    created = []

    def _make(**overrides):
        options = dict(
            data_dir=tmp_path / "vault",
            embedder=embedder,
            mirror=CloudMirror(endpoint=None),
            events=events,
            clock=clock,
            dev_mode=False,
            cloud_entitled=lambda: False,
            step_delay=0,
        )
        options.update(overrides)
        kernel = VaultKernel(**options)
        created.append(kernel)
        return kernel

    yield _make
    for kernel in created:
        kernel.close()


@pytest.fixture
def kernel(make_kernel):
    return make_kernel()


@pytest.fixture
def unlocked_kernel(kernel):
    kernel.set_pin("4242")
    kernel.unlock("4242")
    return kernel
