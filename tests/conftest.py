"""Root pytest configuration for oci-registry-client tests."""
import pytest
import pytest_asyncio

from oci_registry_client.client import RegistryClient
from oci_registry_client.settings import Settings

from .fakes.fake_registry import FakeRegistry

_ENV_VARS = (
    "OCI_REGISTRY_SERVICE",
    "OCI_REGISTRY_API_URL",
    "OCI_REGISTRY_AUTH_URL",
    "OCI_REGISTRY_HTTP_TIMEOUT",
    "OCI_REGISTRY_VERIFY_DIGESTS",
    "OCI_REGISTRY_FAILURE_POLICY",
    "OCI_REGISTRY_CHUNK_SIZE",
)


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Point the environment at the fake registry and clear overrides."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OCI_REGISTRY_SERVICE", FakeRegistry.SERVICE)
    monkeypatch.setenv("OCI_REGISTRY_API_URL", FakeRegistry.API_URL)
    monkeypatch.setenv("OCI_REGISTRY_AUTH_URL", FakeRegistry.AUTH_URL)


@pytest.fixture
def settings():
    """Standard test settings."""
    return Settings(
        service=FakeRegistry.SERVICE,
        api_url=FakeRegistry.API_URL,
        auth_url=FakeRegistry.AUTH_URL,
    )


@pytest.fixture
def fake_registry():
    """Empty in-memory registry."""
    return FakeRegistry()


@pytest_asyncio.fixture
async def client(fake_registry):
    """Registry client wired to the fake registry."""
    async with RegistryClient(
        FakeRegistry.SERVICE,
        FakeRegistry.API_URL,
        FakeRegistry.AUTH_URL,
        transport=fake_registry.transport(),
    ) as registry_client:
        yield registry_client
