"""
Tests for the registry protocol client.

Exercises request construction (URLs, query, Accept and Authorization
headers) and the mapping of registry responses onto the error taxonomy.
"""
from __future__ import annotations

import httpx
import pytest

from oci_registry_client import media_types
from oci_registry_client.client import RegistryClient, RegistryEndpoint, TokenHolder
from oci_registry_client.digest import Digest
from oci_registry_client.errors import (
    APIError,
    DecodeError,
    ErrorBodyDecodeError,
    TransportError,
)
from oci_registry_client.models import AuthToken

from .fakes.fake_registry import FakeRegistry

IMAGE = "library/alpine"


@pytest.mark.asyncio
class TestAuthenticate:

    async def test_token_request_query(self, client, fake_registry):
        token = await client.authenticate("repository", IMAGE, "pull")

        assert token.access_token == "test-token"
        assert token.expires_in == 300
        request = fake_registry.requests[-1]
        assert str(request.url).startswith(FakeRegistry.AUTH_URL)
        assert request.url.params["service"] == FakeRegistry.SERVICE
        assert request.url.params["scope"] == f"repository:{IMAGE}:pull"
        assert "Authorization" not in request.headers

    async def test_authenticate_does_not_install_token(self, client):
        await client.authenticate("repository", IMAGE, "pull")
        assert client.token is None

    async def test_login_installs_token(self, client):
        token = await client.login("repository", IMAGE)
        assert client.token == token

    async def test_rejection_surfaces_api_error(self, client, fake_registry):
        body = {"errors": [{"code": "DENIED", "message": "access denied", "detail": None}]}
        fake_registry.inject("/token", 403, body)

        with pytest.raises(APIError) as exc_info:
            await client.authenticate("repository", IMAGE, "pull")

        assert exc_info.value.status_code == 403
        assert exc_info.value.codes == ["DENIED"]

    async def test_undecodable_error_body(self, client, fake_registry):
        fake_registry.inject("/token", 500, content=b"<html>oops</html>")

        with pytest.raises(ErrorBodyDecodeError) as exc_info:
            await client.authenticate("repository", IMAGE, "pull")

        assert isinstance(exc_info.value, TransportError)
        assert exc_info.value.status_code == 500

    async def test_invalid_token_body(self, client, fake_registry):
        fake_registry.inject("/token", 200, {"unexpected": True})

        with pytest.raises(DecodeError):
            await client.authenticate("repository", IMAGE, "pull")


@pytest.mark.asyncio
class TestManifests:

    async def test_fetch_manifest_headers(self, client, fake_registry):
        fake_registry.add_image(IMAGE, "latest", [b"layer-one", b"layer-two"])

        manifest = await client.fetch_manifest(IMAGE, "latest")

        assert len(manifest.layers) == 2
        request = fake_registry.requests[-1]
        assert request.url.path == f"/v2/{IMAGE}/manifests/latest"
        assert request.headers["Accept"] == media_types.DOCKER_MANIFEST_V2
        assert "Authorization" not in request.headers

    async def test_bearer_header_after_set_token(self, client, fake_registry):
        fake_registry.require_auth = True
        fake_registry.add_image(IMAGE, "latest", [b"layer"])

        with pytest.raises(APIError) as exc_info:
            await client.fetch_manifest(IMAGE, "latest")
        assert exc_info.value.status_code == 401

        client.set_token(AuthToken(access_token="test-token"))
        manifest = await client.fetch_manifest(IMAGE, "latest")

        assert manifest.layers[0].digest == Digest.sha256_of(b"layer")
        assert fake_registry.requests[-1].headers["Authorization"] == "Bearer test-token"

    async def test_clearing_token(self, client, fake_registry):
        fake_registry.add_image(IMAGE, "latest", [b"layer"])
        client.set_token(AuthToken(access_token="abc"))
        client.set_token(None)

        await client.fetch_manifest(IMAGE, "latest")

        assert "Authorization" not in fake_registry.requests[-1].headers

    async def test_404_error_list_verbatim(self, client, fake_registry):
        body = {"errors": [
            {"code": "MANIFEST_UNKNOWN", "message": "manifest unknown", "detail": {"Tag": "nope"}},
            {"code": "NAME_UNKNOWN", "message": "repository name not known", "detail": None},
        ]}
        fake_registry.inject(f"/v2/{IMAGE}/manifests/nope", 404, body)

        with pytest.raises(APIError) as exc_info:
            await client.fetch_manifest(IMAGE, "nope")

        error = exc_info.value
        assert error.status_code == 404
        assert [e.model_dump() for e in error.errors] == body["errors"]
        assert "MANIFEST_UNKNOWN: manifest unknown" in str(error)

    async def test_invalid_manifest_body_is_decode_error(self, client, fake_registry):
        fake_registry.inject(f"/v2/{IMAGE}/manifests/broken", 200, {"schemaVersion": "two"})

        with pytest.raises(DecodeError):
            await client.fetch_manifest(IMAGE, "broken")

    async def test_fetch_manifest_list(self, client, fake_registry):
        amd64 = fake_registry.add_manifest(IMAGE, "amd64-only", {"schemaVersion": 2})
        fake_registry.add_manifest(IMAGE, "latest", {
            "schemaVersion": 2,
            "mediaType": media_types.DOCKER_MANIFEST_LIST_V2,
            "manifests": [{
                "mediaType": media_types.DOCKER_MANIFEST_V2,
                "size": 100,
                "digest": str(amd64),
                "platform": {"architecture": "amd64", "os": "linux"},
            }],
        }, media_type=media_types.DOCKER_MANIFEST_LIST_V2)

        manifest_list = await client.fetch_manifest_list(IMAGE, "latest")

        assert manifest_list.select("amd64", "linux").digest == amd64
        assert fake_registry.requests[-1].headers["Accept"] == media_types.DOCKER_MANIFEST_LIST_V2

    async def test_fetch_image_config(self, client, fake_registry):
        manifest = fake_registry.add_image(IMAGE, "latest", [b"layer"], config={
            "architecture": "arm64", "os": "linux", "config": {"Cmd": ["/bin/sh"]},
        })
        config_digest = Digest.parse(manifest["config"]["digest"])

        config = await client.fetch_image_config(IMAGE, config_digest)

        assert config.architecture == "arm64"
        assert config.config.cmd == ["/bin/sh"]
        request = fake_registry.requests[-1]
        assert request.url.path == f"/v2/{IMAGE}/blobs/{config_digest}"
        assert request.headers["Accept"] == media_types.DOCKER_IMAGE_CONFIG


@pytest.mark.asyncio
class TestOpenBlob:

    async def test_handle_exposes_headers_and_unread_body(self, client, fake_registry):
        digest = fake_registry.add_blob(IMAGE, b"x" * 100, content_type=media_types.DOCKER_IMAGE_LAYER)

        handle = await client.open_blob(IMAGE, digest)
        try:
            assert handle.digest == digest
            assert handle.content_length == 100
            assert handle.content_type == media_types.DOCKER_IMAGE_LAYER
            assert not handle.response.is_stream_consumed
        finally:
            await handle.aclose()

    async def test_requests_identity_encoding(self, client, fake_registry):
        digest = fake_registry.add_blob(IMAGE, b"data")

        handle = await client.open_blob(IMAGE, digest)
        await handle.aclose()

        assert fake_registry.requests[-1].headers["Accept-Encoding"] == "identity"

    async def test_missing_content_length(self, client, fake_registry):
        digest = fake_registry.add_blob(IMAGE, b"data", send_length=False)

        handle = await client.open_blob(IMAGE, digest)
        try:
            assert handle.content_length is None
        finally:
            await handle.aclose()

    async def test_unknown_blob(self, client, fake_registry):
        digest = Digest.sha256_of(b"never stored")

        with pytest.raises(APIError) as exc_info:
            await client.open_blob(IMAGE, digest)

        assert exc_info.value.status_code == 404
        assert exc_info.value.codes == ["BLOB_UNKNOWN"]


@pytest.mark.asyncio
class TestTransport:

    async def test_connect_failure_is_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with RegistryClient(FakeRegistry.SERVICE, FakeRegistry.API_URL, FakeRegistry.AUTH_URL,
                                  transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(TransportError):
                await client.fetch_manifest(IMAGE, "latest")
            with pytest.raises(TransportError):
                await client.open_blob(IMAGE, Digest.sha256_of(b"x"))

    async def test_check_version(self, client):
        assert await client.check_version() is True

    async def test_check_version_unauthorized(self, client, fake_registry):
        fake_registry.require_auth = True

        with pytest.raises(APIError) as exc_info:
            await client.check_version()

        assert exc_info.value.codes == ["UNAUTHORIZED"]

    async def test_user_agent(self, client, fake_registry):
        await client.check_version()
        assert fake_registry.requests[-1].headers["User-Agent"].startswith("oci-registry-client/")


class TestTokenHolder:

    def test_swap_returns_previous(self):
        first = AuthToken(access_token="a")
        second = AuthToken(access_token="b")
        holder = TokenHolder(first)

        assert holder.swap(second) is first
        assert holder.current is second

    def test_endpoint_strips_trailing_slash(self):
        endpoint = RegistryEndpoint("svc", "https://registry.test/", "https://auth.test/token")
        assert endpoint.manifest_url("a/b", "latest") == "https://registry.test/v2/a/b/manifests/latest"

    def test_endpoint_requires_urls(self):
        with pytest.raises(ValueError):
            RegistryEndpoint("svc", "", "https://auth.test/token")
