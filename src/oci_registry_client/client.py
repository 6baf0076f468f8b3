"""
Registry HTTP client for the OCI Distribution API.

Implements the Docker Registry HTTP V2 read path: bearer token acquisition,
manifest and manifest-list retrieval, image config retrieval and streamed
blob access. A single client instance is safe to share between concurrently
running download tasks: its configuration is immutable and the bearer token
is the only mutable state, swapped as a whole under a lock.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from . import media_types
from .blob import BlobHandle
from .digest import Digest
from .errors import APIError, DecodeError, ErrorBodyDecodeError, TransportError
from .models import AuthToken, ErrorList, ImageConfig, Manifest, ManifestList

logger = logging.getLogger(__name__)

__version__ = "0.1.0"
USER_AGENT = f"oci-registry-client/{__version__}"

M = TypeVar("M", bound=BaseModel)
Reference = Union[str, Digest]

__all__ = ["RegistryClient", "RegistryEndpoint", "TokenHolder", "USER_AGENT"]


@dataclass(frozen=True)
class RegistryEndpoint:
    """
    Immutable addressing for one registry service.

    Args:
        service: Registry service name used in token scopes (e.g. "registry.docker.io")
        api_url: Base URL of the distribution API (e.g. "https://registry-1.docker.io")
        auth_url: Token endpoint (e.g. "https://auth.docker.io/token")
    """
    service: str
    api_url: str
    auth_url: str

    def __post_init__(self):
        for name in ("service", "api_url", "auth_url"):
            if not getattr(self, name):
                raise ValueError(f"{name} is required")
        object.__setattr__(self, "api_url", self.api_url.rstrip("/"))

    def manifest_url(self, image: str, reference: Reference) -> str:
        return f"{self.api_url}/v2/{image}/manifests/{reference}"

    def blob_url(self, image: str, digest: Digest) -> str:
        return f"{self.api_url}/v2/{image}/blobs/{digest}"


class TokenHolder:
    """Single-writer, many-reader slot for the current bearer token."""

    def __init__(self, token: Optional[AuthToken] = None):
        self._lock = threading.Lock()
        self._token = token

    @property
    def current(self) -> Optional[AuthToken]:
        return self._token

    def swap(self, token: Optional[AuthToken]) -> Optional[AuthToken]:
        with self._lock:
            previous, self._token = self._token, token
        return previous


class RegistryClient:
    """
    Async client for OCI Distribution API read operations.

    Every operation issues exactly one request and maps the outcome onto the
    error taxonomy: ``TransportError`` below HTTP, ``APIError`` for non-200
    responses, ``DecodeError`` for a 200 whose body does not match the schema.
    No retries are performed.
    """

    def __init__(
        self,
        service: str,
        api_url: str,
        auth_url: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize registry client.

        Args:
            service: Registry service name (e.g. "registry.docker.io")
            api_url: Distribution API base URL (e.g. "https://registry-1.docker.io")
            auth_url: Token endpoint URL (e.g. "https://auth.docker.io/token")
            timeout: Per-request read timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
            http_client: Optional pre-built client; not closed by this instance
        """
        self.endpoint = RegistryEndpoint(service=service, api_url=api_url, auth_url=auth_url)
        self._tokens = TokenHolder()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, **kwargs) -> RegistryClient:
        return cls(
            settings.service,
            settings.api_url,
            settings.auth_url,
            timeout=settings.http_timeout_s,
            **kwargs,
        )

    @property
    def token(self) -> Optional[AuthToken]:
        return self._tokens.current

    def set_token(self, token: Optional[AuthToken]) -> None:
        """Replace the credential used by requests built from now on."""
        self._tokens.swap(token)

    async def authenticate(self, scope_type: str, resource_name: str, action: str) -> AuthToken:
        """
        Fetch a bearer token for ``<scope_type>:<resource_name>:<action>``.

        The token is returned, not installed; pass it to ``set_token()``.

        Raises:
            APIError: If the token endpoint rejects the request
            ErrorBodyDecodeError: If the rejection body is not an error list
            DecodeError: If a 200 body is not a token
            TransportError: On network failure
        """
        scope = f"{scope_type}:{resource_name}:{action}"
        params = {"service": self.endpoint.service, "scope": scope}
        logger.debug(f"Requesting token for scope {scope} from {self.endpoint.auth_url}")

        response = await self._send("GET", self.endpoint.auth_url, params=params, authenticated=False)
        token = self._decode(response, AuthToken, f"token for {scope}")
        logger.debug(f"Acquired token for {scope} (expires in {token.expires_in}s)")
        return token

    async def login(self, scope_type: str, resource_name: str, action: str = "pull") -> AuthToken:
        """Authenticate and install the resulting token."""
        token = await self.authenticate(scope_type, resource_name, action)
        self.set_token(token)
        return token

    async def check_version(self) -> bool:
        """Probe ``/v2/`` to confirm the endpoint speaks the V2 API."""
        response = await self._send("GET", f"{self.endpoint.api_url}/v2/", accept=media_types.JSON)
        if response.status_code != 200:
            raise self._api_error(response)
        return True

    async def fetch_manifest_list(self, image: str, reference: Reference) -> ManifestList:
        url = self.endpoint.manifest_url(image, reference)
        response = await self._send("GET", url, accept=media_types.DOCKER_MANIFEST_LIST_V2)
        return self._decode(response, ManifestList, f"manifest list {image}:{reference}")

    async def fetch_manifest(self, image: str, reference: Reference) -> Manifest:
        url = self.endpoint.manifest_url(image, reference)
        response = await self._send("GET", url, accept=media_types.DOCKER_MANIFEST_V2)
        return self._decode(response, Manifest, f"manifest {image}:{reference}")

    async def fetch_image_config(self, image: str, digest: Digest) -> ImageConfig:
        url = self.endpoint.blob_url(image, digest)
        response = await self._send("GET", url, accept=media_types.DOCKER_IMAGE_CONFIG)
        return self._decode(response, ImageConfig, f"image config {image}@{digest}")

    async def open_blob(self, image: str, digest: Digest) -> BlobHandle:
        """
        Open a blob for streaming.

        On 200 the body is left unread inside the returned handle; the caller
        owns it and must close it. On any other status the error body is read
        in full and the response released before raising.

        Raises:
            APIError: If the registry answers with a non-200 status
            TransportError: On network failure
        """
        url = self.endpoint.blob_url(image, digest)
        response = await self._send("GET", url, stream=True, extra_headers={"Accept-Encoding": "identity"})

        if response.status_code == 200:
            handle = BlobHandle.from_response(digest, response)
            logger.debug(
                f"Opened blob {digest} (length={handle.content_length}, type={handle.content_type})"
            )
            return handle

        try:
            await response.aread()
        except httpx.RequestError as e:
            raise TransportError(f"Failed reading error body for blob {digest}: {e}") from e
        finally:
            await response.aclose()
        raise self._api_error(response)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        accept: Optional[str] = None,
        params: Optional[dict] = None,
        stream: bool = False,
        authenticated: bool = True,
        extra_headers: Optional[dict] = None,
    ) -> httpx.Response:
        headers = dict(extra_headers or {})
        if accept:
            headers["Accept"] = accept

        # Read once: a concurrent set_token() only affects later requests
        token = self._tokens.current
        if authenticated and token is not None:
            headers["Authorization"] = f"Bearer {token.access_token}"

        request = self._http.build_request(method, url, headers=headers, params=params)
        logger.debug(f"{method} {request.url}")

        try:
            return await self._http.send(request, stream=stream)
        except httpx.RequestError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

    def _decode(self, response: httpx.Response, model: Type[M], what: str) -> M:
        if response.status_code != 200:
            raise self._api_error(response)
        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            raise DecodeError(f"Invalid {what} returned by registry: {e}") from e

    @staticmethod
    def _api_error(response: httpx.Response) -> Union[APIError, ErrorBodyDecodeError]:
        try:
            body = ErrorList.model_validate_json(response.content)
        except ValidationError as e:
            logger.warning(f"Undecodable error body for HTTP {response.status_code} from {response.url}")
            return ErrorBodyDecodeError(
                f"HTTP {response.status_code} from {response.url} with undecodable error body: {e}",
                status_code=response.status_code,
            )
        return APIError(response.status_code, body.errors)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
