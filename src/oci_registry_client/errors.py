"""
Registry client error classes.

Provides a clear taxonomy of errors that can occur while talking to an
OCI/Docker distribution registry. Every failure surfaced by the client is
one of these, so callers can decide policy (retry, skip, abort) by type
instead of by message.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from .models import ErrorEntry


class RegistryError(Exception):
    """Base class for all registry client errors."""
    pass


class DigestParseError(RegistryError, ValueError):
    """
    Malformed digest string.

    Raised when:
    - a digest string lacks the ``<algorithm>:<hash>`` separator
    - either side of the separator is empty
    - a running hash is requested for an unsupported algorithm
    """
    pass


class TransportError(RegistryError):
    """
    Connection or I/O failure below the HTTP layer.

    Raised when:
    - the request cannot be sent (DNS, TLS, connect, timeouts)
    - the response body stream breaks mid-read
    """
    pass


class ErrorBodyDecodeError(TransportError):
    """
    A non-200 response whose error body could not be decoded.

    Kept distinct from APIError: the registry did not speak the protocol, so
    there is no structured error list to surface.
    """

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class APIError(RegistryError):
    """
    Well-formed non-200 registry response.

    Carries the HTTP status code and the decoded ``errors`` list verbatim,
    one ``ErrorEntry`` per ``{code, message, detail}`` object in the body.
    """

    def __init__(self, status_code: int, errors: Sequence["ErrorEntry"] = ()):
        self.status_code = status_code
        self.errors: List["ErrorEntry"] = list(errors)
        super().__init__(self._format())

    @property
    def codes(self) -> List[str]:
        return [e.code for e in self.errors]

    def _format(self) -> str:
        lines = [f"API error (HTTP {self.status_code}):"]
        for e in self.errors:
            lines.append(f"  {e.code}: {e.message}")
        return "\n".join(lines)


class DecodeError(RegistryError):
    """
    A 200 response whose body does not match the expected schema.

    Treated as a protocol violation by the server.
    """
    pass


class DigestMismatch(RegistryError):
    """
    Content digest validation failed.

    Raised when the digest computed over streamed bytes differs from the
    digest the blob was requested by.
    """

    def __init__(self, message: str, expected: Optional[str] = None, actual: Optional[str] = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class LayerSizeConflict(RegistryError, ValueError):
    """
    Two layers share a digest but declare different sizes.

    Equal digests must name identical content, so the manifest is invalid.
    """

    def __init__(self, digest: str, sizes: Sequence[int]):
        self.digest = digest
        self.sizes = list(sizes)
        super().__init__(f"Layer {digest} declared with conflicting sizes: {sorted(set(self.sizes))}")


class DownloadIncomplete(RegistryError):
    """
    A multi-layer download finished without every layer completing.

    Raised by the operations facade, never by the orchestrator itself.
    """

    def __init__(self, message: str, failures: Sequence[str] = ()):
        super().__init__(message)
        self.failures = list(failures)


__all__ = [
    "RegistryError",
    "DigestParseError",
    "TransportError",
    "ErrorBodyDecodeError",
    "APIError",
    "DecodeError",
    "DigestMismatch",
    "LayerSizeConflict",
    "DownloadIncomplete",
]
