"""
Streaming blob access.

A ``BlobHandle`` wraps a registry response whose body has not been read yet.
``BlobReader`` pulls that body chunk by chunk, optionally folding every chunk
into a running hash so the content can be checked against the digest it was
requested by. Memory use is bounded by one chunk regardless of blob size.

Example:
    >>> handle = await client.open_blob("library/alpine", layer.digest)
    >>> async with BlobReader(handle, verify=True) as reader:
    ...     async for chunk in reader:
    ...         out.write(chunk)
    ...     reader.verify_against(layer.digest)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from .digest import Digest, RunningHash
from .errors import DigestMismatch, TransportError

logger = logging.getLogger(__name__)

__all__ = ["BlobHandle", "BlobReader"]


@dataclass
class BlobHandle:
    """
    An open blob response.

    ``content_length`` and ``content_type`` come from the response headers and
    are None when the registry did not send them.
    """
    digest: Digest
    response: httpx.Response
    content_length: Optional[int] = None
    content_type: Optional[str] = None

    @classmethod
    def from_response(cls, digest: Digest, response: httpx.Response) -> BlobHandle:
        length = response.headers.get("Content-Length")
        content_length = int(length) if length is not None and length.isdigit() else None
        return cls(
            digest=digest,
            response=response,
            content_length=content_length,
            content_type=response.headers.get("Content-Type"),
        )

    async def aclose(self) -> None:
        await self.response.aclose()


class BlobReader:
    """
    Pull-based chunk source over a ``BlobHandle``.

    ``next_chunk()`` must be driven by a single task for the lifetime of the
    handle. With ``verify=True`` each chunk is hashed before it is handed to
    the caller, so the hash always covers exactly the bytes returned so far.
    """

    def __init__(self, handle: BlobHandle, *, verify: bool = False, chunk_size: Optional[int] = None):
        self.handle = handle
        self.bytes_read = 0
        self._hash: Optional[RunningHash] = RunningHash(handle.digest.algorithm) if verify else None
        # Raw bytes: the digest covers the blob as stored, never a decoded form
        self._chunks = handle.response.aiter_raw(chunk_size)
        self._eof = False
        self._error: Optional[TransportError] = None

    @property
    def verifying(self) -> bool:
        return self._hash is not None

    @property
    def at_eof(self) -> bool:
        return self._eof

    @property
    def failed(self) -> bool:
        return self._error is not None

    async def next_chunk(self) -> Optional[bytes]:
        """
        Return the next non-empty chunk, or None once the body is exhausted.

        Raises:
            TransportError: If the body stream breaks mid-read, and on every
                call after that
        """
        if self._error is not None:
            raise self._error
        if self._eof:
            return None

        while True:
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._eof = True
                logger.debug(f"Blob {self.handle.digest} exhausted after {self.bytes_read} bytes")
                await self.aclose()
                return None
            except httpx.RequestError as e:
                self._error = TransportError(
                    f"Stream for blob {self.handle.digest} broke after {self.bytes_read} bytes: {e}"
                )
                self._error.__cause__ = e
                await self.aclose()
                raise self._error
            if chunk:
                break

        if self._hash is not None:
            self._hash.update(chunk)
        self.bytes_read += len(chunk)
        return chunk

    def finalize_digest(self) -> Digest:
        """
        Digest of every byte read.

        Only valid after end-of-stream on a verifying reader; anything else is
        a programming error.
        """
        if self._hash is None:
            raise RuntimeError("finalize_digest() requires a reader created with verify=True")
        if self._error is not None:
            raise RuntimeError("finalize_digest() called after the stream failed") from self._error
        if not self._eof:
            raise RuntimeError("finalize_digest() called before end-of-stream")
        return self._hash.finalize()

    def verify_against(self, expected: Digest) -> Digest:
        """
        Check the streamed content against ``expected``.

        Raises:
            DigestMismatch: If the computed digest differs
        """
        actual = self.finalize_digest()
        if actual != expected:
            raise DigestMismatch(
                f"Digest mismatch for blob: expected {expected}, got {actual}",
                expected=str(expected),
                actual=str(actual),
            )
        return actual

    async def aclose(self) -> None:
        await self.handle.aclose()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.next_chunk()
            if chunk is None:
                return
            yield chunk

    async def __aenter__(self) -> BlobReader:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
