"""
Content identifiers.

A digest is an algorithm-tagged content hash (``sha256:<hex>``) that names an
immutable blob. Digests are plain values: parsed from manifest strings or
produced by finalizing a running hash over downloaded bytes.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass

from .errors import DigestParseError

__all__ = ["Digest", "RunningHash"]


@dataclass(frozen=True)
class Digest:
    """
    Immutable ``<algorithm>:<hash>`` content identifier.

    Equality is structural and case-sensitive on the hash, so
    ``Digest.parse(str(d)) == d`` for every valid digest.
    """
    algorithm: str
    hash: str

    @classmethod
    def parse(cls, value: str) -> Digest:
        """
        Parse a digest string, splitting on the first ``:``.

        Raises:
            DigestParseError: If there is no separator or either side is empty
        """
        if not isinstance(value, str):
            raise DigestParseError(f"Digest must be a string, got {type(value).__name__}")

        algorithm, sep, hash_ = value.partition(":")
        if not sep:
            raise DigestParseError(f"Invalid digest '{value}': expected '<algorithm>:<hash>'")
        if not algorithm or not hash_:
            raise DigestParseError(f"Invalid digest '{value}': algorithm and hash must be non-empty")

        return cls(algorithm=algorithm, hash=hash_)

    @classmethod
    def from_running_hash(cls, algorithm: str, digest_bytes: bytes) -> Digest:
        """Pair a finalized byte digest, rendered as lowercase hex, with its algorithm."""
        return cls(algorithm=algorithm, hash=digest_bytes.hex())

    @classmethod
    def sha256_of(cls, data: bytes) -> Digest:
        return cls.from_running_hash("sha256", hashlib.sha256(data).digest())

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hash}"


class RunningHash:
    """
    Incremental hash over a byte stream.

    Folds chunks as they are observed; ``finalize()`` yields the Digest of
    exactly the bytes passed to ``update()``.
    """

    def __init__(self, algorithm: str = "sha256"):
        if algorithm not in hashlib.algorithms_available:
            raise DigestParseError(f"Unsupported digest algorithm: {algorithm}")
        self.algorithm = algorithm
        self._hasher = hashlib.new(algorithm)

    def update(self, chunk: bytes) -> None:
        self._hasher.update(chunk)

    def finalize(self) -> Digest:
        return Digest.from_running_hash(self.algorithm, self._hasher.digest())
