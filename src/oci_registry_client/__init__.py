"""
OCI Registry Client.

Async client for OCI compliant image registries and the Docker Registry
HTTP V2 protocol: token authentication, manifest resolution, and streamed,
digest-verified layer downloads.
"""
from .blob import BlobHandle, BlobReader
from .client import USER_AGENT, RegistryClient, RegistryEndpoint, __version__
from .digest import Digest, RunningHash
from .download import (
    DownloadOrchestrator,
    DownloadResult,
    FailurePolicy,
    LayerProgress,
    TaskState,
    plan_downloads,
)
from .errors import (
    APIError,
    DecodeError,
    DigestMismatch,
    DigestParseError,
    DownloadIncomplete,
    ErrorBodyDecodeError,
    LayerSizeConflict,
    RegistryError,
    TransportError,
)
from .models import AuthToken, ImageConfig, Layer, Manifest, ManifestList, Platform

__all__ = [
    "__version__",
    "USER_AGENT",
    "RegistryClient",
    "RegistryEndpoint",
    "BlobHandle",
    "BlobReader",
    "Digest",
    "RunningHash",
    "DownloadOrchestrator",
    "DownloadResult",
    "FailurePolicy",
    "LayerProgress",
    "TaskState",
    "plan_downloads",
    "RegistryError",
    "DigestParseError",
    "TransportError",
    "ErrorBodyDecodeError",
    "APIError",
    "DecodeError",
    "DigestMismatch",
    "LayerSizeConflict",
    "DownloadIncomplete",
    "AuthToken",
    "ImageConfig",
    "Layer",
    "Manifest",
    "ManifestList",
    "Platform",
]
