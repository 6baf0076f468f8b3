"""
Data models for registry payloads.

These Pydantic models map the JSON documents exchanged with a registry
(manifests, manifest lists, image configs, tokens and error bodies) onto
typed objects. Digest fields are parsed into ``Digest`` values at validation
time so a malformed digest is rejected with the rest of the schema.
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    PlainValidator,
)
from pydantic.alias_generators import to_camel, to_pascal

from .digest import Digest


def _coerce_digest(value: Any) -> Digest:
    if isinstance(value, Digest):
        return value
    return Digest.parse(value)


DigestField = Annotated[
    Digest,
    PlainValidator(_coerce_digest),
    PlainSerializer(str, return_type=str),
]


class _CamelModel(BaseModel):
    """Base for distribution documents, which use camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Descriptor(_CamelModel):
    """Reference to a blob by media type, size and digest."""
    media_type: str
    size: int = Field(..., ge=0)
    digest: DigestField


class Layer(Descriptor):
    """A layer blob referenced by an image manifest."""
    pass


class Manifest(_CamelModel):
    """
    Image Manifest V2, Schema 2.

    ``layers`` keeps the registry's order (base layer first); digests within it
    need not be unique.
    """
    schema_version: int
    media_type: str
    config: Descriptor
    layers: List[Layer] = Field(default_factory=list)


class Platform(_CamelModel):
    """The platform an image in a manifest list runs on."""
    architecture: str
    os: str
    # Registries send "os.version"; camelCase is accepted for older fixtures
    os_version: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("os.version", "osVersion", "os_version"),
        serialization_alias="os.version",
    )
    os_features: Optional[List[str]] = Field(
        default=None,
        validation_alias=AliasChoices("os.features", "osFeatures", "os_features"),
        serialization_alias="os.features",
    )
    variant: Optional[str] = None
    features: Optional[List[str]] = None

    def matches(self, architecture: str, os: str, variant: Optional[str] = None) -> bool:
        if self.architecture != architecture or self.os != os:
            return False
        return variant is None or self.variant == variant


class ManifestItem(_CamelModel):
    """Entry of a manifest list pointing at one platform-specific manifest."""
    media_type: str
    size: int = Field(..., ge=0)
    digest: DigestField
    platform: Platform


class ManifestList(_CamelModel):
    """The "fat manifest" indexing per-platform image manifests."""
    schema_version: int
    media_type: str
    manifests: List[ManifestItem] = Field(default_factory=list)

    def select(self, architecture: str, os: str, variant: Optional[str] = None) -> Optional[ManifestItem]:
        """Return the first entry built for the given platform, or None."""
        for item in self.manifests:
            if item.platform.matches(architecture, os, variant):
                return item
        return None


class ContainerConfig(BaseModel):
    """Execution parameters embedded in an image config (PascalCase keys)."""
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True, extra="allow")

    user: Optional[str] = None
    env: Optional[List[str]] = None
    entrypoint: Optional[List[str]] = None
    cmd: Optional[List[str]] = None
    working_dir: Optional[str] = None
    labels: Optional[Dict[str, str]] = None
    exposed_ports: Optional[Dict[str, Any]] = None
    volumes: Optional[Dict[str, Any]] = None
    stop_signal: Optional[str] = None


class RootFS(BaseModel):
    type: str
    diff_ids: List[DigestField] = Field(default_factory=list)


class HistoryEntry(BaseModel):
    created: Optional[str] = None
    created_by: Optional[str] = None
    author: Optional[str] = None
    comment: Optional[str] = None
    empty_layer: bool = False


class ImageConfig(BaseModel):
    """
    Image configuration blob.

    Only the commonly used fields are typed; anything else the registry sends
    is preserved as extra data.
    """
    model_config = ConfigDict(extra="allow")

    architecture: str
    os: str
    created: Optional[str] = None
    author: Optional[str] = None
    config: Optional[ContainerConfig] = None
    rootfs: Optional[RootFS] = None
    history: List[HistoryEntry] = Field(default_factory=list)


class AuthToken(BaseModel):
    """
    Bearer token issued by a registry token endpoint.

    Token servers return ``token`` and/or ``access_token``; either is accepted.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(..., validation_alias=AliasChoices("access_token", "token"))
    expires_in: int = 60
    issued_at: Optional[str] = None


class ErrorEntry(BaseModel):
    """One ``{code, message, detail}`` item of a registry error body."""
    model_config = ConfigDict(frozen=True)

    code: str
    message: str = ""
    detail: Any = None


class ErrorList(BaseModel):
    errors: List[ErrorEntry] = Field(default_factory=list)


__all__ = [
    "DigestField",
    "Descriptor",
    "Layer",
    "Manifest",
    "Platform",
    "ManifestItem",
    "ManifestList",
    "ContainerConfig",
    "RootFS",
    "HistoryEntry",
    "ImageConfig",
    "AuthToken",
    "ErrorEntry",
    "ErrorList",
]
