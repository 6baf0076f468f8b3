"""
Registry media types and constants.

Single source of truth for the media types the client negotiates with.
"""
from __future__ import annotations

# Docker distribution manifests
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"

# Docker image config and layers
DOCKER_IMAGE_CONFIG = "application/vnd.docker.container.image.v1+json"
DOCKER_IMAGE_LAYER = "application/vnd.docker.image.rootfs.diff.tar.gzip"
DOCKER_FOREIGN_LAYER = "application/vnd.docker.image.rootfs.foreign.diff.tar.gzip"

# OCI equivalents
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_IMAGE_CONFIG = "application/vnd.oci.image.config.v1+json"
OCI_IMAGE_LAYER = "application/vnd.oci.image.layer.v1.tar+gzip"

JSON = "application/json"

# Digest algorithm used by the distribution API for all content
DEFAULT_DIGEST_ALGORITHM = "sha256"


__all__ = [
    "DOCKER_MANIFEST_V2",
    "DOCKER_MANIFEST_LIST_V2",
    "DOCKER_IMAGE_CONFIG",
    "DOCKER_IMAGE_LAYER",
    "DOCKER_FOREIGN_LAYER",
    "OCI_IMAGE_MANIFEST",
    "OCI_IMAGE_INDEX",
    "OCI_IMAGE_CONFIG",
    "OCI_IMAGE_LAYER",
    "JSON",
    "DEFAULT_DIGEST_ALGORITHM",
]
