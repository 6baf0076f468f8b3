"""
Operations Facade - Application service layer.

Provides a clean interface between the CLI and the registry client,
centralizing authentication, platform selection and download policy while
keeping CLI commands thin and testable.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from ..client import RegistryClient
from ..download import DownloadOrchestrator, DownloadResult, FailurePolicy, ProgressCallback
from ..errors import APIError, DownloadIncomplete, ErrorBodyDecodeError
from ..models import ImageConfig, Manifest, ManifestList
from ..settings import Settings
from ..sinks import directory_sink_factory

logger = logging.getLogger(__name__)

__all__ = ["Operations", "OpsConfig", "InspectResult", "PullResult", "parse_platform"]


def parse_platform(value: str) -> Tuple[str, str, Optional[str]]:
    """
    Parse ``os/architecture[/variant]`` into its parts.

    Raises:
        ValueError: If the string does not have two or three parts
    """
    parts = value.strip().split("/")
    if len(parts) not in (2, 3) or not all(parts):
        raise ValueError(f"Invalid platform '{value}'. Use os/architecture[/variant], e.g. linux/amd64")
    variant = parts[2] if len(parts) == 3 else None
    return parts[0], parts[1], variant


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes policy decisions so CLI flags and environment settings are
    combined in one place.
    """
    verify: bool = True                                  # Verify layer digests
    failure_policy: FailurePolicy = FailurePolicy.CONTINUE
    anonymous: bool = False                              # Skip token acquisition
    verbose: bool = False                                # Show detailed output

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> OpsConfig:
        values = dict(verify=settings.verify_digests, failure_policy=settings.failure_policy)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass(frozen=True)
class InspectResult:
    image: str
    reference: str
    manifest: Manifest
    config: ImageConfig


@dataclass(frozen=True)
class PullResult:
    image: str
    reference: str
    manifest: Manifest
    dest: Path
    download: DownloadResult


class Operations:
    """
    Application service facade for CLI operations.

    One coroutine per CLI verb. Errors bubble up for central mapping to exit
    codes in ``run_and_exit``.
    """

    def __init__(self, config: OpsConfig, client: RegistryClient, settings: Optional[Settings] = None):
        self.cfg = config
        self.client = client
        self.settings = settings or Settings()

    async def _authenticate(self, image: str) -> None:
        """Acquire a pull token; registries without a token service are used anonymously."""
        if self.cfg.anonymous:
            return
        try:
            await self.client.login("repository", image, "pull")
        except (APIError, ErrorBodyDecodeError) as e:
            logger.warning(f"Token request for {image} failed, continuing anonymously: {e}")

    async def inspect(self, image: str, reference: str) -> InspectResult:
        """Fetch the manifest of ``image:reference`` and its image config."""
        await self._authenticate(image)
        manifest = await self.client.fetch_manifest(image, reference)
        config = await self.client.fetch_image_config(image, manifest.config.digest)
        return InspectResult(image=image, reference=reference, manifest=manifest, config=config)

    async def platforms(self, image: str, reference: str) -> ManifestList:
        await self._authenticate(image)
        return await self.client.fetch_manifest_list(image, reference)

    async def pull(self, image: str, reference: str, dest: str, *,
                   platform: Optional[str] = None,
                   on_progress: Optional[ProgressCallback] = None) -> PullResult:
        """
        Download every layer of ``image:reference`` into ``dest``.

        Args:
            image: Repository name
            reference: Tag or digest
            dest: Destination directory (created if missing)
            platform: Optional ``os/arch[/variant]``, resolved through the manifest list
            on_progress: Receives a progress table snapshot after every update

        Raises:
            ValueError: If the platform is malformed or not in the manifest list
            DownloadIncomplete: If any layer failed or was cancelled
        """
        await self._authenticate(image)

        if platform:
            os_name, arch, variant = parse_platform(platform)
            manifest_list = await self.client.fetch_manifest_list(image, reference)
            item = manifest_list.select(arch, os_name, variant)
            if item is None:
                raise ValueError(f"No manifest for platform {platform} in {image}:{reference}")
            logger.info(f"Selected {item.digest} for platform {platform}")
            reference = str(item.digest)

        manifest = await self.client.fetch_manifest(image, reference)

        dest_path = Path(dest)
        orchestrator = DownloadOrchestrator(
            self.client,
            image,
            directory_sink_factory(dest_path, suffix=".tar.gz"),
            verify=self.cfg.verify,
            failure_policy=self.cfg.failure_policy,
            chunk_size=self.settings.chunk_size,
        )
        download = await orchestrator.run(manifest.layers, on_progress=on_progress)

        if not download.completed:
            failures = [f"{p.digest}: {p.error}" for p in download.failures]
            raise DownloadIncomplete(
                f"{len(download.failures)} failed and {len(download.cancelled)} cancelled "
                f"of {len(download.progress)} layer download(s)",
                failures=failures,
            )

        return PullResult(image=image, reference=reference, manifest=manifest, dest=dest_path, download=download)
