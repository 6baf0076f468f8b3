"""
Output sinks for downloaded blobs.

Each download task writes its chunks sequentially into a sink it owns
exclusively. File sinks stage data in a temporary file next to the target and
only rename it into place on ``commit()``, so a failed or cancelled download
never leaves a final file behind.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Protocol, Union

from .digest import Digest

logger = logging.getLogger(__name__)

__all__ = ["LayerSink", "SinkFactory", "AtomicFileSink", "directory_sink_factory", "blob_filename"]


class LayerSink(Protocol):
    """Sequential destination for one blob's bytes."""

    def write(self, chunk: bytes) -> None:
        ...

    def commit(self) -> None:
        """Finalize the output; called once after the last chunk."""
        ...

    def discard(self) -> None:
        """Drop partial output; safe to call after a failed or no-op write."""
        ...


SinkFactory = Callable[[Digest], LayerSink]


class AtomicFileSink:
    """
    Stream content to a file with an atomic rename on commit.

    Data goes to a ``.oci.tmp.*`` file in the target's directory; ``commit()``
    fsyncs and renames it over ``target_path``.
    """

    def __init__(self, target_path: Union[str, Path]):
        self.target_path = Path(target_path)
        self.target_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=".oci.tmp.", dir=self.target_path.parent)
        self._temp_path = Path(temp_path)
        self._out = os.fdopen(fd, "wb")
        self.bytes_written = 0

    def write(self, chunk: bytes) -> None:
        self._out.write(chunk)
        self.bytes_written += len(chunk)

    def commit(self) -> None:
        self._out.flush()
        os.fsync(self._out.fileno())
        self._out.close()
        os.replace(self._temp_path, self.target_path)
        logger.debug(f"Wrote {self.bytes_written} bytes to {self.target_path}")

    def discard(self) -> None:
        try:
            if not self._out.closed:
                self._out.close()
        finally:
            try:
                self._temp_path.unlink()
            except FileNotFoundError:
                pass


def blob_filename(digest: Digest, suffix: str = "") -> str:
    """File name for a blob: ``<algorithm>_<hash><suffix>`` (no ':' on disk)."""
    return f"{digest.algorithm}_{digest.hash}{suffix}"


def directory_sink_factory(dest_dir: Union[str, Path], suffix: str = "") -> SinkFactory:
    """Build a sink factory writing each blob to its own file under ``dest_dir``."""
    dest = Path(dest_dir)

    def factory(digest: Digest) -> LayerSink:
        return AtomicFileSink(dest / blob_filename(digest, suffix))

    return factory
