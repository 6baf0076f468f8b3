"""Tests for atomic file sinks."""
from __future__ import annotations

import pytest

from oci_registry_client.digest import Digest
from oci_registry_client.sinks import AtomicFileSink, blob_filename, directory_sink_factory


def _names(directory):
    return sorted(p.name for p in directory.iterdir())


class _FullDiskFile:
    """File whose buffered data can no longer be flushed."""
    closed = False

    def close(self):
        raise OSError(28, "No space left on device")


class TestAtomicFileSink:

    def test_commit_renames_into_place(self, tmp_path):
        target = tmp_path / "out" / "blob"
        sink = AtomicFileSink(target)
        sink.write(b"hello ")
        sink.write(b"world")

        assert not target.exists()
        assert len(_names(target.parent)) == 1  # only the temp file

        sink.commit()

        assert target.read_bytes() == b"hello world"
        assert sink.bytes_written == 11
        assert _names(target.parent) == ["blob"]

    def test_discard_removes_temp_file(self, tmp_path):
        sink = AtomicFileSink(tmp_path / "blob")
        sink.write(b"partial")

        sink.discard()

        assert _names(tmp_path) == []

    def test_discard_is_idempotent(self, tmp_path):
        sink = AtomicFileSink(tmp_path / "blob")
        sink.discard()
        sink.discard()
        assert _names(tmp_path) == []

    def test_discard_removes_temp_file_when_close_fails(self, tmp_path):
        sink = AtomicFileSink(tmp_path / "blob")
        sink._out.close()
        sink._out = _FullDiskFile()

        with pytest.raises(OSError):
            sink.discard()

        assert _names(tmp_path) == []

    def test_commit_replaces_existing_file(self, tmp_path):
        target = tmp_path / "blob"
        target.write_bytes(b"stale")

        sink = AtomicFileSink(target)
        sink.write(b"fresh")
        sink.commit()

        assert target.read_bytes() == b"fresh"


def test_blob_filename_has_no_colon():
    digest = Digest("sha256", "abc123")
    assert blob_filename(digest) == "sha256_abc123"
    assert blob_filename(digest, ".tar.gz") == "sha256_abc123.tar.gz"


def test_directory_sink_factory(tmp_path):
    digest = Digest.sha256_of(b"layer")
    factory = directory_sink_factory(tmp_path / "layers", suffix=".tar.gz")

    sink = factory(digest)
    sink.write(b"layer")
    sink.commit()

    assert (tmp_path / "layers" / f"sha256_{digest.hash}.tar.gz").read_bytes() == b"layer"
