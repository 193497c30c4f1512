"""
Tests for content_store.py

Tests cover:
- Entry naming per compression mode
- Existence checks across both storage forms
- Atomic materialization (no partial file on failure)
"""

import gzip
import hashlib
import os
import sys
from unittest.mock import patch

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../../src")))

from core import content_store
from core.content_store import ContentStore
from core.mirror_context import COMPRESSION_GZIP, COMPRESSION_NONE


class TestContentHash:
    def test_sha1_hex(self):
        """Test the fallback identifier is the SHA-1 hex digest of the raw bytes."""
        raw = b"Subject: x\r\n\r\nbody"
        assert content_store.content_hash(raw) == hashlib.sha1(raw).hexdigest()


class TestEntryNaming:
    def test_gzip_suffix(self, tmp_path):
        """Test gzip stores name entries with .gz."""
        assert ContentStore(str(tmp_path)).entry_name("a@x.com") == "a@x.com.gz"

    def test_uncompressed_plain_name(self, tmp_path):
        """Test uncompressed stores use the identifier as is."""
        assert ContentStore(str(tmp_path), COMPRESSION_NONE).entry_name("a@x.com") == "a@x.com"

    def test_unknown_compression_rejected(self, tmp_path):
        """Test an unknown encoding is a configuration error."""
        with pytest.raises(ValueError):
            ContentStore(str(tmp_path), "bzip2")


class TestExistsAndLocate:
    def test_missing(self, tmp_path):
        store = ContentStore(str(tmp_path))
        assert not store.exists("a@x.com")
        assert store.locate("a@x.com") is None

    def test_plain_entry_found_by_gzip_store(self, tmp_path):
        """Test an entry written uncompressed by an earlier run counts as stored."""
        (tmp_path / "a@x.com").write_bytes(b"raw")
        store = ContentStore(str(tmp_path), COMPRESSION_GZIP)

        assert store.exists("a@x.com")
        assert store.locate("a@x.com") == str(tmp_path / "a@x.com")

    def test_gzip_form_preferred(self, tmp_path):
        """Test locate returns the .gz form first when both exist."""
        (tmp_path / "a@x.com").write_bytes(b"raw")
        (tmp_path / "a@x.com.gz").write_bytes(b"gz")

        assert ContentStore(str(tmp_path)).locate("a@x.com") == str(tmp_path / "a@x.com.gz")

    def test_dangling_link_does_not_count(self, tmp_path):
        """Test a symlink whose target is gone is not an existing entry."""
        os.symlink("missing.gz", tmp_path / "a@x.com.gz")
        assert not ContentStore(str(tmp_path)).exists("a@x.com")

    def test_valid_link_counts(self, tmp_path):
        """Test a symlink resolving to a stored entry counts."""
        (tmp_path / "target.gz").write_bytes(b"x")
        os.symlink("target.gz", tmp_path / "a@x.com.gz")
        assert ContentStore(str(tmp_path)).exists("a@x.com")

    def test_directory_does_not_count(self, tmp_path):
        """Test a nested label directory beside the entries is not an existing entry."""
        (tmp_path / "2023").mkdir()
        store = ContentStore(str(tmp_path), COMPRESSION_NONE)
        assert not store.exists("2023")
        assert store.locate("2023") is None


class TestMaterialize:
    def test_gzip_round_trip(self, tmp_path):
        """Test the stored .gz entry decompresses to the raw message."""
        raw = b"Message-ID: <a@x.com>\r\n\r\nHello"
        store = ContentStore(str(tmp_path))

        path = store.materialize("a@x.com", raw)

        assert path == str(tmp_path / "a@x.com.gz")
        with gzip.open(path, "rb") as f:
            assert f.read() == raw

    def test_uncompressed_write(self, tmp_path):
        raw = b"Hello"
        path = ContentStore(str(tmp_path), COMPRESSION_NONE).materialize("a@x.com", raw)
        assert (tmp_path / "a@x.com").read_bytes() == raw
        assert path == str(tmp_path / "a@x.com")

    def test_existing_entry_raises(self, tmp_path):
        """Test materializing over an existing entry is refused."""
        store = ContentStore(str(tmp_path))
        store.materialize("a@x.com", b"one")

        with pytest.raises(FileExistsError):
            store.materialize("a@x.com", b"two")

    def test_failed_write_leaves_no_file(self, tmp_path):
        """Test an error during the write leaves neither the entry nor a temp file."""
        store = ContentStore(str(tmp_path))

        with patch.object(content_store.os, "replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError, match="disk full"):
                store.materialize("a@x.com", b"raw")

        assert os.listdir(tmp_path) == []
        assert not store.exists("a@x.com")

    def test_interrupted_write_leaves_no_file(self, tmp_path):
        """Test a KeyboardInterrupt mid-write cleans up the temp file too."""
        store = ContentStore(str(tmp_path), COMPRESSION_NONE)

        with patch.object(content_store.os, "chmod", side_effect=KeyboardInterrupt):
            with pytest.raises(KeyboardInterrupt):
                store.materialize("a@x.com", b"raw")

        assert os.listdir(tmp_path) == []

    def test_gzip_output_deterministic(self, tmp_path):
        """Test identical messages produce byte-identical .gz files."""
        a = ContentStore(str(tmp_path / "a"))
        b = ContentStore(str(tmp_path / "b"))
        os.makedirs(a.directory)
        os.makedirs(b.directory)

        pa = a.materialize("x@y", b"same bytes")
        pb = b.materialize("x@y", b"same bytes")

        with open(pa, "rb") as fa, open(pb, "rb") as fb:
            assert fa.read() == fb.read()
