"""
Content Store

Maps message identifiers to files in one directory of the mirror tree.
An entry is named after its identifier, with a ".gz" suffix when the run
stores gzip-compressed messages. Both forms are honoured when checking for
existing entries, so switching the encoding between runs never duplicates
a message.
"""

from __future__ import annotations

import gzip
import hashlib
import os
import tempfile

from core.mirror_context import COMPRESSION_GZIP, COMPRESSION_MODES

GZIP_SUFFIX = ".gz"
_TEMP_PREFIX = ".incoming-"


def content_hash(raw_message: bytes) -> str:
    """Identifier for messages without a usable Message-ID: SHA-1 of the raw bytes."""
    return hashlib.sha1(raw_message).hexdigest()


class ContentStore:
    def __init__(self, directory, compression=COMPRESSION_GZIP):
        if compression not in COMPRESSION_MODES:
            raise ValueError(f"Unknown compression mode: {compression}")
        self.directory = directory
        self.compression = compression

    def __repr__(self):
        return f"ContentStore({self.directory!r}, {self.compression!r})"

    def entry_name(self, identifier: str) -> str:
        """File name a new entry for `identifier` gets in this run's encoding."""
        if self.compression == COMPRESSION_GZIP:
            return identifier + GZIP_SUFFIX
        return identifier

    def path_for(self, name: str) -> str:
        return os.path.join(self.directory, name)

    def exists(self, identifier: str) -> bool:
        """True if a file (or a link that resolves to one) exists in either form."""
        return self.locate(identifier) is not None

    def locate(self, identifier: str) -> str | None:
        """Path of the existing entry for `identifier`, compressed form first."""
        base = self.path_for(identifier)
        for path in (base + GZIP_SUFFIX, base):
            if os.path.isfile(path):
                return path
        return None

    def locate_in_archive(self, identifier: str) -> str | None:
        """Alias of locate(), used when this store is the All Mail archive."""
        return self.locate(identifier)

    def materialize(self, identifier: str, raw_message: bytes) -> str:
        """
        Writes a new entry for `identifier` and returns its path.

        The message is written to a temporary file in the same directory and
        renamed into place once complete, so an interrupted or failed write
        never leaves a file under the identifier's name. Errors propagate.
        """
        path = self.path_for(self.entry_name(identifier))
        if os.path.lexists(path):
            raise FileExistsError(f"Entry already stored: {path}")

        fd, temp_path = tempfile.mkstemp(dir=self.directory, prefix=_TEMP_PREFIX)
        try:
            with os.fdopen(fd, "wb") as f:
                if self.compression == COMPRESSION_GZIP:
                    with gzip.GzipFile(filename="", mode="wb", fileobj=f, mtime=0) as gz:
                        gz.write(raw_message)
                else:
                    f.write(raw_message)
            os.chmod(temp_path, 0o644)
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        return path
