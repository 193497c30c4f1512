"""
Mirror Run Context

The configuration and mutable run state of one mirror run, passed explicitly
to every component: where the tree lives, how entries are encoded, how large
the fetch windows are, where output goes and how cancellation is signalled.
"""

from __future__ import annotations

import os
import threading

from providers import provider_gmail
from utils import imap_common
from utils.progress import ProgressMarks

COMPRESSION_GZIP = "gzip"
COMPRESSION_NONE = "none"
COMPRESSION_MODES = (COMPRESSION_GZIP, COMPRESSION_NONE)

DEFAULT_BATCH_SIZE = 128


class MirrorContext:
    def __init__(
        self,
        workdir,
        compression=COMPRESSION_GZIP,
        batch_size=DEFAULT_BATCH_SIZE,
        overwrite_labels=False,
        archive_mailbox=None,
        verbose=False,
        log_fn=imap_common.safe_print,
        progress=None,
        cancel_event=None,
    ):
        if compression not in COMPRESSION_MODES:
            raise ValueError(f"Unknown compression mode: {compression}")
        if int(batch_size) < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self.workdir = os.path.abspath(os.path.expanduser(workdir))
        self.compression = compression
        self.batch_size = int(batch_size)
        self.overwrite_labels = overwrite_labels
        self.archive_mailbox = archive_mailbox
        self.verbose = verbose
        self.log_fn = log_fn
        self.progress = progress if progress is not None else ProgressMarks()
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()

    @property
    def archive_dir(self) -> str:
        return os.path.join(self.workdir, provider_gmail.ARCHIVE_DIRNAME)

    @property
    def labels_dir(self) -> str:
        return os.path.join(self.workdir, provider_gmail.LABELS_DIRNAME)

    def log(self, message: str) -> None:
        self.log_fn(message)

    def debug(self, message: str) -> None:
        """Trace output, only with --verbose."""
        if self.verbose:
            self.log_fn(message)
