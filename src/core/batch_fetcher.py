"""
Batch Fetcher

One pass over one mailbox. The mailbox is examined read-only, its sequence
numbers are walked in fixed-size windows, and per window:

- identifiers are resolved (Message-ID, else UID placeholder),
- identifiers already present in the pass's store are skipped,
- in label mode, identifiers found in the archive are linked, not fetched,
- whatever is left is fetched in one request and stored.

Archive mode is a pass without a linker.
"""

from __future__ import annotations

import os

from core import identity_resolver
from core.content_store import GZIP_SUFFIX, content_hash
from core.label_linker import ensure_link
from utils import progress


def partition_windows(start, stop, size):
    """
    Splits the half-open range [start, stop) into consecutive windows of at
    most `size` numbers. The last window may be short.
    """
    if size < 1:
        raise ValueError(f"Window size must be >= 1, got {size}")
    return [list(range(lo, min(lo + size, stop))) for lo in range(start, stop, size)]


def new_pass_stats(mailbox):
    return {
        "mailbox": mailbox,
        "total": 0,
        "windows": 0,
        "skipped": 0,
        "linked": 0,
        "fetched": 0,
        "stored": 0,
    }


class BatchFetcher:
    def __init__(self, session, store, context, linker=None):
        self.session = session
        self.store = store
        self.context = context
        self.linker = linker

    @property
    def archive_mode(self) -> bool:
        return self.linker is None

    def run(self, mailbox):
        """Mirrors `mailbox` into the store. Returns the pass statistics."""
        ctx = self.context
        stats = new_pass_stats(mailbox)
        ctx.progress.reset()

        count = self.session.select_readonly(mailbox)
        stats["total"] = count
        if self.archive_mode:
            ctx.log(f"{mailbox} contains {count} mails. Downloading in blocks of {ctx.batch_size}.")

        # Sequence numbers are 1..count inclusive
        for window in partition_windows(1, count + 1, ctx.batch_size):
            self.process_window(window, stats)
            stats["windows"] += 1

        ctx.progress.finish()
        return stats

    def process_window(self, window, stats):
        ctx = self.context
        identities = identity_resolver.resolve_identities(self.session, window)

        pending = []
        for identity in identities.values():
            if self.store.exists(identity.name):
                stats["skipped"] += 1
                continue
            # UIDs are mailbox-scoped, so placeholders are never looked up in the archive
            if not self.archive_mode and not identity.fallback and self.linker.link_if_present(identity.name):
                stats["linked"] += 1
                continue
            pending.append(identity)

        # Marked before bodies arrive; a body missing from the response still counts as fetched
        ctx.progress.mark(progress.mark_for_window(len(pending), len(window)))
        if not pending:
            return

        ctx.debug(f"Will get {[i.name for i in pending]} {window[0]}..{window[-1]}")
        self.fetch_and_store(pending, stats)

    def fetch_and_store(self, pending, stats):
        ctx = self.context
        bodies = self.session.fetch_full_body([i.position for i in pending])

        for identity in pending:
            raw = bodies.get(identity.position)
            if raw is None:
                ctx.log(f"No body returned for message {identity.position} ({identity.name}), skipping")
                continue
            stats["fetched"] += 1

            if identity.fallback:
                self.store_idless(identity, raw, stats)
                continue

            ctx.debug(f"Write message {identity.name}")
            self.store.materialize(identity.name, raw)
            stats["stored"] += 1

    def store_idless(self, identity, raw, stats):
        """
        Stores a message that has no usable Message-ID under the hash of its
        body and links its UID placeholder to that entry, so the next run finds
        the placeholder and skips the message.
        """
        ctx = self.context
        digest = content_hash(raw)
        ctx.debug(f"Email without Message-ID: {identity.name} -> {digest}")

        if not self.archive_mode and self.linker.link_if_present(digest):
            stats["linked"] += 1
            target_path = self.linker.locate_in_archive(digest)
        else:
            target_path = self.store.locate(digest)
            if target_path is None:
                ctx.debug(f"Write message {digest}")
                target_path = self.store.materialize(digest, raw)
                stats["stored"] += 1

        self.link_placeholder(identity.name, target_path)

    def link_placeholder(self, placeholder, target_path):
        """Links `<uid>[.gz]` straight to the Stored Entry at `target_path`."""
        if self.linker is not None:
            self.linker.link_to(self.linker.link_name(placeholder, target_path), target_path)
            return
        name = placeholder + GZIP_SUFFIX if target_path.endswith(GZIP_SUFFIX) else placeholder
        target = os.path.relpath(target_path, self.store.directory)
        ensure_link(self.store.path_for(name), target, self.context.log_fn)
