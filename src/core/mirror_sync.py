"""
Mirror Sync Driver

Runs one complete mirror: the archive pass over All Mail first, then one
label pass per remaining mailbox. Label passes link to the archive instead of
downloading whatever it already holds, so every message body is transferred
at most once across all mailboxes.
"""

from __future__ import annotations

import os
import shutil

from core.batch_fetcher import BatchFetcher
from core.content_store import ContentStore
from core.label_linker import LabelLinker
from providers import provider_gmail


class ArchiveMissingError(RuntimeError):
    """The server has no All Mail archive mailbox."""


def find_unsafe_label_files(labels_dir, trash_dirs=provider_gmail.TRASH_LABEL_DIRS):
    """
    Lists regular files under `labels_dir` that wiping the directory would
    destroy: anything that is not a symlink and not inside a trash label.
    """
    unsafe = []
    if not os.path.isdir(labels_dir):
        return unsafe

    trash_paths = {os.path.join(labels_dir, name) for name in trash_dirs}
    for root, _dirs, files in os.walk(labels_dir):
        if root in trash_paths:
            continue
        for name in files:
            path = os.path.join(root, name)
            if not os.path.islink(path):
                unsafe.append(path)
    return sorted(unsafe)


def wipe_labels(context):
    """Removes the labels/ tree. All Mail is never touched."""
    if os.path.isdir(context.labels_dir):
        context.log(f"Removing existing labels directory: {context.labels_dir}")
        shutil.rmtree(context.labels_dir)


def archive_pass(session, context, archive):
    os.makedirs(context.archive_dir, exist_ok=True)
    store = ContentStore(context.archive_dir, context.compression)
    return BatchFetcher(session, store, context).run(archive), store


def label_pass(session, context, label, archive_store, path_parts):
    label_dir = os.path.join(context.labels_dir, *path_parts)
    os.makedirs(label_dir, exist_ok=True)

    store = ContentStore(label_dir, context.compression)
    linker = LabelLinker(archive_store, label_dir, context.log_fn)
    stats = BatchFetcher(session, store, context, linker).run(label)
    stats["links"] = dict(linker.results)
    return stats


def run_mirror(session, context):
    """
    Mirrors every mailbox of `session` into `context.workdir`.

    Returns a list of per-mailbox pass statistics, archive first.
    Raises ArchiveMissingError when no archive mailbox exists; SyncCancelled
    and IMAP/filesystem errors propagate unchanged.
    """
    mailboxes = session.list_mailboxes()
    archive = provider_gmail.find_archive_mailbox(mailboxes, context.archive_mailbox)
    if archive is None:
        wanted = context.archive_mailbox or " or ".join(provider_gmail.ARCHIVE_CANDIDATES)
        raise ArchiveMissingError(f"Archive mailbox not found on server: {wanted}")

    results = []
    stats, archive_store = archive_pass(session, context, archive)
    results.append(stats)

    if context.overwrite_labels:
        wipe_labels(context)
    os.makedirs(context.labels_dir, exist_ok=True)

    labels = provider_gmail.label_mailboxes(mailboxes, archive, session.unselectable, session.delimiter)
    for label in labels:
        path_parts = provider_gmail.label_path_parts(label, archive, session.delimiter)
        if not path_parts:
            context.log(f"Skipping label {label}: no usable local path")
            continue
        context.log(f"Handling label {label}")
        results.append(label_pass(session, context, label, archive_store, path_parts))

    return results


def print_summary(results, log_fn):
    log_fn("\n--- Mirror Summary ---")
    for stats in results:
        log_fn(
            f"{stats['mailbox']}: {stats['total']} messages, {stats['stored']} stored, "
            f"{stats['linked']} linked, {stats['skipped']} already present"
        )
    log_fn("----------------------")
