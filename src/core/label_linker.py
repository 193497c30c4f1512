"""
Label Linker

Keeps a label directory as a tree of relative symlinks into the All Mail
archive. A message already archived is never fetched again for a label;
its link is created, or repaired when it points somewhere else.
"""

from __future__ import annotations

import os

from core.content_store import GZIP_SUFFIX
from utils import imap_common

LINK_CREATED = "created"
LINK_PRESENT = "present"
LINK_REPAIRED = "repaired"
LINK_CONFLICT = "conflict"


def ensure_link(link_path, target, log_fn=imap_common.safe_print):
    """
    Makes `link_path` a symlink to `target`.

    Returns one of LINK_CREATED, LINK_PRESENT, LINK_REPAIRED or LINK_CONFLICT.
    A regular file already at `link_path` is never touched (conflict).
    """
    if os.path.islink(link_path):
        if os.readlink(link_path) == target:
            return LINK_PRESENT
        # Swap in the new link with a rename so the name never disappears
        temp_link = f"{link_path}.relink"
        if os.path.lexists(temp_link):
            os.unlink(temp_link)
        os.symlink(target, temp_link)
        os.replace(temp_link, link_path)
        return LINK_REPAIRED

    if os.path.lexists(link_path):
        log_fn(f"File already exists: {link_path}, but doesn't point to {target}")
        return LINK_CONFLICT

    os.symlink(target, link_path)
    return LINK_CREATED


class LabelLinker:
    def __init__(self, archive_store, label_dir, log_fn=imap_common.safe_print):
        self.archive_store = archive_store
        self.label_dir = label_dir
        self.log_fn = log_fn
        self.results = {LINK_CREATED: 0, LINK_PRESENT: 0, LINK_REPAIRED: 0, LINK_CONFLICT: 0}

    def locate_in_archive(self, identifier: str) -> str | None:
        return self.archive_store.locate_in_archive(identifier)

    def link_target(self, archive_path: str) -> str:
        """Archive entry path as seen from the label directory, e.g. ../../All Mail/x.gz"""
        return os.path.relpath(archive_path, self.label_dir)

    def link_name(self, identifier: str, archive_path: str) -> str:
        # The link mirrors the storage form of its target
        if archive_path.endswith(GZIP_SUFFIX):
            return identifier + GZIP_SUFFIX
        return identifier

    def link_to(self, name: str, archive_path: str) -> str:
        """Links `name` in the label directory to an archive entry; returns the ensure_link result."""
        result = ensure_link(os.path.join(self.label_dir, name), self.link_target(archive_path), self.log_fn)
        self.results[result] += 1
        return result

    def link_if_present(self, identifier: str) -> bool:
        """
        Links `identifier` into the label directory if the archive holds it.

        Returns False when the archive has no entry (the caller must fetch the
        message); True otherwise, including when a conflicting file blocks the
        link and was left alone.
        """
        archive_path = self.locate_in_archive(identifier)
        if archive_path is None:
            return False
        self.link_to(self.link_name(identifier, archive_path), archive_path)
        return True
