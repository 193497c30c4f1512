"""
Gmail-Specific IMAP Utilities

Constants and functions specific to Gmail/Google Workspace IMAP implementation:
which mailbox is the All Mail archive, which entry is the non-selectable
umbrella over the system mailboxes, and how label names map to local paths.
"""

# Accounts created in the UK and Germany still use "[Google Mail]"
GMAIL_UMBRELLA = "[Gmail]"
GOOGLE_MAIL_UMBRELLA = "[Google Mail]"

GMAIL_ALL_MAIL = "[Gmail]/All Mail"
GOOGLE_MAIL_ALL_MAIL = "[Google Mail]/All Mail"

ARCHIVE_CANDIDATES = (GMAIL_ALL_MAIL, GOOGLE_MAIL_ALL_MAIL)

# Local directory names
ARCHIVE_DIRNAME = "All Mail"
LABELS_DIRNAME = "labels"

# Label directories that legitimately hold real files: messages in Trash/Bin
# are not part of All Mail, so they are stored rather than linked.
TRASH_LABEL_DIRS = ("Trash", "Bin")


def find_archive_mailbox(mailboxes, preferred=None):
    """
    Returns the archive mailbox name from a LIST result, or None.

    A preferred (configured) name wins when present; otherwise the first known
    All Mail spelling found in the listing is used.
    """
    if preferred:
        return preferred if preferred in mailboxes else None
    for candidate in ARCHIVE_CANDIDATES:
        if candidate in mailboxes:
            return candidate
    return None


def umbrella_for(archive_mailbox, delimiter="/"):
    """The parent entry of the archive mailbox ("[Gmail]/All Mail" -> "[Gmail]")."""
    if delimiter and delimiter in archive_mailbox:
        return archive_mailbox.rsplit(delimiter, 1)[0]
    return None


def label_mailboxes(mailboxes, archive_mailbox, unselectable=(), delimiter="/"):
    """
    Filters a LIST result down to the label mailboxes, in listing order.
    Drops the archive itself, its umbrella entry and any \\Noselect entry.
    """
    umbrella = umbrella_for(archive_mailbox, delimiter)
    excluded = {archive_mailbox, GMAIL_UMBRELLA, GOOGLE_MAIL_UMBRELLA}
    if umbrella:
        excluded.add(umbrella)
    return [m for m in mailboxes if m not in excluded and m not in unselectable]


def label_path_parts(label, archive_mailbox, delimiter="/"):
    """
    Converts a label mailbox name into local path segments under labels/.

    "[Gmail]/Sent Mail" -> ["Sent Mail"]
    "Work/Clients/ACME"  -> ["Work", "Clients", "ACME"]
    """
    umbrella = umbrella_for(archive_mailbox, delimiter)
    name = label
    for prefix in filter(None, (umbrella, GMAIL_UMBRELLA, GOOGLE_MAIL_UMBRELLA)):
        if delimiter and name.startswith(prefix + delimiter):
            name = name[len(prefix) + len(delimiter) :]
            break

    parts = name.split(delimiter) if delimiter else [name]
    # "." and ".." would escape the labels/ tree
    return [p for p in parts if p and p not in (".", "..")]
