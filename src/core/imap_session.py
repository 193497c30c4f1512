"""
IMAP Session Management

Connection config building and the read-only mailbox session used by the
mirror. The session exposes exactly the remote operations the mirror needs
(list, examine, fetch header field / UID / body, logout) on top of an
imaplib connection, one outstanding request at a time.

Every round trip first checks the run's cancellation event; once it is set
no further request is issued and SyncCancelled is raised instead.
"""

from __future__ import annotations

import re
import threading

from auth import oauth2_google
from utils import imap_common


class SyncCancelled(Exception):
    """Raised instead of issuing a request once cancellation was requested."""


_UID_PATTERN = re.compile(rb"\bUID\s+(\d+)", re.IGNORECASE)


def build_imap_conf(host, user, password, client_id=None, client_secret=None):
    """
    Build a standard IMAP connection config dict.

    If client_id is provided, acquires a Google OAuth2 token (exits on
    failure). Otherwise, builds a password-auth config.

    Returns:
        Dict with keys: host, user, password, oauth2_token, oauth2
    """
    oauth2_token = None
    oauth2_info = None

    if client_id:
        oauth2_token = oauth2_google.acquire_token_or_exit(client_id, client_secret)
        oauth2_info = {"provider": "google", "client_id": client_id, "client_secret": client_secret}

    return {
        "host": host,
        "user": user,
        "password": password,
        "oauth2_token": oauth2_token,
        "oauth2": oauth2_info,
    }


def auth_description(conf):
    """Human-readable auth method for the configuration summary."""
    if conf.get("oauth2"):
        return f"OAuth2/{conf['oauth2']['provider']} (XOAUTH2)"
    return "Basic (password)"


class MailboxSession:
    def __init__(self, conn, cancel_event=None):
        self.conn = conn
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self.unselectable = set()
        self.delimiter = imap_common.DEFAULT_DELIMITER
        self.selected = None

    def _check_cancelled(self):
        if self.cancel_event.is_set():
            raise SyncCancelled("Cancelled by user")

    def _ok(self, command, typ, data):
        if typ != "OK":
            raise RuntimeError(f"IMAP {command} failed: {typ} {data}")

    def list_mailboxes(self):
        """
        Lists all mailboxes in server order.

        Side effects: records the \\Noselect entries in `unselectable` and the
        hierarchy delimiter reported by the server in `delimiter`.
        """
        self._check_cancelled()
        typ, data = self.conn.list()
        self._ok("LIST", typ, data)

        names = []
        delimiter = None
        for entry in data:
            if not entry:
                continue
            flags, entry_delimiter, name = imap_common.parse_list_entry(entry)
            if delimiter is None and entry_delimiter:
                delimiter = entry_delimiter
            if any(f.lower() == imap_common.FLAG_NOSELECT.lower() for f in flags):
                self.unselectable.add(name)
            names.append(name)

        if delimiter:
            self.delimiter = delimiter
        return names

    def select_readonly(self, mailbox):
        """EXAMINEs `mailbox` and returns its message count."""
        self._check_cancelled()
        typ, data = self.conn.select(f'"{mailbox}"', readonly=True)
        self._ok(f"EXAMINE {mailbox}", typ, data)
        self.selected = mailbox
        try:
            return int(data[0])
        except (TypeError, ValueError, IndexError):
            return 0

    def _fetch(self, positions, parts):
        self._check_cancelled()
        message_set = imap_common.format_message_set(positions)
        typ, data = self.conn.fetch(message_set, parts)
        self._ok(f"FETCH {parts} in {self.selected}", typ, data)
        return data or []

    def fetch_header_field(self, positions, field_name):
        """
        Returns {position: header text or None} for one header field.
        Positions the server did not answer for map to None.
        """
        result = dict.fromkeys(positions)
        data = self._fetch(positions, f"(BODY.PEEK[HEADER.FIELDS ({field_name.upper()})])")
        for item in data:
            if not isinstance(item, tuple) or len(item) < 2:
                continue
            seq = imap_common.parse_fetch_sequence(item[0])
            if seq in result and item[1] is not None:
                text = item[1].decode("utf-8", errors="ignore") if isinstance(item[1], bytes) else str(item[1])
                result[seq] = text if text.strip() else None
        return result

    def fetch_unique_id(self, positions):
        """Returns {position: UID string} for the given sequence numbers."""
        result = {}
        for item in self._fetch(positions, "(UID)"):
            meta = item[0] if isinstance(item, tuple) else item
            if not isinstance(meta, bytes):
                continue
            seq = imap_common.parse_fetch_sequence(meta)
            match = _UID_PATTERN.search(meta)
            if seq is not None and match:
                result[seq] = match.group(1).decode()
        return result

    def fetch_full_body(self, positions):
        """Returns {position: raw RFC822 bytes} without setting \\Seen."""
        result = {}
        for item in self._fetch(positions, "(BODY.PEEK[])"):
            if not isinstance(item, tuple) or len(item) < 2:
                continue
            seq = imap_common.parse_fetch_sequence(item[0])
            if seq is not None and isinstance(item[1], bytes):
                result[seq] = item[1]
        return result

    def sign_off(self):
        """LOGOUT; best effort, also used after cancellation."""
        try:
            self.conn.logout()
        except Exception:
            pass  # Connection may already be closed
