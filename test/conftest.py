"""
Shared pytest fixtures and utilities for imap-mirror tests.
"""

import imaplib
import os
import sys
import threading
import time
from contextlib import contextmanager

import pytest

# Ensure src/tools are in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../tools")))

from mock_imap_server import start_server_thread


def make_message(message_id=None, subject="Test", body="Hello", extra_headers=None):
    """Builds a raw RFC 5322 message; without message_id the header is omitted."""
    headers = [f"Subject: {subject}", "From: sender@example.com", "To: me@gmail.com"]
    if message_id is not None:
        headers.insert(0, f"Message-ID: <{message_id}>")
    headers.extend(extra_headers or [])
    return ("\r\n".join(headers) + "\r\n\r\n" + body + "\r\n").encode("utf-8")


class FakeMailboxSession:
    """
    In-memory stand-in for core.imap_session.MailboxSession.

    mailboxes: {name: [raw bytes, ...] or None for a \\Noselect entry}
    uids:      optional {name: [uid, ...]} (defaults to 1..N per mailbox)

    Every remote call is recorded in `calls` as (operation, mailbox, positions).
    """

    def __init__(self, mailboxes, uids=None, delimiter="/"):
        self.mailboxes = mailboxes
        self.uids = uids or {}
        self.delimiter = delimiter
        self.unselectable = set()
        self.selected = None
        self.calls = []
        self.cancel_event = threading.Event()
        self.signed_off = False

    def _check_cancelled(self):
        from core.imap_session import SyncCancelled

        if self.cancel_event.is_set():
            raise SyncCancelled("Cancelled by user")

    def list_mailboxes(self):
        self._check_cancelled()
        self.calls.append(("list", None, None))
        self.unselectable = {name for name, msgs in self.mailboxes.items() if msgs is None}
        return list(self.mailboxes)

    def select_readonly(self, mailbox):
        self._check_cancelled()
        self.calls.append(("select", mailbox, None))
        self.selected = mailbox
        return len(self.mailboxes[mailbox])

    def _message(self, position):
        return self.mailboxes[self.selected][position - 1]

    def fetch_header_field(self, positions, field_name):
        self._check_cancelled()
        self.calls.append(("header", self.selected, list(positions)))
        result = {}
        for p in positions:
            head = self._message(p).split(b"\r\n\r\n", 1)[0].decode("utf-8", errors="ignore")
            lines = [line for line in head.split("\r\n") if line.lower().startswith(field_name.lower() + ":")]
            result[p] = "\r\n".join(lines) + "\r\n" if lines else None
        return result

    def fetch_unique_id(self, positions):
        self._check_cancelled()
        self.calls.append(("uid", self.selected, list(positions)))
        uids = self.uids.get(self.selected)
        return {p: str(uids[p - 1] if uids else p) for p in positions}

    def fetch_full_body(self, positions):
        self._check_cancelled()
        self.calls.append(("body", self.selected, list(positions)))
        return {p: self._message(p) for p in positions}

    def sign_off(self):
        self.signed_off = True

    def calls_of(self, operation):
        return [c for c in self.calls if c[0] == operation]


def snapshot_tree(root):
    """{relative path: ("link", target) | ("file", bytes)} for everything under root."""
    tree = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            path = os.path.join(dirpath, name)
            rel = os.path.relpath(path, root)
            if os.path.islink(path):
                tree[rel] = ("link", os.readlink(path))
            elif os.path.isfile(path):
                with open(path, "rb") as f:
                    tree[rel] = ("file", f.read())
            else:
                tree[rel] = ("dir", None)
    return tree


@pytest.fixture
def single_mock_server():
    """
    Creates a single mock IMAP server. Returns a factory taking the initial
    folder data; the factory returns (server, port).
    """
    servers = []

    def _create(initial_data=None, delimiter="/"):
        server, port = start_server_thread(0, initial_data, delimiter)
        time.sleep(0.1)
        servers.append(server)
        return server, port

    yield _create

    for server in servers:
        server.shutdown()
        server.server_close()
        server.thread.join(timeout=2)


@contextmanager
def temp_env(env):
    original = os.environ.copy()
    os.environ.clear()
    os.environ.update(env)
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(original)


@contextmanager
def temp_argv(args):
    original = sys.argv[:]
    sys.argv = list(args)
    try:
        yield
    finally:
        sys.argv = original


@pytest.fixture(autouse=True)
def clean_sys_argv():
    """Ensure sys.argv is clean for all tests."""
    original = sys.argv[:]
    sys.argv = ["test_script.py"]
    yield
    sys.argv = original


def make_single_mock_connection(port):
    """
    Creates a mock connection function for a single server.
    """

    def mock_conn(host, user, pwd=None, oauth2_token=None):
        c = imaplib.IMAP4("localhost", port)
        c.login(user, pwd or "")
        return c

    return mock_conn


__all__ = [
    "FakeMailboxSession",
    "make_message",
    "make_single_mock_connection",
    "single_mock_server",
    "snapshot_tree",
    "temp_env",
    "temp_argv",
]
