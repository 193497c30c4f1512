"""
IMAP Common Utilities

Shared functionality for the mirror: console output, connection setup,
LIST response parsing and message-set formatting.
"""

from __future__ import annotations

import imaplib
import re
import threading
import urllib.parse
from importlib import metadata

PACKAGE_NAME = "imap-mirror"

# IMAP LIST attribute marking entries that cannot be selected (e.g. "[Gmail]")
FLAG_NOSELECT = "\\Noselect"

DEFAULT_DELIMITER = "/"

_print_lock = threading.Lock()

# (flags) "delimiter" name   |   (flags) NIL name
_LIST_PATTERN = re.compile(r'^\((?P<flags>[^)]*)\)\s+(?:"(?P<delimiter>[^"]*)"|NIL)\s+(?P<name>.+)$', re.IGNORECASE)
_FETCH_SEQ_PATTERN = re.compile(rb"^\s*(\d+)\s+\(")


def safe_print(message: str) -> None:
    """Thread-safe print with short thread names for logs."""
    t_name = threading.current_thread().name
    short_name = t_name.replace("ThreadPoolExecutor-", "T-").replace("MainThread", "MAIN")
    with _print_lock:
        print(f"[{short_name}] {message}")


def get_version() -> str:
    """Installed package version, or "unknown" when running from a checkout."""
    try:
        return metadata.version(PACKAGE_NAME)
    except metadata.PackageNotFoundError:
        return "unknown"


def get_imap_connection_from_conf(conf):
    """
    Establishes an IMAP connection using a conf dict.

    conf dict structure:
        {
            "host": str,
            "user": str,
            "password": str or None,
            "oauth2_token": str or None,
        }
    """
    return get_imap_connection(conf["host"], conf["user"], conf.get("password"), conf.get("oauth2_token"))


def resolve_host(host):
    """
    Splits a host setting into (hostname, port, use_ssl).

    Accepts a bare hostname (TLS on the default port) or a URL with an
    imap:// (plain) or imaps:// (TLS) scheme and an optional port.
    """
    if "://" not in host:
        return host, None, True

    parsed = urllib.parse.urlparse(host)
    scheme = parsed.scheme.lower()
    if not scheme or not parsed.hostname:
        raise ValueError("Invalid IMAP host")
    if scheme in {"imap", "tcp"}:
        use_ssl = False
    elif scheme in {"imaps", "imap+ssl", "ssl"}:
        use_ssl = True
    else:
        raise ValueError(f"Unsupported IMAP scheme: {scheme}")
    return parsed.hostname, parsed.port, use_ssl


def get_imap_connection(host, user, password=None, oauth2_token=None):
    """
    Opens a connection to the IMAP server and logs in.
    Supports both basic auth (password) and OAuth 2.0 (XOAUTH2).
    Returns the connection object or None if failed.
    """
    if not host or not user:
        print(f"Error: Invalid credentials for {host}")
        return None

    if not password and not oauth2_token:
        print(f"Error: Either password or oauth2_token is required for {host}")
        return None

    try:
        hostname, port, use_ssl = resolve_host(host)
        conn_class = imaplib.IMAP4_SSL if use_ssl else imaplib.IMAP4
        conn = conn_class(hostname, port) if port else conn_class(hostname)
        if oauth2_token:
            auth_string = f"user={user}\x01auth=Bearer {oauth2_token}\x01\x01"
            conn.authenticate("XOAUTH2", lambda _: auth_string.encode())
        else:
            conn.login(user, password)
        return conn
    except (OSError, ValueError, imaplib.IMAP4.error) as e:
        print(f"Connection error to {host}: {e}")
        return None


def parse_list_entry(entry):
    """
    Parses one LIST response line.

    Returns a tuple (flags, delimiter, name) where flags is a list of
    attribute strings and delimiter is None for a NIL hierarchy delimiter.
    """
    if isinstance(entry, bytes):
        entry = entry.decode("utf-8", errors="ignore")

    match = _LIST_PATTERN.match(entry.strip())
    if not match:
        # Fallback: take the last part
        return [], None, entry.split()[-1].strip('"')

    name = match.group("name").strip()
    if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
        name = name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return match.group("flags").split(), match.group("delimiter"), name


def format_message_set(positions):
    """
    Formats sequence numbers as a compact IMAP message set.

    [1, 2, 3, 7, 9, 10] -> "1:3,7,9:10"
    """
    numbers = sorted(set(int(p) for p in positions))
    if not numbers:
        raise ValueError("Empty message set")

    ranges = []
    start = prev = numbers[0]
    for n in numbers[1:]:
        if n == prev + 1:
            prev = n
            continue
        ranges.append((start, prev))
        start = prev = n
    ranges.append((start, prev))

    return ",".join(str(a) if a == b else f"{a}:{b}" for a, b in ranges)


def parse_fetch_sequence(meta):
    """
    Extracts the message sequence number from a FETCH response prefix,
    e.g. b'12 (UID 4711 BODY[] {512}' -> 12. Returns None if absent.
    """
    if isinstance(meta, str):
        meta = meta.encode("utf-8", errors="ignore")
    match = _FETCH_SEQ_PATTERN.match(meta or b"")
    return int(match.group(1)) if match else None
