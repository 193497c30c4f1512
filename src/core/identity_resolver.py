"""
Identity Resolver

Turns a window of sequence numbers into message identifiers in at most two
round trips:

1. Fetch the Message-ID header of every position. A well-formed value
   becomes the identifier after path separators are escaped.
2. Fetch the UID of just the positions left over. The UID is a placeholder
   for this pass; the real identifier of such a message is the hash of its
   body, computed when the body is fetched.
"""

from __future__ import annotations

import os
import re
from typing import NamedTuple

MESSAGE_ID_FIELD = "Message-ID"

# Longest escaped Message-ID still usable as a file name (255 minus suffixes)
MAX_IDENTIFIER_BYTES = 240

_MESSAGE_ID_PATTERN = re.compile(r"^Message-ID:\s+<?(\S+@[^\s>]+)>?\s*$", re.IGNORECASE | re.MULTILINE)
_SEPARATORS = {"/", os.sep} | ({os.altsep} if os.altsep else set())
ESCAPE_CHAR = "_"


class Identity(NamedTuple):
    name: str
    position: int
    fallback: bool = False


def escape_identifier(value: str) -> str:
    """Replaces path separators so the identifier is a single file name segment."""
    for sep in _SEPARATORS:
        value = value.replace(sep, ESCAPE_CHAR)
    return value


def parse_message_id(header_text):
    """
    Extracts the escaped Message-ID from a fetched header block, or None when
    the header is missing, malformed or too long to be a file name.
    """
    if not header_text:
        return None
    match = _MESSAGE_ID_PATTERN.search(header_text)
    if not match:
        return None
    identifier = escape_identifier(match.group(1))
    if len(identifier.encode("utf-8")) > MAX_IDENTIFIER_BYTES:
        return None
    return identifier


def resolve_identities(session, positions):
    """
    Resolves identifiers for `positions` of the selected mailbox.

    Returns {identifier: Identity}. Fallback identities carry the UID as name
    and fallback=True. When two positions share an identifier the first wins.
    """
    identities = {}
    if not positions:
        return identities

    headers = session.fetch_header_field(positions, MESSAGE_ID_FIELD)

    idless = []
    for position in positions:
        identifier = parse_message_id(headers.get(position))
        if identifier is None:
            idless.append(position)
        elif identifier not in identities:
            identities[identifier] = Identity(identifier, position)

    if idless:
        uids = session.fetch_unique_id(idless)
        for position in idless:
            uid = uids.get(position)
            if uid is None:
                continue
            identities.setdefault(uid, Identity(uid, position, True))

    return identities
