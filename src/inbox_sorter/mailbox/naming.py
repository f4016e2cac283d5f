"""Folder name normalisation between display form and IMAP wire form.

Servers exchange non-ASCII folder names in modified UTF-7 (RFC 3501
section 5.1.3), so ``Reçus`` travels as ``Re&AOc-us``. Some servers echo
names back undecoded and some users type them pre-encoded, so lookups
compare both forms.
"""

from __future__ import annotations

import logging

from imapclient import imap_utf7

LOGGER = logging.getLogger(__name__)


def encode_folder_name(name: str) -> str:
    """Return the wire form of a display folder name."""
    if _looks_encoded(name):
        return name
    return imap_utf7.encode(name).decode("ascii")


def decode_folder_name(raw: str | bytes) -> str:
    """Return the display form of a folder name reported by the server."""
    if isinstance(raw, str):
        if not raw.isascii():
            # Server speaks UTF8=ACCEPT and sent the name verbatim.
            return raw
        raw = raw.encode("ascii")
    try:
        return imap_utf7.decode(raw)
    except ValueError:
        LOGGER.debug("Folder name %r is not valid modified UTF-7", raw)
        return raw.decode("ascii", errors="replace")


def folder_key(name: str) -> str:
    """Case-insensitive identity used to compare folder names."""
    return decode_folder_name(name).casefold()


def same_folder(left: str, right: str) -> bool:
    """Whether two names, in display or wire form, denote the same folder."""
    if left.casefold() == right.casefold():
        return True
    return folder_key(left) == folder_key(right)


def quote_mailbox(wire_name: str) -> str:
    """Quote a wire name for use as an IMAP command argument."""
    escaped = wire_name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _looks_encoded(name: str) -> bool:
    if not name.isascii() or "&" not in name:
        return False
    decoded = decode_folder_name(name)
    if decoded == name:
        return False
    # Stray ampersands such as "R&D" may half-decode; only a clean round
    # trip counts as already encoded.
    return imap_utf7.encode(decoded).decode("ascii") == name


__all__ = [
    "decode_folder_name",
    "encode_folder_name",
    "folder_key",
    "quote_mailbox",
    "same_folder",
]
