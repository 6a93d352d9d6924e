"""
Document identifier helpers.

Document ids are qualified as "<type>:<local-id>". Generated local ids are
random v4 UUIDs rendered in the flickr base58 alphabet and left padded to a
fixed width of 22 characters, so every generated id carries 122 random bits
and contains only [a-zA-Z0-9].
"""

from __future__ import annotations

import uuid

FLICKR_BASE58 = "123456789abcdefghijkmnopqrstuvwxyzABCDEFGHJKLMNPQRSTUVWXYZ"
SHORT_UUID_LENGTH = 22
SEPARATOR = ":"


def encode_base58(number: int, alphabet: str = FLICKR_BASE58, length: int = SHORT_UUID_LENGTH) -> str:
    """Encode a non-negative integer, padded to ``length`` characters."""
    if number < 0:
        raise ValueError("cannot encode a negative number")
    base = len(alphabet)
    chars = []
    while number:
        number, digit = divmod(number, base)
        chars.append(alphabet[digit])
    encoded = "".join(reversed(chars))
    return encoded.rjust(length, alphabet[0])


def short_uuid() -> str:
    """Generate a 22 character random token."""
    return encode_base58(uuid.uuid4().int)


def qualify(type_name: str, local_id: str) -> str:
    """Build the qualified document id for a local id."""
    return f"{type_name}{SEPARATOR}{local_id}"


def split_id(doc_id: str) -> tuple[str, str]:
    """Split a qualified id into (type, local id).

    Only the first separator is significant; local ids may contain ':'.
    """
    type_name, sep, local_id = doc_id.partition(SEPARATOR)
    if not sep:
        raise ValueError(f"'{doc_id}' is not a qualified document id")
    return type_name, local_id
