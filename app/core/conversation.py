"""
Conversation addressing.

Every direct-message thread is identified by a key derived from its two
participants, so both directions of a conversation share one key.
"""
import re

from core.errors import BadRequest

SEPARATOR = "_"

# The separator must never be valid inside an identifier.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9-]+$")


def is_valid_identifier(value) -> bool:
    """Check that a user identifier has an acceptable shape."""
    return isinstance(value, str) and bool(_IDENTIFIER_RE.match(value))


def conversation_key(user_a: str, user_b: str) -> str:
    """
    Build the conversation key for an unordered pair of users.

    The identifiers are sorted lexicographically and joined with "_", so
    conversation_key(a, b) == conversation_key(b, a). A user talking to
    themselves gets "a_a".

    Raises:
        BadRequest: if either identifier is empty or contains characters
            outside [A-Za-z0-9-]
    """
    for user_id in (user_a, user_b):
        if not is_valid_identifier(user_id):
            raise BadRequest(f"Invalid user identifier: {user_id!r}")
    return SEPARATOR.join(sorted((user_a, user_b)))
