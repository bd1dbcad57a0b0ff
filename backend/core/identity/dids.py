"""
DID syntax helpers.

Only the generic `did:<method>:<method-specific-id>` shape is checked here.
Resolving a DID document is the identity service's job.
"""
import re

# method-name: lowercase letters/digits; method-specific-id: idchars and
# pct-encoded octets, optionally colon separated
DID_PATTERN = re.compile(
    r"^did:[a-z0-9]+:(?:[A-Za-z0-9._-]|%[0-9A-Fa-f]{2})*"
    r"(?::(?:[A-Za-z0-9._-]|%[0-9A-Fa-f]{2})*)*"
    r"(?:[A-Za-z0-9._-]|%[0-9A-Fa-f]{2})$"
)

MAX_DID_LENGTH = 2048


def is_valid_did(value: str) -> bool:
    """Check that value looks like a DID."""
    if not value or len(value) > MAX_DID_LENGTH:
        return False
    return DID_PATTERN.fullmatch(value) is not None


def short_did(did: str) -> str:
    """Truncated DID for log lines."""
    if len(did) <= 32:
        return did
    return f"{did[:24]}...{did[-6:]}"
