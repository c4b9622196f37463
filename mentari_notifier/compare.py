"""
Compare module for the Mentari Notifier pipeline.

This module handles change detection between runs: a short deterministic
fingerprint of the outgoing message, and the check against the fingerprint
of the last delivered notification.

The fingerprint is an equality oracle for deduplication only. It is a
32-bit rolling hash and offers no collision resistance.
"""

from typing import Optional

from mentari_notifier.utils import get_logger


logger = get_logger("compare")

FINGERPRINT_SEPARATOR = "|"


def _to_int32(value: int) -> int:
    """Wrap an integer to the signed 32-bit range."""
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def compute_fingerprint(text: str) -> str:
    """
    Compute a deterministic fingerprint of a string.

    Hashes the UTF-16 code units of the text with h = h * 31 + unit,
    wrapped to 32 bits, so the token matches the one the portal page
    produces for the same message.

    Args:
        text: Input string.

    Returns:
        Signed 32-bit hash as a decimal string.
    """
    encoded = text.encode("utf-16-le", errors="surrogatepass")
    value = 0

    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        value = _to_int32((value << 5) - value + unit)

    return str(value)


def build_fingerprint(phone: str, message: str) -> str:
    """
    Fingerprint a message bound to its recipient.

    Args:
        phone: Recipient contact handle.
        message: Formatted notification text.

    Returns:
        Fingerprint of "phone|message".
    """
    return compute_fingerprint(FINGERPRINT_SEPARATOR.join([phone, message]))


def is_duplicate(fingerprint: str, last_fingerprint: Optional[str]) -> bool:
    """
    Check whether a notification was already delivered.

    Args:
        fingerprint: Fingerprint of the candidate notification.
        last_fingerprint: Fingerprint of the last delivered one, or None.

    Returns:
        True if both fingerprints are equal.
    """
    duplicate = last_fingerprint is not None and fingerprint == last_fingerprint

    if duplicate:
        logger.debug(f"Fingerprint {fingerprint} matches last delivery")

    return duplicate
