"""
Temporary password generation for the pre-registration flow.

Secrets mix uppercase, lowercase and digits, with at least one of each so
they pass downstream strength checks. All randomness comes from an injected
source; production wiring uses ``secrets``.
"""

import secrets
import string
from typing import Optional, Protocol

from services.pre_registration_service.services.errors import InvalidLength

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits

# Glyphs that are easy to misread when typed from a text message
AMBIGUOUS = set("0O1lI")

DEFAULT_LENGTH = 12
DEFAULT_CHANNEL_LENGTH = 8
MIN_LENGTH = 3
MIN_CHANNEL_LENGTH = 4

AUDIT_MASK_CHAR = "*"
AUDIT_VISIBLE_CHARS = 4


class RandomSource(Protocol):
    def randbelow(self, exclusive_upper_bound: int) -> int: ...


class SecretsRandomSource:
    """Operating-system CSPRNG via the ``secrets`` module."""

    def randbelow(self, exclusive_upper_bound: int) -> int:
        return secrets.randbelow(exclusive_upper_bound)


def _without_ambiguous(chars: str) -> str:
    return "".join(c for c in chars if c not in AMBIGUOUS)


class PasswordGenerator:
    """
    Builds temporary secrets from uppercase, lowercase and digit classes.

    Example:
        >>> generator = PasswordGenerator()
        >>> len(generator.generate())
        12
    """

    def __init__(self, source: Optional[RandomSource] = None):
        self._source = source or SecretsRandomSource()

    def generate(self, length: int = DEFAULT_LENGTH) -> str:
        """
        Generate a primary temporary secret.

        Raises:
            InvalidLength: if length < 3
        """
        if length < MIN_LENGTH:
            raise InvalidLength(length, MIN_LENGTH)
        return self._build(length, (UPPERCASE, LOWERCASE, DIGITS))

    def generate_channel_friendly(self, length: int = DEFAULT_CHANNEL_LENGTH) -> str:
        """
        Generate a shorter secret for text-message delivery.

        Ambiguous glyphs (0/O, 1/l/I) are left out since the member types
        the secret from a phone screen.

        Raises:
            InvalidLength: if length < 4
        """
        if length < MIN_CHANNEL_LENGTH:
            raise InvalidLength(length, MIN_CHANNEL_LENGTH)
        classes = tuple(_without_ambiguous(c) for c in (UPPERCASE, LOWERCASE, DIGITS))
        return self._build(length, classes)

    def _choice(self, chars: str) -> str:
        return chars[self._source.randbelow(len(chars))]

    def _build(self, length: int, classes: tuple[str, ...]) -> str:
        alphabet = "".join(classes)
        chars = [self._choice(c) for c in classes]
        chars.extend(self._choice(alphabet) for _ in range(length - len(chars)))
        self._shuffle(chars)
        return "".join(chars)

    def _shuffle(self, chars: list[str]) -> None:
        # Fisher-Yates
        for i in range(len(chars) - 1, 0, -1):
            j = self._source.randbelow(i + 1)
            chars[i], chars[j] = chars[j], chars[i]


def format_secret_for_audit(secret: str) -> str:
    """
    Mask a secret for logs and admin summaries.

    Only the last 4 characters stay readable:
    "A1bC2dEf3gH4" -> "********3gH4". Secrets of 4 characters or fewer are
    fully masked.
    """
    if len(secret) <= AUDIT_VISIBLE_CHARS:
        return AUDIT_MASK_CHAR * AUDIT_VISIBLE_CHARS
    hidden = len(secret) - AUDIT_VISIBLE_CHARS
    return AUDIT_MASK_CHAR * hidden + secret[-AUDIT_VISIBLE_CHARS:]
