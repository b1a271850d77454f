"""
Password hashing for temporary credentials.

bcrypt salts every hash and compares in constant time; the work factor is
configurable (12 in production).
"""

import re
from functools import lru_cache

import bcrypt

from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)

BCRYPT_DIGEST_RE = re.compile(r"^\$2[abxy]\$\d{2}\$[./A-Za-z0-9]{53}$")


class CredentialHasher:
    """
    One-way hashing and verification of temporary secrets.

    Example:
        >>> hasher = CredentialHasher(rounds=4)
        >>> digest = hasher.hash("A1bC2dEf3gH4")
        >>> hasher.verify("A1bC2dEf3gH4", digest)
        True
    """

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Hash a secret with a freshly generated salt."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(plaintext.encode(), salt).decode()

    def verify(self, plaintext: str, digest: str) -> bool:
        """
        Check a candidate against a stored digest.

        Returns False instead of raising when the digest is malformed or the
        candidate cannot be hashed.
        """
        try:
            return bcrypt.checkpw(plaintext.encode(), digest.encode())
        except ValueError as exc:
            logger.warning(
                "Could not verify secret against stored digest: %s",
                exc,
                extra={"extra_fields": {"well_formed": self.is_well_formed(digest)}},
            )
            return False

    @staticmethod
    def is_well_formed(digest: str) -> bool:
        return bool(digest) and BCRYPT_DIGEST_RE.match(digest) is not None


@lru_cache
def get_credential_hasher() -> CredentialHasher:
    """Process-wide hasher using the configured work factor."""
    return CredentialHasher(rounds=get_settings().PASSWORD_HASH_ROUNDS)
