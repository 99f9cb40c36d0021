"""Secret generation and keyed hashing for one-time action tokens.

Only the HMAC of a token is ever stored. Presenting a token means recomputing
its HMAC with the server secret and comparing against the stored value in
constant time.
"""

import base64
import binascii
import hashlib
import hmac
import secrets

DEFAULT_SECRET_BYTES = 32
MIN_SECRET_BYTES = 16


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')


def _b64url_decode(value: str) -> bytes:
    padding = '=' * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


class TokenCodec:
    """Generates raw token secrets and derives their verifiable hashes."""

    def __init__(self, server_secret: str):
        if not server_secret:
            raise ValueError('server_secret must not be empty')
        self._server_secret = server_secret.encode('utf-8')

    @staticmethod
    def generate_secret(byte_length: int = DEFAULT_SECRET_BYTES) -> str:
        """Generate a URL-safe secret from ``byte_length`` random bytes.

        Args:
            byte_length: Number of random bytes; at least 16 (128 bits)

        Returns:
            str: base64url-encoded secret without padding
        """
        if byte_length < MIN_SECRET_BYTES:
            raise ValueError(
                f'Token secrets need at least {MIN_SECRET_BYTES} bytes of entropy'
            )
        return secrets.token_urlsafe(byte_length)

    def derive_hash(self, raw: str) -> str:
        """HMAC-SHA-256 of ``raw`` under the server secret, base64url-encoded."""
        digest = hmac.new(self._server_secret, raw.encode('utf-8'), hashlib.sha256)
        return _b64url_encode(digest.digest())

    @staticmethod
    def verify(stored_hash: str, candidate_hash: str) -> bool:
        """Compare two encoded hashes in constant time.

        Hashes of different decoded length, or values that are not valid
        base64url, never match.
        """
        try:
            stored = _b64url_decode(stored_hash)
            candidate = _b64url_decode(candidate_hash)
        except (binascii.Error, ValueError):
            return False
        if len(stored) != len(candidate):
            return False
        return hmac.compare_digest(stored, candidate)

    def matches(self, stored_hash: str, raw: str) -> bool:
        return self.verify(stored_hash, self.derive_hash(raw))
