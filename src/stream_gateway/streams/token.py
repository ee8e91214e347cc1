"""Keyed, deterministic stream tokens."""

import hashlib
import hmac

from ..common.exceptions import ConfigurationError

TOKEN_BYTES = 8
TOKEN_LENGTH = TOKEN_BYTES * 2
_SEPARATOR = b":"


class TokenCodec:
    """Derives and checks access tokens bound to (resource_id, sub_index).

    A token is the first eight bytes of SHA-256 over the resource id, a
    separator, the decimal sub index and the secret, rendered as sixteen
    lowercase hex characters. Any process holding the same secret derives
    the same token, so nothing needs to be persisted.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ConfigurationError("Token secret cannot be empty")
        self._secret = secret.encode("utf-8")

    def generate(self, resource_id: str, sub_index: int) -> str:
        digest = hashlib.sha256()
        digest.update(resource_id.encode("utf-8"))
        digest.update(_SEPARATOR)
        digest.update(str(sub_index).encode("ascii"))
        digest.update(self._secret)
        return digest.digest()[:TOKEN_BYTES].hex()

    def verify(self, token: str, resource_id: str, sub_index: int) -> bool:
        """Check a candidate token in constant time.

        Returns False for anything that is not the expected token, including
        tokens of the wrong length or with non-ASCII characters.
        """
        expected = self.generate(resource_id, sub_index)
        try:
            candidate = token.encode("ascii")
        except (AttributeError, UnicodeEncodeError):
            return False
        return hmac.compare_digest(candidate, expected.encode("ascii"))
