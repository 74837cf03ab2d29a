"""
Token codec for per-install capability tokens.

A token is a fixed-length random string with a recognizable marker
embedded at a fixed offset, e.g. ``A2B3C4D5OTL6E7F8``. It doubles as the
queue partition key and the bearer credential, so validation is purely
structural and its result is reduced to a boolean.
"""

import hmac
import secrets

from .config import TokenConfig, settings


# Intentionally vague: must not reveal which structural check failed
INVALID_TOKEN_ERROR = (
    "Invalid endpoint. Install or reinstall the browser extension "
    "to generate a valid webhook URL."
)


class TokenCodec:
    """
    Generates and validates tokens for one token format.

    Raises:
        ValueError: If the marker and offset do not fit in the total length
    """

    def __init__(self, config: TokenConfig = settings.token):
        self.marker = config.marker
        self.total_len = config.total_len
        self.insert_pos = config.insert_pos
        self.alphabet = config.alphabet

        self._suffix_len = self.total_len - len(self.marker) - self.insert_pos
        if self.insert_pos < 0 or self._suffix_len < 0:
            raise ValueError("Invalid token configuration: lengths don't add up")
        if not self.alphabet:
            raise ValueError("Invalid token configuration: empty alphabet")
        self._alphabet_set = frozenset(self.alphabet)

    def _random_chars(self, length: int) -> str:
        return "".join(secrets.choice(self.alphabet) for _ in range(length))

    def generate(self) -> str:
        """Generate a new token: random prefix, marker, random suffix."""
        return (
            self._random_chars(self.insert_pos)
            + self.marker
            + self._random_chars(self._suffix_len)
        )

    def validate(self, candidate: object) -> bool:
        """
        Check that ``candidate`` is a well-formed token.

        Only the length check returns early; the marker and alphabet checks
        always inspect every character.
        """
        if not isinstance(candidate, str) or len(candidate) != self.total_len:
            return False

        marker_end = self.insert_pos + len(self.marker)
        marker_ok = hmac.compare_digest(
            candidate[self.insert_pos:marker_end].encode("utf-8"),
            self.marker.encode("utf-8")
        )

        alphabet_ok = True
        for position, char in enumerate(candidate):
            if self.insert_pos <= position < marker_end:
                continue
            alphabet_ok &= char in self._alphabet_set

        return marker_ok and alphabet_ok


# Codec for the configured token format
codec = TokenCodec()


def generate_token() -> str:
    """Generate a token in the configured format."""
    return codec.generate()


def validate_token(candidate: object) -> bool:
    """Validate a token against the configured format."""
    return codec.validate(candidate)
