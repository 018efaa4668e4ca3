"""Random password generation."""

from __future__ import annotations

__all__ = (
    "DEFAULT_LENGTH",
    "DEFAULT_SYMBOL_CHARSET",
    "PasswordSpec",
    "generate_password",
)

import secrets
import string
from dataclasses import dataclass
from typing import Any

DEFAULT_LENGTH = 40
DEFAULT_SYMBOL_CHARSET = "!@#$%&*;.:"


@dataclass
class PasswordSpec:
    """Parameters of a generated password, from a Password ``spec``."""

    length: int = DEFAULT_LENGTH
    digits: int = 0
    symbols: int = 0
    uppercase_letters: int = 0
    lowercase_letters: int = 0
    symbol_charset: str = DEFAULT_SYMBOL_CHARSET

    @classmethod
    def from_spec(cls, spec: dict[str, Any] | None) -> PasswordSpec:
        spec = spec or {}
        return cls(
            length=spec.get("length") or DEFAULT_LENGTH,
            digits=spec.get("digits") or 0,
            symbols=spec.get("symbols") or 0,
            uppercase_letters=spec.get("uppercaseLetters") or 0,
            lowercase_letters=spec.get("lowercaseLetters") or 0,
            symbol_charset=spec.get("symbolCharSet") or DEFAULT_SYMBOL_CHARSET,
        )


def generate_password(spec: PasswordSpec | None = None) -> str:
    """Generate a random password.

    The minimum number of digits, symbols, uppercase and lowercase
    letters are drawn first, the rest of the length is filled with
    letters and digits and the result is shuffled. A password is never
    shorter than the sum of the minimums.
    """
    if spec is None:
        spec = PasswordSpec()

    chars = []
    for count, alphabet in (
        (spec.symbols, spec.symbol_charset),
        (spec.digits, string.digits),
        (spec.uppercase_letters, string.ascii_uppercase),
        (spec.lowercase_letters, string.ascii_lowercase),
    ):
        chars.extend(secrets.choice(alphabet) for i in range(count))

    alphabet = string.ascii_letters + string.digits
    remaining = spec.length - len(chars)
    chars.extend(secrets.choice(alphabet) for i in range(remaining))

    # Fisher-Yates with a cryptographic source.
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]
    return "".join(chars)
