"""
Secret Generation
=================
High-entropy header-safe secrets.
"""

import secrets
import string

# Unreserved URI characters: safe in headers, URLs and shell-free configs
PUNCTUATION = "-_.~"
ALPHABET = string.ascii_letters + string.digits + PUNCTUATION


def generate_secret(length: int = 64) -> str:
    """
    Generate a cryptographically secure secret.

    Every character class (lower, upper, digit, punctuation) is represented.
    """
    if length < 4:
        raise ValueError("Secret length must be at least 4")
    while True:
        value = "".join(secrets.choice(ALPHABET) for _ in range(length))
        if (
            any(c.islower() for c in value)
            and any(c.isupper() for c in value)
            and any(c.isdigit() for c in value)
            and any(c in PUNCTUATION for c in value)
        ):
            return value
