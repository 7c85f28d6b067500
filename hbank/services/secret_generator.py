"""Cryptographically secure codes and secrets.

Nothing here hashes; callers hash before storing anything used for
authentication.
"""

import os
import secrets

from hbank.services.exceptions import EntropyUnavailableError

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"


def assert_available_prng() -> None:
    """Abort startup if the OS random source cannot be read."""
    try:
        data = os.urandom(1)
    except (NotImplementedError, OSError) as e:
        raise EntropyUnavailableError(f"Secure random source is unavailable: {e!r}") from e
    if len(data) != 1:
        raise EntropyUnavailableError("Secure random source returned no data")


def random_code(length: int) -> str:
    """Random string drawn uniformly from the 62-symbol alphanumeric alphabet."""
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def random_bytes(length: int) -> bytes:
    return secrets.token_bytes(length)


def random_hex(length: int) -> str:
    """Hex string of ``length`` random bytes (``2 * length`` characters)."""
    return random_bytes(length).hex()
