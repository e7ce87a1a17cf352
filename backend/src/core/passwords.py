"""Password hashing with bcrypt, run off the event loop."""
import asyncio

import bcrypt

# bcrypt only consumes the first 72 bytes of its input
BCRYPT_MAX_BYTES = 72

# Hashes checked when no user matched, so a miss costs the same as a wrong password.
# Keyed by work factor.
_dummy_hashes: dict[int, str] = {}


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def _hash_sync(password: str, rounds: int) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _verify_sync(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


async def hash_password(password: str, rounds: int) -> str:
    """
    Hash a password with a fixed bcrypt work factor.

    Hashing is CPU-bound, so it runs in a worker thread to keep the event loop
    serving other requests.
    """
    return await asyncio.to_thread(_hash_sync, password, rounds)


async def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password against a stored bcrypt hash."""
    return await asyncio.to_thread(_verify_sync, password, password_hash)


async def burn_password_check(password: str, rounds: int) -> None:
    """Spend a verification's worth of work when there is no user to check against."""
    if rounds not in _dummy_hashes:
        _dummy_hashes[rounds] = await hash_password("timing-equalizer", rounds)
    await verify_password(password, _dummy_hashes[rounds])
