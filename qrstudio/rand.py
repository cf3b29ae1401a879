"""Per-cell deterministic randomness keyed by (seed, purpose, x, y)."""

import hashlib

_SCALE = float(1 << 64)


def cell_random(seed: int, tag: str, x: int, y: int) -> float:
    """Uniform value in [0, 1) that depends only on its four arguments.

    Every random decision in a render goes through here instead of a shared
    generator, so one cell's outcome never depends on how many draws other
    cells made before it.
    """
    key = f"{seed}|{tag}|{x}|{y}".encode()
    digest = hashlib.blake2b(key, digest_size=8).digest()
    return int.from_bytes(digest, "big") / _SCALE
