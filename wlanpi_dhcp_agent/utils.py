import logging
import os
import random
import time

logger = logging.getLogger(__name__)

URANDOM = "/dev/urandom"


def entropy_seed(source: str = URANDOM) -> int:
    """
    Reads a 32-bit seed from the system entropy source.
    :param source: Path of the entropy device.
    :return: The seed, or a value derived from the clock and pid if the source is unusable.
    """
    seed = 0
    try:
        with open(source, "rb") as f:
            raw = f.read(4)
        if len(raw) == 4:
            seed = int.from_bytes(raw, "little")
    except OSError as e:
        logger.warning(f"unable to open {source}: {e}")

    if seed == 0:
        now = time.time()
        usec = int((now % 1) * 1_000_000)
        seed = usec ^ (usec // 1024)
        seed ^= int(now)
        seed ^= os.getpid()
    return seed & 0xFFFFFFFF


def seed_random(source: str = URANDOM) -> int:
    """Seed the process-wide RNG used for retry backoff."""
    seed = entropy_seed(source)
    random.seed(seed)
    return seed
