import random
from numbers import Integral

MASK32 = 0xFFFFFFFF


class RandomSource:
    """
    Source of uniform random numbers for the optimizer. The default is
    unseeded; substitute ``XorShiftRandom`` for reproducible runs.
    """

    def __init__(self):
        self._random = random.Random()

    def random(self) -> float:
        """Return a float in [0, 1)."""
        return self._random.random()

    def uniform(self, lo: float, hi: float) -> float:
        return lo + self.random() * (hi - lo)

    def choice(self, seq):
        return seq[int(self.random() * len(seq))]


class XorShiftRandom(RandomSource):
    """32-bit xorshift generator, deterministic for a given seed."""

    def __init__(self, seed: int):
        if isinstance(seed, bool) or not isinstance(seed, Integral):
            raise ValueError(f'Seed must be an integer, got {seed!r}')
        if seed <= 0 or not seed & MASK32:
            raise ValueError(f'Seed must be a positive non-zero integer, got {seed}')
        self.state = int(seed) & MASK32

    def random(self) -> float:
        x = self.state
        x ^= (x << 13) & MASK32
        x ^= x >> 17
        x ^= (x << 5) & MASK32
        self.state = x
        return x / 4294967296
