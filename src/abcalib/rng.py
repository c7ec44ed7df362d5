"""
Random Stream Module

Reproducible random-number streams for nested, parallel resampling.

Every component receives an explicit :class:`RandomStream` handle instead of
drawing from numpy's global state. A stream is identified by a seed and a
jump-capable bit generator; sub-stream ``i`` is the base generator advanced by
``i`` jumps, so the draws of worker ``i`` depend only on ``(seed, algorithm,
i)`` and not on how many workers run or in which order they finish.

:func:`isolated_seed` additionally saves numpy's legacy global state, seeds it
(always as MT19937) for the duration of the block and restores it on exit,
so code that still calls ``np.random.*`` inside the block is reproducible and
cannot leak state to the caller.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, TypeVar

import numpy as np

from .exceptions import RandomStreamError

T = TypeVar('T')

SUPPORTED_ALGORITHMS = {
    'PCG64': np.random.PCG64,
    'PCG64DXSM': np.random.PCG64DXSM,
    'Philox': np.random.Philox,
    'MT19937': np.random.MT19937,
}


def _validate_seed(seed) -> int:
    if isinstance(seed, (bool, np.bool_)) or not isinstance(seed, (int, np.integer)):
        raise RandomStreamError(f"seed must be a non-negative integer, got {seed!r}")
    if seed < 0:
        raise RandomStreamError(f"seed must be a non-negative integer, got {seed}")
    return int(seed)


def _bit_generator_class(algorithm: str):
    try:
        return SUPPORTED_ALGORITHMS[algorithm]
    except KeyError:
        raise RandomStreamError(
            f"Unsupported stream algorithm '{algorithm}'. "
            f"Must be one of: {sorted(SUPPORTED_ALGORITHMS)}"
        ) from None


@dataclass(frozen=True)
class RandomStream:
    """
    Seeded, jump-capable stream handle.

    Parameters
    ----------
    seed : int
        Non-negative integer seed.
    algorithm : str, default 'PCG64'
        Name of a numpy bit generator in ``SUPPORTED_ALGORITHMS``.

    Raises
    ------
    RandomStreamError
        If the seed or algorithm is invalid.
    """
    seed: int
    algorithm: str = 'PCG64'

    def __post_init__(self):
        object.__setattr__(self, 'seed', _validate_seed(self.seed))
        _bit_generator_class(self.algorithm)

    def substream(self, index: int) -> np.random.Generator:
        """Generator for worker ``index``: the base stream jumped ``index`` times."""
        if index < 0:
            raise RandomStreamError(f"substream index must be non-negative, got {index}")
        bit_generator = _bit_generator_class(self.algorithm)(self.seed)
        if index:
            bit_generator = bit_generator.jumped(int(index))
        return np.random.Generator(bit_generator)

    def generator(self) -> np.random.Generator:
        """Generator on the un-jumped base stream."""
        return self.substream(0)


@contextmanager
def isolated_seed(seed: int, algorithm: str = 'PCG64') -> Iterator[RandomStream]:
    """
    Run a block under its own random stream.

    Saves numpy's legacy global state, seeds it with ``seed`` and yields a
    :class:`RandomStream`. The saved global state is restored on every exit
    path, including exceptions.

    ``algorithm`` selects the bit generator of the yielded handle only. The
    legacy global state is always an MT19937 ``RandomState`` (numpy accepts
    no other generator there) seeded with ``seed % 2**32``, so ``np.random.*``
    calls inside the block draw the same sequence for every ``algorithm``.

    Examples
    --------
    >>> with isolated_seed(13) as stream:
    ...     draws = stream.generator().normal(size=3)
    """
    stream = RandomStream(seed, algorithm)
    saved = np.random.get_state()
    try:
        np.random.seed(stream.seed % 2**32)
        yield stream
    finally:
        np.random.set_state(saved)


def with_isolated_seed(
    seed: int,
    body: Callable[[RandomStream], T],
    algorithm: str = 'PCG64',
) -> T:
    """Call ``body(stream)`` inside :func:`isolated_seed` and return its result."""
    with isolated_seed(seed, algorithm) as stream:
        return body(stream)
