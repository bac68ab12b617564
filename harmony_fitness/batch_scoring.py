"""Score several independently generated populations.

Each candidate is a fresh :class:`~harmony_fitness.population.LinePopulation`
built from the same melody with one harmony line per pitch range.  Candidates
are generated once, frozen and scored; nothing is selected, recombined or
refined, so the results come back in candidate order.

Work can be spread over worker processes via
:class:`concurrent.futures.ProcessPoolExecutor`, since every candidate is
independent of the others.

Example
-------
>>> results = score_candidates(melody, [(48, 60), (36, 48)], 4, seed=1)
>>> [round(r.average_fitness, 2) for r in results]
[0.41, 0.38, 0.52, 0.47]

Design Notes
------------
With a ``seed`` candidate ``i`` uses ``random.Random(seed + i)`` so results
do not depend on the number of workers.  Without one each candidate gets an
unseeded generator.
"""

from __future__ import annotations

import os
import random
from concurrent.futures import ProcessPoolExecutor
from typing import List, NamedTuple, Optional, Sequence, Tuple

from .line import Line
from .note import validate_pitch_bounds
from .population import NORMALIZATIONS, LinePopulation

__all__ = ["CandidateScore", "build_candidate", "score_candidates"]


class CandidateScore(NamedTuple):
    """Scored candidate population."""

    index: int
    population: LinePopulation
    average_fitness: float


def build_candidate(
    melody: Line,
    bounds: Sequence[Tuple[int, int]],
    rng: random.Random,
    normalization: str = "lines",
) -> LinePopulation:
    """Return a frozen population with one harmony line per ``bounds`` entry."""

    population = LinePopulation(melody, normalization=normalization)
    for min_pitch, max_pitch in bounds:
        population.add_harmony_line(min_pitch, max_pitch, rng)
    population.freeze()
    return population


def _score_single(args) -> CandidateScore:
    """Wrapper used by worker processes to build and score one candidate."""

    index, melody, bounds, seed, normalization = args
    rng = random.Random(seed)
    population = build_candidate(melody, bounds, rng, normalization)
    return CandidateScore(index, population, population.average_fitness())


def score_candidates(
    melody: Line,
    bounds: Sequence[Tuple[int, int]],
    count: int,
    *,
    seed: Optional[int] = None,
    workers: Optional[int] = None,
    normalization: str = "lines",
) -> List[CandidateScore]:
    """Generate and score ``count`` candidate populations.

    Parameters
    ----------
    melody:
        Melody line shared by every candidate. It is never modified.
    bounds:
        ``(min_pitch, max_pitch)`` of each harmony line to derive.
    count:
        Number of candidates.
    seed:
        Base seed; candidate ``i`` is seeded with ``seed + i``.
    workers:
        Number of worker processes. ``None`` uses the CPU count and ``1``
        runs serially in the calling process.
    normalization:
        Fitness normalisation passed to each population.

    Returns
    -------
    List[CandidateScore]
        One entry per candidate in generation order.

    Raises
    ------
    ValueError
        If ``count`` or ``workers`` is not positive, ``bounds`` is empty or
        contains an invalid range, ``normalization`` is unknown, or the melody
        has no notes to score.
    """

    if count <= 0:
        raise ValueError("count must be positive")
    if workers is not None and workers <= 0:
        raise ValueError("workers must be positive")
    if not bounds:
        raise ValueError("bounds must contain at least one pitch range")
    for min_pitch, max_pitch in bounds:
        validate_pitch_bounds(min_pitch, max_pitch)
    if normalization not in NORMALIZATIONS:
        raise ValueError(f"normalization must be one of {', '.join(NORMALIZATIONS)}")

    jobs = [
        (i, melody, list(bounds), None if seed is None else seed + i, normalization)
        for i in range(count)
    ]
    if workers is None:
        workers = os.cpu_count() or 1
    if workers <= 1 or count == 1:
        return [_score_single(job) for job in jobs]

    with ProcessPoolExecutor(max_workers=min(workers, count)) as pool:
        futs = [pool.submit(_score_single, job) for job in jobs]
        return [f.result() for f in futs]
