#!/usr/bin/env python3

from __future__ import annotations

import numpy as np
from typing import Iterable, List, Optional, Tuple


def rng_from_state(random_state: Optional[int | np.random.Generator]) -> np.random.Generator:
    return random_state if isinstance(random_state, np.random.Generator) else np.random.default_rng(random_state)


def spawn_seeds(master_seed: Optional[int], n: int) -> List[int]:
    """
    Deterministic per-chunk seeds.
    Uses SeedSequence so streams are independent even if adjacent seeds.
    """
    ss = np.random.SeedSequence(master_seed)
    return [int(s.generate_state(1, dtype=np.uint32)[0]) for s in ss.spawn(n)]


def chunk_sizes(n: int, block: int) -> List[int]:
    """
    Split n into chunks of size <= block.
    """
    out = []
    while n > 0:
        k = min(block, n)
        out.append(k)
        n -= k
    return out


def upper_triangle(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """Strict upper-triangle (i < j) index pairs of an n x n matrix."""
    return np.triu_indices(n, k=1)


def group_levels(labels) -> List:
    """
    Ordered group levels for a label vector.

    Categorical labels keep all their categories (including unused ones),
    anything else uses the sorted unique labels.
    """
    cats = getattr(getattr(labels, "cat", None), "categories", None)
    if cats is None:
        cats = getattr(labels, "categories", None)
    if cats is not None:
        return list(cats)
    # NaN != NaN, so unlabelled samples drop out here
    return sorted({g for g in labels if g is not None and g == g}, key=str)


def group_comparisons(levels: List) -> Iterable[Tuple[object, object]]:
    """Within-group comparisons first, then every unordered distinct pair."""
    for g in levels:
        yield g, g
    for a in range(len(levels)):
        for b in range(a + 1, len(levels)):
            yield levels[a], levels[b]


def comparison_masks(
    codes: np.ndarray,
    iu: np.ndarray,
    ju: np.ndarray,
    n_levels: int,
) -> np.ndarray:
    """
    Boolean masks over the upper-triangle pairs, one row per comparison.

    codes[k] is the level index of sample k (-1 for unassigned samples).
    Row order matches group_comparisons().
    """
    ci = codes[iu]
    cj = codes[ju]
    rows = []
    for g in range(n_levels):
        rows.append((ci == g) & (cj == g))
    for a in range(n_levels):
        for b in range(a + 1, n_levels):
            rows.append(((ci == a) & (cj == b)) | ((ci == b) & (cj == a)))
    if not rows:
        return np.zeros((0, iu.size), dtype=bool)
    return np.vstack(rows)


def observed_rank(obs: np.ndarray, null: np.ndarray) -> np.ndarray:
    """
    Average rank (1-based) of `obs` among {obs} + null values along axis 0.

    Ties with obs share the average rank; NaN null values are ignored, so
    the rank only counts values that were actually compared.
    """
    obs = np.asarray(obs, dtype=float)
    null = np.asarray(null, dtype=float)
    less = np.sum(null < obs, axis=0)
    ties = np.sum(null == obs, axis=0)
    rank = 1.0 + less + ties / 2.0
    return np.where(np.isnan(obs), np.nan, rank)
