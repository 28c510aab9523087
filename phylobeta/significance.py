#!/usr/bin/env python3
"""
significance.py

Group-level significance of a z-matrix (e.g. SESResult.obs_z).

Two procedures, both reporting one row per group ("within") and one row per
unordered pair of groups ("between"):

  permtest  : permute group labels across samples and rank the observed
              group statistic among the permuted ones.
  bootstrap : resample each group's z-values with replacement, report
              quantiles of the estimator and test the mean effect against 0.

Within-group rows use the upper triangle of the group's block only;
between-group rows use only cells that pair one sample from each group.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import norm

from phylobeta.utils import (
    comparison_masks,
    group_comparisons,
    group_levels,
    observed_rank,
    rng_from_state,
    upper_triangle,
)

STATISTICS = ("mean", "median")

# max resampled values held in memory at once during bootstrap
_BOOT_BLOCK = 2_000_000


def bh_qvalues(p) -> np.ndarray:
    """
    Benjamini–Hochberg FDR q-values (monotone).

    NaN p-values are left as NaN and are not counted as hypotheses.
    """
    p = np.asarray(p, dtype=float)
    q = np.full(p.shape, np.nan, dtype=float)
    finite_mask = np.isfinite(p)
    if not finite_mask.any():
        return q

    n = int(finite_mask.sum())

    with np.errstate(divide="ignore"):
        log_p = np.log(p[finite_mask])
    order = np.argsort(log_p, kind="mergesort")
    ranks = np.arange(1, finite_mask.sum() + 1, dtype=float)
    log_q = log_p[order] + np.log(n) - np.log(ranks)
    log_q = np.minimum.accumulate(log_q[::-1])[::-1]

    idx = np.where(finite_mask)[0]
    q[idx[order]] = np.minimum(np.exp(log_q), 1.0)
    return q


def _prepare(z_matrix, groups, samples: Optional[Sequence] = None):
    """
    Square z-values, sample labels and per-sample group codes.

    codes[k] indexes group_levels(); samples without a group get -1.
    """
    if isinstance(z_matrix, pd.DataFrame):
        if z_matrix.shape[0] != z_matrix.shape[1]:
            raise ValueError(f"z-matrix must be square, got shape {z_matrix.shape}.")
        if list(z_matrix.index) != list(z_matrix.columns):
            if set(z_matrix.index) != set(z_matrix.columns):
                raise ValueError("z-matrix row and column labels differ.")
            z_matrix = z_matrix.loc[:, z_matrix.index]
        samples = list(z_matrix.index)
        Z = z_matrix.to_numpy(dtype=float)
    else:
        Z = np.asarray(z_matrix, dtype=float)
        samples = list(samples) if samples is not None else list(range(Z.shape[0]))

    if Z.ndim != 2 or Z.shape[0] != Z.shape[1]:
        raise ValueError(f"z-matrix must be square, got shape {Z.shape}.")
    if len(samples) != Z.shape[0]:
        raise ValueError(f"{len(samples)} sample labels for a {Z.shape[0]} x {Z.shape[0]} z-matrix.")

    if isinstance(groups, pd.Series) and not isinstance(groups.index, pd.RangeIndex):
        missing = [s for s in samples if s not in groups.index]
        if missing:
            raise ValueError(f"{len(missing)} samples have no group label: {', '.join(map(str, missing[:10]))}")
        groups = groups.loc[samples]
    if len(groups) != len(samples):
        raise ValueError(f"{len(groups)} group labels for {len(samples)} samples.")

    levels = group_levels(groups)
    lookup = {g: i for i, g in enumerate(levels)}
    codes = np.array([lookup.get(g, -1) for g in np.asarray(groups, dtype=object)], dtype=np.int64)
    return Z, samples, levels, codes


def _row_frame(levels) -> pd.DataFrame:
    rows = [
        {"group_a": a, "group_b": b, "comparison": "within" if a == b else "between"}
        for a, b in group_comparisons(levels)
    ]
    return pd.DataFrame(rows, columns=["group_a", "group_b", "comparison"])


def _group_statistics(z: np.ndarray, masks: np.ndarray, statistic: str) -> Tuple[np.ndarray, np.ndarray]:
    """Statistic and number of usable values for every comparison row."""
    finite = np.isfinite(z)
    use = masks & finite
    n = use.sum(axis=1)
    if statistic == "mean":
        sums = use.astype(float) @ np.where(finite, z, 0.0)
        with np.errstate(divide="ignore", invalid="ignore"):
            stat = np.where(n > 0, sums / np.maximum(n, 1), np.nan)
    else:
        stat = np.array([np.median(z[row]) if row.any() else np.nan for row in use])
    return stat, n


def _check_statistic(statistic: str) -> None:
    if statistic not in STATISTICS:
        raise ValueError(f"Unknown statistic '{statistic}'. Choose from: {', '.join(STATISTICS)}")


def permtest(
    z_matrix,
    groups,
    permutations: int = 999,
    statistic: str = "mean",
    random_state: Optional[int | np.random.Generator] = None,
    samples: Optional[Sequence] = None,
) -> pd.DataFrame:
    """
    Permutation test of within- and between-group z-values.

    Group labels are permuted jointly across samples (group sizes are
    preserved) and the statistic recomputed for every comparison. The rank
    of the observed statistic among observed + permuted values gives
    p_lower = rank / (n + 1) and p_upper = (n + 2 - rank) / (n + 1), with n
    the number of permutations where the statistic was defined; p_value is
    the two-sided min(1, 2 * min(p_lower, p_upper)).

    Comparisons without any cells (e.g. between-group rows when every sample
    is in one group) are reported with n_pairs = 0 and NaN statistics.
    """
    _check_statistic(statistic)
    if isinstance(permutations, bool) or int(permutations) != permutations or permutations < 1:
        raise ValueError(f"permutations must be a positive integer, got {permutations!r}")
    permutations = int(permutations)

    Z, samples, levels, codes = _prepare(z_matrix, groups, samples)
    rng = rng_from_state(random_state)

    iu, ju = upper_triangle(Z.shape[0])
    z = Z[iu, ju]
    n_levels = len(levels)

    obs, n_pairs = _group_statistics(z, comparison_masks(codes, iu, ju, n_levels), statistic)

    perm_stats = np.empty((permutations, obs.size), dtype=float)
    for b in range(permutations):
        perm_codes = rng.permutation(codes)
        perm_stats[b], _ = _group_statistics(z, comparison_masks(perm_codes, iu, ju, n_levels), statistic)

    n_valid = np.isfinite(perm_stats).sum(axis=0)
    rank = observed_rank(obs, perm_stats)
    rank = np.where(n_valid > 0, rank, np.nan)
    with np.errstate(divide="ignore", invalid="ignore"):
        p_lower = rank / (n_valid + 1)
        p_upper = (n_valid + 2 - rank) / (n_valid + 1)
    p_value = np.minimum(1.0, 2.0 * np.minimum(p_lower, p_upper))

    out = _row_frame(levels)
    out["n_pairs"] = n_pairs.astype(int)
    out["statistic"] = obs
    with np.errstate(invalid="ignore"):
        out["perm_mean"] = np.array([np.nan if k == 0 else np.nanmean(col[np.isfinite(col)])
                                     for k, col in zip(n_valid, perm_stats.T)])
        out["perm_sd"] = np.array([np.nan if k < 2 else np.std(col[np.isfinite(col)], ddof=1)
                                   for k, col in zip(n_valid, perm_stats.T)])
    out["rank"] = rank
    out["p_lower"] = p_lower
    out["p_upper"] = p_upper
    out["p_value"] = p_value
    out["q_value"] = bh_qvalues(p_value)
    return out


def _quantile_columns(probs: Sequence[float]) -> list:
    return [f"q{p:g}" for p in probs]


def _bootstrap_values(
    vals: np.ndarray,
    R: int,
    statistic: str,
    rng: np.random.Generator,
) -> np.ndarray:
    """R bootstrap estimates of `statistic` for one set of values, in memory-bounded blocks."""
    n = vals.size
    block = max(1, _BOOT_BLOCK // n)
    est = np.empty(R, dtype=float)
    for start in range(0, R, block):
        k = min(block, R - start)
        draws = vals[rng.integers(0, n, size=(k, n))]
        if statistic == "mean":
            est[start:start + k] = draws.mean(axis=1)
        else:
            est[start:start + k] = np.median(draws, axis=1)
    return est


def bootstrap(
    z_matrix,
    groups,
    R: int = 10000,
    probs: Sequence[float] = (0.025, 0.5, 0.975),
    statistic: str = "mean",
    random_state: Optional[int | np.random.Generator] = None,
    samples: Optional[Sequence] = None,
) -> pd.DataFrame:
    """
    Bootstrap quantiles of the group estimator and a test against zero.

    For every comparison the finite z-values are resampled with replacement
    R times. Alongside the quantiles at `probs`:

      statistic : estimate / bootstrap standard error
      p_value   : two-sided p of `statistic` under a standard normal centred at 0
      p_boot    : two-sided share of bootstrap estimates on the far side of 0,
                  (count + 1) / (R + 1)
      q_value   : Benjamini–Hochberg adjusted p_value over all comparisons
    """
    _check_statistic(statistic)
    if isinstance(R, bool) or int(R) != R or R < 1:
        raise ValueError(f"R must be a positive integer, got {R!r}")
    R = int(R)
    probs = [float(p) for p in probs]
    if not probs or any(not 0.0 <= p <= 1.0 for p in probs):
        raise ValueError(f"probs must be probabilities in [0, 1], got {probs}")

    Z, samples, levels, codes = _prepare(z_matrix, groups, samples)
    rng = rng_from_state(random_state)

    iu, ju = upper_triangle(Z.shape[0])
    z = Z[iu, ju]
    masks = comparison_masks(codes, iu, ju, len(levels)) & np.isfinite(z)

    qcols = _quantile_columns(probs)
    records = []
    for mask in masks:
        vals = z[mask]
        rec = {"n_pairs": int(vals.size)}
        if vals.size == 0:
            rec.update({"estimate": np.nan, "boot_mean": np.nan, "boot_se": np.nan,
                        "statistic": np.nan, "p_value": np.nan, "p_boot": np.nan})
            rec.update({c: np.nan for c in qcols})
            records.append(rec)
            continue

        estimate = float(vals.mean() if statistic == "mean" else np.median(vals))
        boot = _bootstrap_values(vals, R, statistic, rng)
        se = float(boot.std(ddof=1)) if R > 1 else np.nan

        if np.isfinite(se) and se > 0:
            stat = estimate / se
            p_value = float(2.0 * norm.sf(abs(stat)))
        else:
            stat = np.nan
            p_value = np.nan

        below = (np.sum(boot <= 0) + 1) / (R + 1)
        above = (np.sum(boot >= 0) + 1) / (R + 1)

        rec.update({
            "estimate": estimate,
            "boot_mean": float(boot.mean()),
            "boot_se": se,
            "statistic": stat,
            "p_value": p_value,
            "p_boot": float(min(1.0, 2.0 * min(below, above))),
        })
        rec.update(dict(zip(qcols, np.quantile(boot, probs))))
        records.append(rec)

    out = _row_frame(levels)
    body = pd.DataFrame(
        records,
        columns=["n_pairs", "estimate", "boot_mean", "boot_se", *qcols, "statistic", "p_value", "p_boot"],
    )
    out = pd.concat([out, body], axis=1)
    out["q_value"] = bh_qvalues(out["p_value"].to_numpy())
    return out
