#!/usr/bin/env python3
"""
comdist.py

Between-community phylogenetic distances (phylogenetic beta diversity).

Two metrics are supported:
  - mpd  : mean pairwise distance between the taxa of two communities (comdist)
  - mntd : mean nearest taxon distance between two communities (comdistnt)

Both take a samples x taxa abundance matrix whose columns are aligned to a
taxa x taxa distance matrix, and return a symmetric samples x samples matrix.
Cells involving an empty community are NaN; the diagonal is 0.
"""

import numpy as np

METRICS = ("mpd", "mntd")


def _relative_abundance(X: np.ndarray) -> np.ndarray:
    totals = X.sum(axis=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.divide(X, totals, out=np.zeros_like(X, dtype=float), where=totals > 0)


def mpd_between(X: np.ndarray, D: np.ndarray, abundance_weighted: bool = False) -> np.ndarray:
    """
    Mean pairwise distance between every pair of samples.

    Unweighted, each cross-community taxon pair counts once:
        mpd[i,j] = P_i D P_j^T / (r_i r_j)
    Weighted, pairs are weighted by the product of relative abundances:
        mpd[i,j] = W_i D W_j^T
    """
    present = X > 0
    if abundance_weighted:
        W = _relative_abundance(np.where(present, X, 0.0))
        out = W @ D @ W.T
    else:
        P = present.astype(float)
        r = P.sum(axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            out = (P @ D @ P.T) / np.outer(r, r)

    empty = ~present.any(axis=1)
    out[empty, :] = np.nan
    out[:, empty] = np.nan
    return out


def mntd_between(X: np.ndarray, D: np.ndarray, abundance_weighted: bool = False) -> np.ndarray:
    """
    Mean nearest taxon distance between every pair of samples.

    For samples i and j the nearest-taxon distances of i's taxa to j and of
    j's taxa to i are pooled and averaged; when weighted, each taxon is
    weighted by its relative abundance in its own sample.
    """
    n = X.shape[0]
    present = X > 0
    W = _relative_abundance(np.where(present, X, 0.0)) if abundance_weighted else None
    taxa_of = [np.flatnonzero(present[k]) for k in range(n)]

    out = np.full((n, n), np.nan, dtype=float)
    for i in range(n):
        A = taxa_of[i]
        if A.size == 0:
            continue
        for j in range(i + 1, n):
            B = taxa_of[j]
            if B.size == 0:
                continue
            sub = D[np.ix_(A, B)]
            nt = np.concatenate((sub.min(axis=1), sub.min(axis=0)))
            if abundance_weighted:
                w = np.concatenate((W[i, A], W[j, B]))
                val = float(np.sum(nt * w) / np.sum(w))
            else:
                val = float(nt.mean())
            out[i, j] = out[j, i] = val
    return out


def pairwise_distance(
    sample_matrix: np.ndarray,
    distance_matrix: np.ndarray,
    abundance_weighted: bool = False,
    metric: str = "mpd",
) -> np.ndarray:
    """
    Symmetric samples x samples phylogenetic distance matrix.

    Parameters
    ----------
    sample_matrix : ndarray
        Abundances, samples x taxa, columns aligned to distance_matrix.
    distance_matrix : ndarray
        Square taxa x taxa distances.
    abundance_weighted : bool
        Weight taxa by relative abundance instead of presence.
    metric : {"mpd", "mntd"}
    """
    X = np.asarray(sample_matrix, dtype=float)
    D = np.asarray(distance_matrix, dtype=float)
    if X.ndim != 2 or D.ndim != 2 or D.shape[0] != D.shape[1] or X.shape[1] != D.shape[0]:
        raise ValueError(
            f"Sample matrix {X.shape} is not aligned to distance matrix {D.shape}."
        )

    if metric == "mpd":
        out = mpd_between(X, D, abundance_weighted)
    elif metric == "mntd":
        out = mntd_between(X, D, abundance_weighted)
    else:
        raise ValueError(f"Unknown metric '{metric}'. Choose from: {', '.join(METRICS)}")

    # symmetrise away floating-point noise from the matrix products
    out = (out + out.T) / 2.0
    np.fill_diagonal(out, 0.0)
    return out


def community_distance(
    sample_matrix: np.ndarray,
    distance_matrix: np.ndarray,
    taxa: np.ndarray,
    abundance_weighted: bool = False,
    metric: str = "mpd",
) -> np.ndarray:
    """
    pairwise_distance() for a community whose column k is taxon taxa[k] of
    the (possibly larger, possibly label-shuffled) distance matrix.
    """
    return pairwise_distance(
        sample_matrix,
        distance_matrix[np.ix_(taxa, taxa)],
        abundance_weighted=abundance_weighted,
        metric=metric,
    )
