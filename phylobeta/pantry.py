#!/usr/bin/env python3

import os
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd


class Community:
    """
    Container for a community data matrix.

    Attributes:
        samples (List[str]): Sample identifiers (rows).
        taxa (List[str]): Taxon identifiers (columns).
        matrix (np.ndarray): Non-negative abundances, samples x taxa.
        richness (np.ndarray): Cached per-sample count of taxa present.
    """
    def __init__(
        self,
        samples: List[str],
        taxa: List[str],
        matrix,
    ):
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2:
            raise ValueError("Community matrix must be two-dimensional (samples x taxa).")
        if matrix.shape != (len(samples), len(taxa)):
            raise ValueError(
                f"Community matrix shape {matrix.shape} does not match "
                f"{len(samples)} samples x {len(taxa)} taxa."
            )
        if not np.all(np.isfinite(matrix)):
            raise ValueError("Community matrix contains missing or non-finite abundances.")
        if np.any(matrix < 0):
            raise ValueError("Community matrix contains negative abundances.")
        if len(set(taxa)) != len(taxa):
            raise ValueError("Community taxa labels must be unique.")

        self.samples = list(samples)
        self.taxa = list(taxa)
        self.matrix = matrix
        self.richness = self._compute_richness()

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> 'Community':
        return cls(
            samples=[str(s) for s in df.index],
            taxa=[str(t) for t in df.columns],
            matrix=df.to_numpy(dtype=float),
        )

    def _compute_richness(self) -> np.ndarray:
        return (self.matrix > 0).sum(axis=1)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.matrix, index=self.samples, columns=self.taxa)

    def __repr__(self):
        return (
            f"<Community: {len(self.samples)} samples, "
            f"{len(self.taxa)} taxa>"
        )


class TaxonDistances:
    """
    Labelled square distance matrix between taxa (usually cophenetic distances).

    The matrix must be symmetric, non-negative, finite and have a zero diagonal.
    """
    def __init__(self, taxa: List[str], matrix, atol: float = 1e-8):
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError(f"Distance matrix must be square, got shape {matrix.shape}.")
        if matrix.shape[0] != len(taxa):
            raise ValueError(
                f"Distance matrix has {matrix.shape[0]} rows but {len(taxa)} taxon labels."
            )
        if len(set(taxa)) != len(taxa):
            raise ValueError("Distance matrix taxon labels must be unique.")
        if not np.all(np.isfinite(matrix)):
            raise ValueError("Distance matrix contains missing or non-finite values.")
        if np.any(matrix < 0):
            raise ValueError("Distance matrix contains negative distances.")
        if not np.allclose(matrix, matrix.T, atol=atol):
            raise ValueError("Distance matrix is not symmetric.")
        if not np.allclose(np.diag(matrix), 0.0, atol=atol):
            raise ValueError("Distance matrix must have a zero diagonal.")

        self.taxa = list(taxa)
        self.matrix = matrix
        self.index = {t: i for i, t in enumerate(self.taxa)}

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> 'TaxonDistances':
        rows = [str(t) for t in df.index]
        cols = [str(t) for t in df.columns]
        if rows != cols:
            if sorted(rows) != sorted(cols):
                raise ValueError("Distance matrix row and column labels differ.")
            df = df.loc[df.index, [df.columns[cols.index(r)] for r in rows]]
        return cls(taxa=rows, matrix=df.to_numpy(dtype=float))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.matrix, index=self.taxa, columns=self.taxa)

    def __repr__(self):
        return f"<TaxonDistances: {len(self.taxa)} taxa>"


def as_community(samp) -> Community:
    if isinstance(samp, Community):
        return samp
    if isinstance(samp, pd.DataFrame):
        return Community.from_frame(samp)
    raise TypeError("Community data must be a Community or a pandas DataFrame (samples x taxa).")


def as_distances(dis) -> TaxonDistances:
    if isinstance(dis, TaxonDistances):
        return dis
    if isinstance(dis, pd.DataFrame):
        return TaxonDistances.from_frame(dis)
    raise TypeError("Distances must be a TaxonDistances or a labelled pandas DataFrame (taxa x taxa).")


def taxon_indices(community: Community, distances: TaxonDistances) -> np.ndarray:
    """
    Row/column of the distance matrix for every community taxon, in
    community column order.

    Taxa in the community but missing from the distance matrix are a
    configuration error; extra taxa in the distance matrix are fine.
    """
    missing = [t for t in community.taxa if t not in distances.index]
    if missing:
        shown = ", ".join(missing[:10])
        more = f" (and {len(missing) - 10} more)" if len(missing) > 10 else ""
        raise ValueError(
            f"{len(missing)} taxa in the community matrix are missing from the "
            f"distance matrix: {shown}{more}"
        )
    return np.array([distances.index[t] for t in community.taxa], dtype=np.int64)


def _check_file(filepath: str) -> None:
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File '{filepath}' not found.")


def load_community(filepath: str, sep: str = "\t") -> Community:
    """Load a samples x taxa table (first column holds sample ids)."""
    _check_file(filepath)
    df = pd.read_csv(filepath, sep=sep, index_col=0, engine="c")
    df = df.apply(pd.to_numeric, errors="coerce").fillna(0)
    community = Community.from_frame(df)
    print(f"Loaded {community!r} from {filepath}")
    return community


def load_distances(filepath: str, sep: str = "\t") -> TaxonDistances:
    """Load a labelled square taxa x taxa distance table."""
    _check_file(filepath)
    df = pd.read_csv(filepath, sep=sep, index_col=0, engine="c")
    distances = TaxonDistances.from_frame(df)
    print(f"Loaded {distances!r} from {filepath}")
    return distances


def load_zmatrix(filepath: str, sep: str = "\t") -> pd.DataFrame:
    """Load a square sample x sample z-matrix; blanks and 'NA' become NaN."""
    _check_file(filepath)
    df = pd.read_csv(filepath, sep=sep, index_col=0, engine="c")
    df.index = [str(s) for s in df.index]
    df.columns = [str(s) for s in df.columns]
    if df.shape[0] != df.shape[1]:
        raise ValueError(f"z-matrix in {filepath} is not square: {df.shape}.")
    return df.apply(pd.to_numeric, errors="coerce")


def load_groups(filepath: str, samples: Optional[Sequence[str]] = None, sep: str = "\t") -> pd.Series:
    """
    Load a two-column sample -> group table.

    When samples is given the labels are returned in that order and every
    sample must have a group.
    """
    _check_file(filepath)
    df = pd.read_csv(filepath, sep=sep, dtype=str, engine="c")
    if df.shape[1] < 2:
        raise ValueError(f"Group file {filepath} needs two columns: sample and group.")
    groups = pd.Series(df.iloc[:, 1].to_numpy(), index=df.iloc[:, 0].astype(str).to_numpy(), name="group")
    if samples is not None:
        missing = [s for s in samples if s not in groups.index]
        if missing:
            raise ValueError(f"{len(missing)} samples have no group in {filepath}: {', '.join(missing[:10])}")
        groups = groups.loc[list(samples)]
    return groups
