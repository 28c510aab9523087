#!/usr/bin/env python3
"""
ses.py

Standardized effect size of between-community phylogenetic distances
(betaMPD / betaMNTD) against a null model.

    result = ses_comdist(samp, dis, null_model="taxa.labels", runs=999)

The observed samples x samples distance matrix is compared cell by cell
with `runs` replicate matrices computed on randomized inputs:

  rand_mean, rand_sd : NaN-ignoring mean and sample sd of the replicates
  obs_z              : (obs - rand_mean) / rand_sd, NaN when sd is 0 or undefined
  obs_rank           : average rank of obs among obs + replicates (diagonal NaN)
  obs_p              : obs_rank / (runs + 1)

obs_z is the negative of betaNRI (betaNTI for mntd).
"""

import os
import warnings
from functools import partial
from typing import Optional

import numpy as np
import pandas as pd

from phylobeta.comdist import METRICS, community_distance
from phylobeta.null_models import get_null_model, parallel_null_replicates
from phylobeta.pantry import as_community, as_distances, taxon_indices
from phylobeta.utils import observed_rank

# replicates per worker task when no chunk size is given
DEFAULT_CHUNK_SIZE = 25


class SESResult:
    """
    Aggregated null-model comparison for every pair of samples.

    Attributes:
        samples (List[str]): Sample identifiers (row/column order of all matrices).
        ntaxa (np.ndarray): Number of taxa present per sample.
        obs, rand_mean, rand_sd, obs_rank, obs_z, obs_p (np.ndarray): samples x samples.
        runs (int): Number of randomizations.
        metric (str): "mpd" or "mntd".
        null_model (str): Null model name.
    """
    MATRICES = ("obs", "rand_mean", "rand_sd", "obs_rank", "obs_z", "obs_p")

    def __init__(self, samples, ntaxa, obs, rand_mean, rand_sd, obs_rank, obs_z, obs_p,
                 runs, metric="mpd", null_model="taxa.labels"):
        self.samples = list(samples)
        self.ntaxa = np.asarray(ntaxa)
        self.obs = obs
        self.rand_mean = rand_mean
        self.rand_sd = rand_sd
        self.obs_rank = obs_rank
        self.obs_z = obs_z
        self.obs_p = obs_p
        self.runs = int(runs)
        self.metric = metric
        self.null_model = null_model

    def __repr__(self):
        return (
            f"<SESResult: {self.metric}, {self.null_model}, "
            f"{len(self.samples)} samples, {self.runs} runs>"
        )

    def frame(self, name: str) -> pd.DataFrame:
        if name not in self.MATRICES:
            raise KeyError(f"Unknown matrix '{name}'. Choose from: {', '.join(self.MATRICES)}")
        return pd.DataFrame(getattr(self, name), index=self.samples, columns=self.samples)

    def ntaxa_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"sample": self.samples, "ntaxa": self.ntaxa})

    def save(self, output_dir: str, tag: str = "") -> dict:
        """Write every matrix (and ntaxa) as TSV; returns {name: path}."""
        os.makedirs(output_dir, exist_ok=True)
        prefix = f"{tag}ses_{self.metric}"
        paths = {}
        for name in self.MATRICES:
            path = os.path.join(output_dir, f"{prefix}_{name}.tsv")
            self.frame(name).to_csv(path, sep="\t", na_rep="NA")
            paths[name] = path
        path = os.path.join(output_dir, f"{prefix}_ntaxa.tsv")
        self.ntaxa_frame().to_csv(path, sep="\t", index=False)
        paths["ntaxa"] = path
        return paths


def _validate_positive(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def summarise_replicates(obs: np.ndarray, reps: np.ndarray) -> dict:
    """
    Cell-wise mean, sd, z, rank and p-value of `obs` against `reps`.

    reps is shaped (runs, n, n). NaN replicate values are ignored; cells
    with no usable replicates, zero or undefined sd propagate NaN instead of
    raising.
    """
    runs = reps.shape[0]

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        mean = np.nanmean(reps, axis=0)
        sd = np.nanstd(reps, axis=0, ddof=1)

    z = np.full_like(obs, np.nan, dtype=float)
    ok = np.isfinite(sd) & (sd > 0) & np.isfinite(obs) & np.isfinite(mean)
    z[ok] = (obs[ok] - mean[ok]) / sd[ok]

    rank = observed_rank(obs, reps)
    rank[np.isnan(mean) | np.isnan(obs)] = np.nan
    np.fill_diagonal(rank, np.nan)

    p = rank / (runs + 1)

    return {"rand_mean": mean, "rand_sd": sd, "obs_z": z, "obs_rank": rank, "obs_p": p}


def ses_comdist(
    samp,
    dis,
    null_model: str = "taxa.labels",
    abundance_weighted: bool = False,
    runs: int = 999,
    iterations: int = 1000,
    cores: int = 1,
    metric: str = "mpd",
    random_state: Optional[int] = None,
    sample_pool: str = "richness",
    chunk_size: Optional[int] = None,
    progress: bool = False,
) -> SESResult:
    """
    Standardized effect size of between-community MPD (or MNTD).

    Parameters
    ----------
    samp : Community or DataFrame
        Community data, samples as rows.
    dis : TaxonDistances or DataFrame
        Labelled taxa x taxa distance matrix (generally cophenetic distances).
        Must contain every taxon in `samp`.
    null_model : str
        One of null_models.NULL_MODELS.
    abundance_weighted : bool
        Weight distances by relative abundances.
    runs : int
        Number of randomizations.
    iterations : int
        Iterations per randomization (independentswap and trialswap only).
    cores : int
        Worker processes for the replicate loop.
    metric : {"mpd", "mntd"}
    random_state : int, optional
        Master seed; fixes every replicate regardless of `cores`.
    sample_pool : {"richness", "pool"}
        Behaviour of the sample.pool model (see null_models.SamplePool).
    chunk_size : int, optional
        Replicates per task; part of the seeding plan. None uses
        DEFAULT_CHUNK_SIZE.
    progress : bool
        Show a tqdm progress bar.
    """
    # configuration errors are raised before any randomization work
    if metric not in METRICS:
        raise ValueError(f"Unknown metric '{metric}'. Choose from: {', '.join(METRICS)}")
    model = get_null_model(null_model, iterations=iterations, sample_pool=sample_pool)
    runs = _validate_positive("runs", runs)
    cores = _validate_positive("cores", cores)
    if chunk_size is None:
        chunk_size = DEFAULT_CHUNK_SIZE
    chunk_size = _validate_positive("chunk_size", chunk_size)

    community = as_community(samp)
    distances = as_distances(dis)
    taxa = taxon_indices(community, distances)
    X = community.matrix
    D = distances.matrix

    stat_fn = partial(
        community_distance,
        taxa=taxa,
        abundance_weighted=bool(abundance_weighted),
        metric=metric,
    )
    obs = stat_fn(X, D)

    print(f"INFO: {metric} null model '{model.name}' with {runs} runs on {cores} core(s).")
    reps = parallel_null_replicates(
        X=X,
        D=D,
        model=model,
        n_reps=runs,
        stat_fn=stat_fn,
        random_state=random_state,
        n_workers=cores,
        chunk_size=chunk_size,
        progress=progress,
    )

    summary = summarise_replicates(obs, reps)

    return SESResult(
        samples=community.samples,
        ntaxa=community.richness,
        obs=obs,
        runs=runs,
        metric=metric,
        null_model=model.name,
        **summary,
    )


def ses_comdistnt(samp, dis, **kwargs) -> SESResult:
    """Standardized effect size of between-community MNTD (betaNTI)."""
    kwargs["metric"] = "mntd"
    return ses_comdist(samp, dis, **kwargs)
