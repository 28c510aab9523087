# null_models.py
from __future__ import annotations

import warnings
from typing import Callable, Dict, Optional, Tuple

from tqdm import tqdm
import numpy as np
import multiprocessing as mp

from phylobeta.utils import chunk_sizes, rng_from_state, spawn_seeds

NULL_MODELS = (
    "taxa.labels",
    "richness",
    "frequency",
    "sample.pool",
    "phylogeny.pool",
    "independentswap",
    "trialswap",
)

SAMPLE_POOL_MODES = ("richness", "pool")

# consecutive failed checkerboard searches before an independent swap run gives up
_MAX_FAILED_ATTEMPTS = 10_000
_ATTEMPT_BATCH = 1024


def _best_mp_start() -> str:
    """
    Cross-platform start-method chooser:
      - fork if available (Linux; sometimes macOS if explicitly enabled)
      - otherwise spawn (Windows/macOS default)
    """
    methods = mp.get_all_start_methods()
    return "fork" if "fork" in methods else "spawn"


# -----------------------------------------------------------------------------
# Randomizers: pure functions, inputs are never modified
# -----------------------------------------------------------------------------

def shuffle_taxa_labels(D: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Permute the taxon labels of a distance matrix.

    Rows and columns are permuted together, which is the same as shuffling
    the labels over all taxa in the matrix; distance values are untouched.
    """
    perm = rng.permutation(D.shape[0])
    return D[np.ix_(perm, perm)]


def randomize_richness(X: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Shuffle abundances within samples (rows); keeps sample richness."""
    return rng.permuted(X, axis=1)


def randomize_frequency(X: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Shuffle abundances within taxa (columns); keeps taxon occurrence frequency."""
    return rng.permuted(X, axis=0)


def randomize_sample_pool(X: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Redraw each sample from the pool of taxa occurring in at least one sample.

    Each sample keeps its richness and its abundance values; the taxa that
    receive them are drawn with equal probability from the pool.
    """
    present = X > 0
    pool = np.flatnonzero(present.any(axis=0))
    out = np.zeros_like(X)
    for i in range(X.shape[0]):
        vals = X[i, present[i]]
        k = vals.size
        if k:
            chosen = rng.choice(pool, size=k, replace=False)
            out[i, chosen] = rng.permutation(vals)
    return out


def _draw_quads(rng: np.random.Generator, n_rows: int, n_cols: int, size: int):
    # two distinct rows and two distinct columns per draw
    i = rng.integers(0, n_rows, size=size)
    j = rng.integers(0, n_rows - 1, size=size)
    j = j + (j >= i)
    k = rng.integers(0, n_cols, size=size)
    l = rng.integers(0, n_cols - 1, size=size)
    l = l + (l >= k)
    return i, j, k, l


def _try_swap(M: np.ndarray, P: np.ndarray, i: int, j: int, k: int, l: int) -> bool:
    """
    Swap a checkerboard in place.

    (i,k),(j,l) occupied with (i,l),(j,k) empty, or the reverse. Each
    abundance moves to the other column of its own row, so every sample keeps
    its abundance values and every taxon keeps its occurrence frequency.
    """
    diagonal = P[i, k] and P[j, l] and not P[i, l] and not P[j, k]
    anti = P[i, l] and P[j, k] and not P[i, k] and not P[j, l]
    if not (diagonal or anti):
        return False
    M[i, k], M[i, l] = M[i, l], M[i, k]
    M[j, k], M[j, l] = M[j, l], M[j, k]
    P[i, k], P[i, l] = P[i, l], P[i, k]
    P[j, k], P[j, l] = P[j, l], P[j, k]
    return True


def independent_swap(X: np.ndarray, iterations: int, rng: np.random.Generator) -> np.ndarray:
    """
    Independent swap algorithm (Gotelli 2000).

    Performs `iterations` successful checkerboard swaps. If no checkerboard
    turns up within _MAX_FAILED_ATTEMPTS consecutive draws the matrix is
    returned as is.
    """
    M = X.copy()
    n_rows, n_cols = M.shape
    if n_rows < 2 or n_cols < 2:
        return M
    P = M > 0

    done = 0
    failed = 0
    while done < iterations:
        i, j, k, l = _draw_quads(rng, n_rows, n_cols, _ATTEMPT_BATCH)
        for t in range(_ATTEMPT_BATCH):
            if _try_swap(M, P, int(i[t]), int(j[t]), int(k[t]), int(l[t])):
                done += 1
                failed = 0
                if done >= iterations:
                    break
            else:
                failed += 1
                if failed >= _MAX_FAILED_ATTEMPTS:
                    warnings.warn(
                        f"independentswap: no checkerboard found in {_MAX_FAILED_ATTEMPTS} "
                        f"attempts; stopping after {done} of {iterations} swaps.",
                        RuntimeWarning,
                    )
                    return M
    return M


def trial_swap(X: np.ndarray, iterations: int, rng: np.random.Generator) -> np.ndarray:
    """
    Trial-swap algorithm (Miklos & Podani 2004).

    Each of the `iterations` trials draws one row/column quadruple and swaps
    it only if it is a checkerboard; unsuccessful trials still count.
    """
    M = X.copy()
    n_rows, n_cols = M.shape
    if n_rows < 2 or n_cols < 2:
        return M
    P = M > 0

    remaining = int(iterations)
    while remaining > 0:
        size = min(_ATTEMPT_BATCH, remaining)
        i, j, k, l = _draw_quads(rng, n_rows, n_cols, size)
        for t in range(size):
            _try_swap(M, P, int(i[t]), int(j[t]), int(k[t]), int(l[t]))
        remaining -= size
    return M


# -----------------------------------------------------------------------------
# Null model strategies
# -----------------------------------------------------------------------------

class NullModel:
    """
    A randomization strategy producing one replicate's inputs.

    randomize() takes the community matrix and the full taxon distance
    matrix and returns randomized copies (either may be returned unchanged).
    """
    name: str = ""

    def randomize(
        self,
        X: np.ndarray,
        D: np.ndarray,
        rng: np.random.Generator,
    ) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    def __repr__(self):
        return f"<NullModel: {self.name}>"


class TaxaLabels(NullModel):
    name = "taxa.labels"

    def randomize(self, X, D, rng):
        return X, shuffle_taxa_labels(D, rng)


class Richness(NullModel):
    name = "richness"

    def randomize(self, X, D, rng):
        return randomize_richness(X, rng), D


class Frequency(NullModel):
    name = "frequency"

    def randomize(self, X, D, rng):
        return randomize_frequency(X, rng), D


class SamplePool(NullModel):
    """
    sample.pool in one of two modes:
      - "richness": same shuffle as the richness model
      - "pool": draw taxa with equal probability from the sample pool
    """
    name = "sample.pool"

    def __init__(self, mode: str = "richness"):
        if mode not in SAMPLE_POOL_MODES:
            raise ValueError(
                f"Unknown sample.pool mode '{mode}'. Choose from: {', '.join(SAMPLE_POOL_MODES)}"
            )
        self.mode = mode

    def randomize(self, X, D, rng):
        if self.mode == "pool":
            return randomize_sample_pool(X, rng), D
        return randomize_richness(X, rng), D

    def __repr__(self):
        return f"<NullModel: {self.name} ({self.mode})>"


class PhylogenyPool(NullModel):
    name = "phylogeny.pool"

    def randomize(self, X, D, rng):
        return randomize_richness(X, rng), shuffle_taxa_labels(D, rng)


class IndependentSwap(NullModel):
    name = "independentswap"

    def __init__(self, iterations: int = 1000):
        self.iterations = iterations

    def randomize(self, X, D, rng):
        return independent_swap(X, self.iterations, rng), D


class TrialSwap(NullModel):
    name = "trialswap"

    def __init__(self, iterations: int = 1000):
        self.iterations = iterations

    def randomize(self, X, D, rng):
        return trial_swap(X, self.iterations, rng), D


_REGISTRY: Dict[str, Callable[..., NullModel]] = {
    "taxa.labels": lambda iterations, sample_pool: TaxaLabels(),
    "richness": lambda iterations, sample_pool: Richness(),
    "frequency": lambda iterations, sample_pool: Frequency(),
    "sample.pool": lambda iterations, sample_pool: SamplePool(sample_pool),
    "phylogeny.pool": lambda iterations, sample_pool: PhylogenyPool(),
    "independentswap": lambda iterations, sample_pool: IndependentSwap(iterations),
    "trialswap": lambda iterations, sample_pool: TrialSwap(iterations),
}


def validate_iterations(iterations) -> int:
    if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)):
        raise ValueError(f"iterations must be a positive integer, got {iterations!r}")
    if iterations <= 0:
        raise ValueError(f"iterations must be a positive integer, got {iterations}")
    return int(iterations)


def get_null_model(name: str, iterations: int = 1000, sample_pool: str = "richness") -> NullModel:
    """
    Build the null model called `name`.

    Models supported:
      - taxa.labels     : shuffle distance matrix labels across all taxa
      - richness        : shuffle abundances within samples
      - frequency       : shuffle abundances within taxa
      - sample.pool     : draw taxa from the sample pool (see SamplePool)
      - phylogeny.pool  : richness shuffle plus taxa.labels shuffle
      - independentswap : independent swap (iterations successful swaps)
      - trialswap       : trial swap (iterations trials)
    """
    if name not in _REGISTRY:
        raise ValueError(f"Unknown null model '{name}'. Choose from: {', '.join(NULL_MODELS)}")
    iterations = validate_iterations(iterations)
    if sample_pool not in SAMPLE_POOL_MODES:
        raise ValueError(
            f"Unknown sample.pool mode '{sample_pool}'. Choose from: {', '.join(SAMPLE_POOL_MODES)}"
        )
    return _REGISTRY[name](iterations, sample_pool)


def generate(
    model: str | NullModel,
    X: np.ndarray,
    D: np.ndarray,
    iterations: int = 1000,
    random_state: Optional[int | np.random.Generator] = None,
    sample_pool: str = "richness",
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Randomized (community, distances) for a single replicate.

    X is samples x taxa; D is the taxa x taxa distance matrix. Either output
    may be the unchanged input, depending on the model.
    """
    if not isinstance(model, NullModel):
        model = get_null_model(model, iterations=iterations, sample_pool=sample_pool)
    X = np.asarray(X, dtype=float)
    D = np.asarray(D, dtype=float)
    return model.randomize(X, D, rng_from_state(random_state))


# -----------------------------------------------------------------------------
# Parallel map over null replicates
# -----------------------------------------------------------------------------

# Worker globals to avoid pickling big objects repeatedly
_G_X = None
_G_D = None
_G_model = None
_G_stat_fn = None


def _worker_init(X: np.ndarray, D: np.ndarray, model: NullModel, stat_fn) -> None:
    """Cache the read-only inputs, the null model and the statistic in the worker."""
    global _G_X, _G_D, _G_model, _G_stat_fn
    _G_X = X
    _G_D = D
    _G_model = model
    _G_stat_fn = stat_fn


def run_chunk(
    X: np.ndarray,
    D: np.ndarray,
    model: NullModel,
    stat_fn: Callable[[np.ndarray, np.ndarray], np.ndarray],
    n_reps: int,
    seed: int,
) -> np.ndarray:
    """
    Compute `n_reps` replicate statistics from one seeded stream.

    Returns an array shaped (n_reps, *stat.shape). Exceptions propagate so a
    failed replicate aborts the whole run.
    """
    rng = np.random.default_rng(seed)
    out = []
    for _ in range(int(n_reps)):
        X_null, D_null = model.randomize(X, D, rng)
        out.append(np.asarray(stat_fn(X_null, D_null), dtype=float))
    return np.stack(out)


def _worker_run_chunk(task) -> Tuple[int, np.ndarray]:
    """
    task: (chunk_index: int, chunk_reps: int, chunk_seed: int)
    """
    idx, n_reps_local, seed = task
    return idx, run_chunk(_G_X, _G_D, _G_model, _G_stat_fn, n_reps_local, seed)


def parallel_null_replicates(
    *,
    X: np.ndarray,
    D: np.ndarray,
    model: NullModel,
    n_reps: int,
    stat_fn: Callable[[np.ndarray, np.ndarray], np.ndarray],
    random_state: Optional[int] = None,
    n_workers: int = 1,
    chunk_size: int = 25,
    mp_start: Optional[str] = None,
    progress: bool = False,
) -> np.ndarray:
    """
    Fan out `n_reps` null replicates over worker processes and fan the
    results back in, in chunk order.

    Replicates are split into chunks of `chunk_size`; each chunk draws from
    its own SeedSequence-spawned stream. The chunk plan does not depend on
    `n_workers`, so a fixed `random_state` gives identical replicates for
    any degree of parallelism.

    Returns an array shaped (n_reps, *stat.shape).
    """
    n_reps = int(n_reps)
    if n_reps <= 0:
        raise ValueError(f"runs must be a positive integer, got {n_reps}")
    n_workers = max(1, int(n_workers))

    sizes = chunk_sizes(n_reps, block=max(1, int(chunk_size)))
    seeds = spawn_seeds(random_state, len(sizes))
    tasks = [(idx, k, s) for idx, (k, s) in enumerate(zip(sizes, seeds))]

    results = [None] * len(tasks)
    desc = f"Null ({model.name}) - chunks of {sizes[0]}"

    with tqdm(total=n_reps, desc=desc, dynamic_ncols=True, disable=not progress) as pbar:
        if n_workers == 1 or len(tasks) == 1:
            for idx, k, seed in tasks:
                results[idx] = run_chunk(X, D, model, stat_fn, k, seed)
                pbar.update(int(k))
        else:
            ctx = mp.get_context(mp_start or _best_mp_start())
            n_procs = min(n_workers, len(tasks))
            with ctx.Pool(
                processes=n_procs,
                initializer=_worker_init,
                initargs=(X, D, model, stat_fn),
            ) as pool:
                for idx, reps in pool.imap_unordered(_worker_run_chunk, tasks):
                    results[idx] = reps
                    pbar.update(int(reps.shape[0]))

    out = np.concatenate(results, axis=0)
    if out.shape[0] != n_reps:
        raise RuntimeError(
            f"Internal error: collected {out.shape[0]} replicates but expected {n_reps}."
        )
    return out
