import sys
import pathlib

import numpy as np
import pandas as pd
import pytest

# Ensure the project root is on sys.path for imports when running tests locally
PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


TAXA = ["t1", "t2", "t3", "t4"]
SAMPLES = ["s1", "s2", "s3"]


@pytest.fixture
def community_df():
    """3 samples x 4 taxa."""
    return pd.DataFrame(
        [[1, 1, 0, 0],
         [0, 0, 2, 1],
         [1, 0, 1, 0]],
        index=SAMPLES,
        columns=TAXA,
        dtype=float,
    )


@pytest.fixture
def distance_df():
    """Ultrametric-looking 4 x 4 distances: (t1,t2) and (t3,t4) are sister pairs."""
    return pd.DataFrame(
        [[0, 2, 6, 8],
         [2, 0, 6, 8],
         [6, 6, 0, 4],
         [8, 8, 4, 0]],
        index=TAXA,
        columns=TAXA,
        dtype=float,
    )


@pytest.fixture
def random_community():
    rng = np.random.default_rng(42)
    X = rng.poisson(1.0, size=(8, 12)).astype(float)
    # make sure no row or column is entirely empty or entirely full
    X[:, 0] = [3, 0, 1, 0, 2, 0, 0, 1]
    X[0, :] = [3, 0, 2, 0, 1, 0, 0, 5, 0, 1, 0, 0]
    return X


@pytest.fixture
def random_distances():
    rng = np.random.default_rng(7)
    pts = rng.normal(size=(12, 3))
    D = np.sqrt(((pts[:, None, :] - pts[None, :, :]) ** 2).sum(axis=-1))
    return D
