import numpy as np
import pytest

from phylobeta.comdist import community_distance, pairwise_distance


def test_mpd_unweighted(community_df, distance_df):
    out = pairwise_distance(community_df.to_numpy(), distance_df.to_numpy())

    expected = np.array([
        [0.0, 7.0, 3.5],
        [7.0, 0.0, 4.5],
        [3.5, 4.5, 0.0],
    ])
    np.testing.assert_allclose(out, expected)


def test_mpd_abundance_weighted(community_df, distance_df):
    out = pairwise_distance(community_df.to_numpy(), distance_df.to_numpy(), abundance_weighted=True)

    # s1 = (1/2, 1/2) on t1, t2; s2 = (2/3, 1/3) on t3, t4
    assert out[0, 1] == pytest.approx(20.0 / 3.0)
    assert out[1, 0] == pytest.approx(20.0 / 3.0)


def test_mpd_weighted_equals_unweighted_for_presence_data(community_df, distance_df):
    X = (community_df.to_numpy() > 0).astype(float)
    D = distance_df.to_numpy()
    np.testing.assert_allclose(
        pairwise_distance(X, D, abundance_weighted=True),
        pairwise_distance(X, D, abundance_weighted=False),
    )


def test_mntd_unweighted(community_df, distance_df):
    out = pairwise_distance(community_df.to_numpy(), distance_df.to_numpy(), metric="mntd")

    assert out[0, 1] == pytest.approx(6.5)
    assert out[0, 2] == pytest.approx(2.0)
    np.testing.assert_allclose(out, out.T)
    np.testing.assert_allclose(np.diag(out), 0.0)


def test_mntd_abundance_weighted(community_df, distance_df):
    out = pairwise_distance(
        community_df.to_numpy(), distance_df.to_numpy(), abundance_weighted=True, metric="mntd"
    )
    assert out[0, 1] == pytest.approx(19.0 / 3.0)


@pytest.mark.parametrize("metric", ["mpd", "mntd"])
def test_empty_sample_gives_nan(community_df, distance_df, metric):
    X = community_df.to_numpy().copy()
    X[2, :] = 0
    out = pairwise_distance(X, distance_df.to_numpy(), metric=metric)

    assert np.isnan(out[2, 0]) and np.isnan(out[0, 2]) and np.isnan(out[1, 2])
    assert np.isfinite(out[0, 1])
    assert out[2, 2] == 0.0


def test_unknown_metric_raises(community_df, distance_df):
    with pytest.raises(ValueError, match="Unknown metric"):
        pairwise_distance(community_df.to_numpy(), distance_df.to_numpy(), metric="pd")


def test_misaligned_inputs_raise(community_df, distance_df):
    with pytest.raises(ValueError, match="not aligned"):
        pairwise_distance(community_df.to_numpy()[:, :3], distance_df.to_numpy())


def test_community_distance_uses_taxon_indices(community_df, distance_df):
    # community columns in reverse order, distance matrix in original order
    reversed_df = community_df[community_df.columns[::-1]]
    taxa = np.array([3, 2, 1, 0])

    out = community_distance(reversed_df.to_numpy(), distance_df.to_numpy(), taxa)
    expected = pairwise_distance(community_df.to_numpy(), distance_df.to_numpy())
    np.testing.assert_allclose(out, expected)
