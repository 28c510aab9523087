import numpy as np
import pytest

from phylobeta.null_models import (
    NULL_MODELS,
    IndependentSwap,
    PhylogenyPool,
    SamplePool,
    TaxaLabels,
    TrialSwap,
    generate,
    get_null_model,
    independent_swap,
    randomize_frequency,
    randomize_richness,
    randomize_sample_pool,
    shuffle_taxa_labels,
    trial_swap,
)


def _richness(X):
    return (X > 0).sum(axis=1)


def _frequency(X):
    return (X > 0).sum(axis=0)


def test_registry_covers_every_model():
    for name in NULL_MODELS:
        model = get_null_model(name)
        assert model.name == name


def test_unknown_model_raises():
    with pytest.raises(ValueError, match="Unknown null model"):
        get_null_model("shuffle.everything")


@pytest.mark.parametrize("iterations", [0, -5, 2.5, True])
def test_invalid_iterations_raise(iterations):
    with pytest.raises(ValueError, match="iterations"):
        get_null_model("trialswap", iterations=iterations)


def test_unknown_sample_pool_mode_raises():
    with pytest.raises(ValueError, match="sample.pool mode"):
        get_null_model("sample.pool", sample_pool="phylogeny")


def test_taxa_labels_preserves_distance_values(random_distances):
    rng = np.random.default_rng(1)
    shuffled = shuffle_taxa_labels(random_distances, rng)

    np.testing.assert_array_equal(np.sort(shuffled.ravel()), np.sort(random_distances.ravel()))
    np.testing.assert_allclose(shuffled, shuffled.T)
    np.testing.assert_array_equal(np.diag(shuffled), 0.0)


def test_taxa_labels_leaves_community_untouched(random_community, random_distances):
    X, D = TaxaLabels().randomize(random_community, random_distances, np.random.default_rng(3))
    np.testing.assert_array_equal(X, random_community)
    assert D.shape == random_distances.shape


def test_richness_preserves_sample_richness(random_community):
    rng = np.random.default_rng(2)
    for _ in range(20):
        R = randomize_richness(random_community, rng)
        np.testing.assert_array_equal(_richness(R), _richness(random_community))
        np.testing.assert_array_equal(np.sort(R, axis=1), np.sort(random_community, axis=1))


def test_frequency_preserves_taxon_frequency(random_community):
    rng = np.random.default_rng(2)
    for _ in range(20):
        F = randomize_frequency(random_community, rng)
        np.testing.assert_array_equal(_frequency(F), _frequency(random_community))
        np.testing.assert_array_equal(np.sort(F, axis=0), np.sort(random_community, axis=0))


def test_sample_pool_literal_mode_matches_richness(random_community, random_distances):
    a = SamplePool("richness").randomize(random_community, random_distances, np.random.default_rng(11))
    b = get_null_model("richness").randomize(random_community, random_distances, np.random.default_rng(11))
    np.testing.assert_array_equal(a[0], b[0])


def test_sample_pool_pool_mode_draws_from_occurring_taxa():
    X = np.array([
        [1, 0, 3, 0, 0],
        [0, 2, 0, 0, 0],
        [4, 0, 0, 0, 0],
    ], dtype=float)
    rng = np.random.default_rng(5)
    for _ in range(50):
        P = randomize_sample_pool(X, rng)
        np.testing.assert_array_equal(_richness(P), _richness(X))
        # taxa 3 and 4 never occur, so they stay empty
        assert not P[:, 3:].any()
        np.testing.assert_array_equal(np.sort(P, axis=1), np.sort(X, axis=1))


def test_phylogeny_pool_randomizes_both_inputs(random_community, random_distances):
    X, D = PhylogenyPool().randomize(random_community, random_distances, np.random.default_rng(8))
    np.testing.assert_array_equal(_richness(X), _richness(random_community))
    np.testing.assert_array_equal(np.sort(D.ravel()), np.sort(random_distances.ravel()))
    assert not np.array_equal(D, random_distances)


@pytest.mark.parametrize("swap", [independent_swap, trial_swap])
@pytest.mark.parametrize("iterations", [1, 10, 500, 3000])
def test_swaps_preserve_marginals(random_community, swap, iterations):
    M = swap(random_community, iterations, np.random.default_rng(9))

    np.testing.assert_array_equal(_richness(M), _richness(random_community))
    np.testing.assert_array_equal(_frequency(M), _frequency(random_community))
    # abundances move along their own row
    np.testing.assert_array_equal(np.sort(M, axis=1), np.sort(random_community, axis=1))


@pytest.mark.parametrize("swap", [independent_swap, trial_swap])
def test_swap_keeps_abundances_in_their_sample(swap):
    X = np.array([[5.0, 0.0], [0.0, 7.0]])
    M = swap(X, 1, np.random.default_rng(0))
    np.testing.assert_array_equal(M, [[0.0, 5.0], [7.0, 0.0]])


def test_independent_swap_changes_matrix(random_community):
    M = independent_swap(random_community, 200, np.random.default_rng(4))
    assert not np.array_equal(M > 0, random_community > 0)


def test_independent_swap_without_checkerboards_stops():
    X = np.ones((3, 4))
    with pytest.warns(RuntimeWarning, match="no checkerboard"):
        M = independent_swap(X, 5, np.random.default_rng(0))
    np.testing.assert_array_equal(M, X)


def test_trial_swap_counts_failed_trials():
    # a full matrix has no checkerboards; every trial fails but the run ends
    X = np.ones((3, 4))
    M = trial_swap(X, 1000, np.random.default_rng(0))
    np.testing.assert_array_equal(M, X)


@pytest.mark.parametrize("model", [IndependentSwap(50), TrialSwap(50)])
def test_swap_models_leave_distances_alone(model, random_community, random_distances):
    X, D = model.randomize(random_community, random_distances, np.random.default_rng(1))
    assert D is random_distances


@pytest.mark.parametrize("name", NULL_MODELS)
def test_randomizers_do_not_mutate_inputs(name, random_community, random_distances):
    X0 = random_community.copy()
    D0 = random_distances.copy()
    generate(name, random_community, random_distances, iterations=50, random_state=1)
    np.testing.assert_array_equal(random_community, X0)
    np.testing.assert_array_equal(random_distances, D0)


@pytest.mark.parametrize("name", NULL_MODELS)
def test_generate_is_reproducible(name, random_community, random_distances):
    a = generate(name, random_community, random_distances, iterations=50, random_state=123)
    b = generate(name, random_community, random_distances, iterations=50, random_state=123)
    np.testing.assert_array_equal(a[0], b[0])
    np.testing.assert_array_equal(a[1], b[1])
