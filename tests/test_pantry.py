import numpy as np
import pandas as pd
import pytest

from phylobeta.pantry import (
    Community,
    TaxonDistances,
    as_community,
    as_distances,
    load_community,
    load_distances,
    load_groups,
    load_zmatrix,
    taxon_indices,
)


def test_community_from_frame(community_df):
    community = Community.from_frame(community_df)

    assert community.samples == ["s1", "s2", "s3"]
    assert community.taxa == ["t1", "t2", "t3", "t4"]
    np.testing.assert_array_equal(community.richness, [2, 2, 2])
    pd.testing.assert_frame_equal(community.to_frame(), community_df)


@pytest.mark.parametrize(
    "value, match",
    [(-1.0, "negative"), (np.nan, "non-finite")],
)
def test_community_rejects_bad_values(community_df, value, match):
    community_df.iloc[0, 0] = value
    with pytest.raises(ValueError, match=match):
        Community.from_frame(community_df)


def test_community_rejects_shape_mismatch():
    with pytest.raises(ValueError, match="does not match"):
        Community(["a", "b"], ["t1"], np.ones((2, 2)))


def test_distances_reorders_columns(distance_df):
    shuffled = distance_df[["t3", "t1", "t4", "t2"]]
    distances = TaxonDistances.from_frame(shuffled)

    assert distances.taxa == ["t1", "t2", "t3", "t4"]
    np.testing.assert_array_equal(distances.matrix, distance_df.to_numpy())
    assert distances.index["t3"] == 2


def test_distances_reject_asymmetric(distance_df):
    distance_df.loc["t1", "t2"] = 5.0
    with pytest.raises(ValueError, match="not symmetric"):
        TaxonDistances.from_frame(distance_df)


def test_distances_reject_nonzero_diagonal(distance_df):
    distance_df.loc["t1", "t1"] = 1.0
    with pytest.raises(ValueError, match="zero diagonal"):
        TaxonDistances.from_frame(distance_df)


def test_distances_reject_mismatched_labels(distance_df):
    renamed = distance_df.rename(columns={"t4": "t9"})
    with pytest.raises(ValueError, match="labels differ"):
        TaxonDistances.from_frame(renamed)


def test_as_helpers_reject_other_types():
    with pytest.raises(TypeError):
        as_community(np.ones((2, 2)))
    with pytest.raises(TypeError):
        as_distances(np.zeros((2, 2)))


def test_taxon_indices_follow_community_order(community_df, distance_df):
    community = Community.from_frame(community_df[["t4", "t1"]])
    distances = TaxonDistances.from_frame(distance_df)
    np.testing.assert_array_equal(taxon_indices(community, distances), [3, 0])


def test_taxon_indices_missing_taxa(community_df, distance_df):
    community_df["t9"] = 1.0
    community_df["t8"] = 0.0
    community = Community.from_frame(community_df)
    distances = TaxonDistances.from_frame(distance_df)

    with pytest.raises(ValueError, match="2 taxa in the community matrix are missing"):
        taxon_indices(community, distances)


def test_load_community_and_distances(tmp_path, community_df, distance_df):
    samp_path = tmp_path / "community.tsv"
    dist_path = tmp_path / "distances.tsv"
    community_df.to_csv(samp_path, sep="\t")
    distance_df.to_csv(dist_path, sep="\t")

    community = load_community(str(samp_path))
    distances = load_distances(str(dist_path))

    assert community.samples == ["s1", "s2", "s3"]
    np.testing.assert_array_equal(community.matrix, community_df.to_numpy())
    assert distances.taxa == ["t1", "t2", "t3", "t4"]


def test_load_community_blank_cells_are_absent(tmp_path):
    path = tmp_path / "community.tsv"
    path.write_text("\tt1\tt2\ns1\t3\t\ns2\t\t1\n")

    community = load_community(str(path))
    np.testing.assert_array_equal(community.matrix, [[3.0, 0.0], [0.0, 1.0]])


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_community(str(tmp_path / "nope.tsv"))


def test_load_zmatrix_reads_na(tmp_path):
    path = tmp_path / "z.tsv"
    path.write_text("\ts1\ts2\ns1\tNA\t1.5\ns2\t1.5\tNA\n")

    z = load_zmatrix(str(path))
    assert list(z.index) == ["s1", "s2"]
    assert np.isnan(z.loc["s1", "s1"])
    assert z.loc["s1", "s2"] == pytest.approx(1.5)


def test_load_groups_in_sample_order(tmp_path):
    path = tmp_path / "groups.tsv"
    path.write_text("sample\tgroup\ns2\tB\ns1\tA\ns3\tA\n")

    groups = load_groups(str(path), samples=["s1", "s2", "s3"])
    assert list(groups.index) == ["s1", "s2", "s3"]
    assert list(groups) == ["A", "B", "A"]


def test_load_groups_missing_sample(tmp_path):
    path = tmp_path / "groups.tsv"
    path.write_text("sample\tgroup\ns1\tA\n")

    with pytest.raises(ValueError, match="1 samples have no group"):
        load_groups(str(path), samples=["s1", "s2"])
