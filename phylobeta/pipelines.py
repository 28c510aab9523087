#!/usr/bin/env python3
"""
pipelines.py

This module defines the file-based pipeline functions behind the phylobeta
command line.

    run_ses(args)       : community + distances -> SES matrices (one TSV each)
    run_permtest(args)  : z-matrix + groups -> permutation test table
    run_bootstrap(args) : z-matrix + groups -> bootstrap quantile table

Each function loads its inputs with the pantry loaders, calls the in-memory
implementation and writes tab-separated output to args.output_dir, using
args.tag as a filename prefix.
"""

import os

from phylobeta.pantry import load_community, load_distances, load_groups, load_zmatrix
from phylobeta.ses import ses_comdist
from phylobeta.significance import bootstrap, permtest


def run_ses(args):
    """
    Run the null-model SES workflow.

    Expected attributes in args:
      - community, distances, output_dir, tag
      - metric, null_model, sample_pool, abundance_weighted
      - runs, iterations, cores, seed
    """
    os.makedirs(args.output_dir, exist_ok=True)

    community = load_community(args.community)
    distances = load_distances(args.distances)

    result = ses_comdist(
        community,
        distances,
        null_model=args.null_model,
        abundance_weighted=args.abundance_weighted,
        runs=args.runs,
        iterations=args.iterations,
        cores=args.cores,
        metric=args.metric,
        random_state=args.seed,
        sample_pool=args.sample_pool,
        progress=True,
    )

    paths = result.save(args.output_dir, tag=args.tag)
    print(f"Pipeline: {result!r}")
    for name, path in paths.items():
        print(f"Pipeline: {name} saved to {path}")
    return result


def _load_z_and_groups(args):
    z = load_zmatrix(args.zmatrix)
    groups = load_groups(args.groups, samples=list(z.index))
    print(f"Pipeline: {z.shape[0]} samples in {groups.nunique()} groups.")
    return z, groups


def run_permtest(args):
    """
    Permutation test of within/between group z-values.

    Expected attributes in args:
      - zmatrix, groups, output_dir, tag, permutations, statistic, seed
    """
    os.makedirs(args.output_dir, exist_ok=True)
    z, groups = _load_z_and_groups(args)

    table = permtest(
        z,
        groups,
        permutations=args.permutations,
        statistic=args.statistic,
        random_state=args.seed,
    )

    output_path = os.path.join(args.output_dir, f"{args.tag}permtest.tsv")
    table.to_csv(output_path, sep="\t", index=False, na_rep="NA")
    print(f"Pipeline: Permutation test saved to {output_path}")
    return table


def run_bootstrap(args):
    """
    Bootstrap of within/between group z-values.

    Expected attributes in args:
      - zmatrix, groups, output_dir, tag, R, probs, statistic, seed
    """
    os.makedirs(args.output_dir, exist_ok=True)
    z, groups = _load_z_and_groups(args)

    table = bootstrap(
        z,
        groups,
        R=args.R,
        probs=args.probs,
        statistic=args.statistic,
        random_state=args.seed,
    )

    output_path = os.path.join(args.output_dir, f"{args.tag}bootstrap.tsv")
    table.to_csv(output_path, sep="\t", index=False, na_rep="NA")
    print(f"Pipeline: Bootstrap saved to {output_path}")
    return table
