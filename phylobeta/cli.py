#!/usr/bin/env python3
import argparse

from phylobeta.comdist import METRICS
from phylobeta.null_models import NULL_MODELS, SAMPLE_POOL_MODES
from phylobeta.significance import STATISTICS


def positive_int(value):
    try:
        ivalue = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value} is not an integer")

    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue

def probability(value):
    try:
        value = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value} is not a valid float.")

    if value < 0.0 or value > 1.0:
        raise argparse.ArgumentTypeError("Probabilities must be between 0 and 1.")
    return value

def _tag(tag):
    return f"{tag}_" if tag else ""

def build_parser():
    parser = argparse.ArgumentParser(
        description="Standardized effect sizes of phylogenetic beta diversity against null models"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ----------------------------
    # SES SUBCOMMAND
    # ----------------------------
    ses_sub = subparsers.add_parser("ses", help="SES of between-community MPD or MNTD.")

    req = ses_sub.add_argument_group("required arguments")
    req.add_argument(
        "--community",
        required=True,
        help="Community TSV: samples as rows, taxa as columns, sample ids in the first column.",
    )
    req.add_argument(
        "--distances",
        required=True,
        help="Taxon distance TSV: square, labelled, taxon ids in the first column.",
    )
    req.add_argument(
        "--output_dir",
        required=True,
        help="Directory where output files will be saved.",
    )

    opt = ses_sub.add_argument_group("optional arguments")
    opt.add_argument(
        "--metric",
        choices=METRICS,
        default="mpd",
        help="Between-community distance (default: %(default)s).",
    )
    opt.add_argument(
        "--null_model",
        choices=NULL_MODELS,
        default="taxa.labels",
        help="Null model used for randomizations (default: %(default)s).",
    )
    opt.add_argument(
        "--sample_pool",
        choices=SAMPLE_POOL_MODES,
        default="richness",
        help=(
            "sample.pool only: 'richness' shuffles within samples exactly like the richness model; "
            "'pool' draws taxa with equal probability from the taxa occurring in at least one sample "
            "(default: %(default)s)."
        ),
    )
    opt.add_argument(
        "--abundance_weighted",
        action="store_true",
        help="Weight distances by relative abundances.",
    )
    opt.add_argument(
        "--runs",
        type=positive_int,
        default=999,
        help="Number of randomizations (default: %(default)s).",
    )
    opt.add_argument(
        "--iterations",
        type=positive_int,
        default=1000,
        help="Swaps per randomization for independentswap and trialswap (default: %(default)s).",
    )
    opt.add_argument(
        "--cores",
        type=positive_int,
        default=1,
        help="Worker processes for the randomizations (default: %(default)s).",
    )
    opt.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed; results are identical for any number of cores.",
    )
    opt.add_argument(
        "--tag",
        default="",
        help="Optional tag to prepend to output filenames for distinction.",
    )

    def ses_command(args):
        from phylobeta.pipelines import run_ses

        args.tag = _tag(args.tag)
        run_ses(args)

    ses_sub.set_defaults(func=ses_command)

    # ----------------------------
    # PERMTEST / BOOTSTRAP SUBCOMMANDS
    # ----------------------------
    def add_zmatrix_arguments(sub):
        req = sub.add_argument_group("required arguments")
        req.add_argument(
            "--zmatrix",
            required=True,
            help="z-matrix TSV (e.g. ses_mpd_obs_z.tsv), sample ids in the first column.",
        )
        req.add_argument(
            "--groups",
            required=True,
            help="Two-column TSV with a header: sample, group.",
        )
        req.add_argument(
            "--output_dir",
            required=True,
            help="Directory where output files will be saved.",
        )
        opt = sub.add_argument_group("optional arguments")
        opt.add_argument(
            "--statistic",
            choices=STATISTICS,
            default="mean",
            help="Group summary of z-values (default: %(default)s).",
        )
        opt.add_argument(
            "--seed",
            type=int,
            default=None,
            help="Random seed.",
        )
        opt.add_argument(
            "--tag",
            default="",
            help="Optional tag to prepend to output filenames for distinction.",
        )
        return opt

    perm_sub = subparsers.add_parser("permtest", help="Permutation test of group z-values.")
    opt = add_zmatrix_arguments(perm_sub)
    opt.add_argument(
        "--permutations",
        type=positive_int,
        default=999,
        help="Number of label permutations (default: %(default)s).",
    )

    def permtest_command(args):
        from phylobeta.pipelines import run_permtest

        args.tag = _tag(args.tag)
        run_permtest(args)

    perm_sub.set_defaults(func=permtest_command)

    boot_sub = subparsers.add_parser("bootstrap", help="Bootstrap of group z-values.")
    opt = add_zmatrix_arguments(boot_sub)
    opt.add_argument(
        "--R",
        type=positive_int,
        default=10000,
        help="Number of bootstrap resamples (default: %(default)s).",
    )
    opt.add_argument(
        "--probs",
        type=probability,
        nargs="+",
        default=[0.025, 0.5, 0.975],
        help="Quantiles to report (default: %(default)s).",
    )

    def bootstrap_command(args):
        from phylobeta.pipelines import run_bootstrap

        args.tag = _tag(args.tag)
        run_bootstrap(args)

    boot_sub.set_defaults(func=bootstrap_command)

    return parser


def parse_cli(argv=None):
    # --------------
    # Parse & Dispatch
    # --------------
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    parse_cli()
