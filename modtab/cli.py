"""
MIT License

Command-line interface for modtab.
"""

from __future__ import annotations

import argparse

from .core.pipeline import LoadConfig, run_gff3, run_idf, write_outputs
from .util.errors import ModtabError
from .util.logging import get_logger

LOGGER = get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="modtab", description="Load IDF/SDRF and GFF3 submissions")
    subparsers = parser.add_subparsers(dest="command")

    idf_parser = subparsers.add_parser("idf", help="Parse an IDF and the SDRF it names")
    idf_parser.set_defaults(handler=run_idf_command)
    idf_parser.add_argument("--idf", required=True, help="IDF file")
    add_output_args(idf_parser)

    gff_parser = subparsers.add_parser("gff3", help="Resolve a GFF3 file into features")
    gff_parser.set_defaults(handler=run_gff3_command)
    gff_parser.add_argument("--gff3", required=True, help="GFF3 file")
    builds = gff_parser.add_mutually_exclusive_group(required=True)
    builds.add_argument("--builds", help="TSV of source/build/seqid coordinates")
    builds.add_argument("--fasta", help="Reference FASTA to derive build coordinates from")
    gff_parser.add_argument("--source", help="Genome-build source for --fasta (e.g. FlyBase)")
    gff_parser.add_argument("--build", help="Genome-build name for --fasta (e.g. r5)")
    gff_parser.add_argument("--organism", help="Organism for --fasta (e.g. 'Drosophila melanogaster')")
    gff_parser.add_argument("--seq-type", default="chromosome", help="SO type of --fasta sequences")
    gff_parser.add_argument("--source-prefix", help="Prefix for analysis program names")
    gff_parser.add_argument("--strip-chr", action="store_true", help="Drop a leading 'chr' from sequence ids")
    add_output_args(gff_parser)
    return parser


def add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--out", required=True, help="Output directory")
    parser.add_argument("--emit", choices=["tsv", "csv", "jsonl"], default="tsv")


def dispatch(args: argparse.Namespace) -> None:
    if getattr(args, "handler", None) is None:
        raise SystemExit("Choose a command: idf or gff3")
    try:
        args.handler(args)
    except ModtabError as exc:
        raise SystemExit(str(exc)) from exc


def run_idf_command(args: argparse.Namespace) -> None:
    config = LoadConfig(command="idf", out_dir=args.out, idf=args.idf, emit=args.emit)
    result = run_idf(config)
    write_outputs(result)
    LOGGER.info("Tables written to %s", args.out)


def run_gff3_command(args: argparse.Namespace) -> None:
    config = LoadConfig(
        command="gff3",
        out_dir=args.out,
        gff3=args.gff3,
        builds=args.builds,
        fasta=args.fasta,
        source=args.source,
        build=args.build,
        organism=args.organism,
        seq_type=args.seq_type,
        source_prefix=args.source_prefix,
        strip_chr=args.strip_chr,
        emit=args.emit,
    )
    result = run_gff3(config)
    write_outputs(result)
    LOGGER.info("Tables written to %s", args.out)


__all__ = ["build_parser", "dispatch"]
