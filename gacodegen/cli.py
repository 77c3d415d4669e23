#!/usr/bin/env python3
"""
Generate Rust and GLSL geometric algebra libraries from algebra descriptors.

    gacodegen "epga1d:1,1;Scalar:1;ComplexNumber:1,e01" -o generated --isa sse
"""

import argparse
import sys

from gacodegen.config import BACKENDS, GeneratorConfig
from gacodegen.isa import INSTRUCTION_SETS
from gacodegen.log import get_logger
from gacodegen.optimizer import DEFAULT_MAX_ITERATIONS
from gacodegen.pipeline import generate_all

logger = get_logger(__name__)


def build_parser():

    ap = argparse.ArgumentParser(prog="gacodegen", description="Generate geometric algebra libraries.")
    ap.add_argument("descriptors", nargs="+", metavar="DESCRIPTOR",
                    help="algebra_name:squares;Class:components;...")
    ap.add_argument("-o", "--output-dir", default="./generated")
    ap.add_argument("--isa", choices=sorted(INSTRUCTION_SETS), default="scalar",
                    help="instruction set of the Rust backend")
    ap.add_argument("--backend", action="append", choices=BACKENDS, dest="backends",
                    help="backend to emit; repeat for several (default: all)")
    ap.add_argument("--table", action="store_true", help="print the geometric product table")
    ap.add_argument("--no-sanity", action="store_true",
                    help="skip the clifford cross-check of the multiplication table")
    ap.add_argument("--max-iterations", type=int, default=DEFAULT_MAX_ITERATIONS)
    return ap


def config_from_args(args) -> GeneratorConfig:

    return GeneratorConfig(
        isa=args.isa,
        backends=args.backends or list(BACKENDS),
        output_dir=args.output_dir,
        max_iterations=args.max_iterations,
        sanity=not args.no_sanity,
        print_table=args.table,
    )


def main(argv=None) -> int:

    args = build_parser().parse_args(argv)
    if args.max_iterations < 1:
        logger.error("--max-iterations must be at least 1")
        return 1
    reports = generate_all(args.descriptors, config_from_args(args))

    status = 0
    for report in reports:
        for error in report.errors:
            logger.error("%s: %s", report.name, error)
        for pair in report.failures:
            logger.error("%s %s (%s): %s", report.name, pair.pair, pair.backend or "all backends", pair.detail)
        if report.failed:
            status = 1
    return status


if __name__ == "__main__":
    sys.exit(main())
