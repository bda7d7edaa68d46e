#!/usr/bin/env python3
# -*- coding: utf8 -*-
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import coloredlogs
from pydantic import ValidationError

from annopatch.config import RunConfig, SourceConfig
from annopatch.errors import PatchError
from annopatch.pipeline import run
from annopatch.version import VERSION


class HelpFormatter(argparse.ArgumentDefaultsHelpFormatter):
    def __init__(self, *args, **kwargs):
        kwargs.setdefault("width", 79)

        super().__init__(*args, **kwargs)


def non_negative_int(value: str) -> int:
    result = int(value)
    if result < 0:
        raise argparse.ArgumentTypeError(f"{value!r} is negative")

    return result


def positive_int(value: str) -> int:
    result = int(value)
    if result < 1:
        raise argparse.ArgumentTypeError(f"{value!r} is not a positive number")

    return result


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        formatter_class=HelpFormatter,
        prog="annopatch",
        description="Merge annotation tables into the INFO and FILTER columns of a "
        "VCF file, as described by one patch spec per annotation table",
    )

    parser.add_argument(
        "in_file",
        type=Path,
        help="Input VCF file; use '-' to read from STDIN",
    )

    parser.add_argument(
        "--annotation",
        dest="annotations",
        metavar=("FILE", "SPEC"),
        nargs=2,
        type=Path,
        default=[],
        action="append",
        help="Annotation table and the YAML patch spec describing it. May be "
        "specified zero or more times; sources are applied in the order given",
    )

    parser.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        type=Path,
        help="Write patched VCF to FILE instead of STDOUT",
    )

    group = parser.add_argument_group("Processing")
    group.add_argument(
        "--workers",
        metavar="N",
        type=non_negative_int,
        default=0,
        help="Number of workers used to patch records; 0 patches records in the "
        "main thread",
    )
    group.add_argument(
        "--chunk-size",
        metavar="N",
        type=positive_int,
        default=1_000,
        help="Number of records processed by a worker per task",
    )
    group.add_argument(
        "--processes",
        action="store_true",
        help="Use worker processes rather than worker threads",
    )
    group.add_argument(
        "--lenient",
        action="store_true",
        help="Skip malformed VCF/annotation lines with a warning, instead of "
        "aborting",
    )

    group = parser.add_argument_group("Logging")
    group.add_argument(
        "--log-level",
        default="info",
        choices=("debug", "info", "warning", "error"),
        type=str.lower,
        help="Log messages at the specified level",
    )

    parser.add_argument("--version", action="version", version=VERSION)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    coloredlogs.install(
        level=args.log_level,
        datefmt="%Y-%m-%d %H:%M:%S",
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        # Workaround for coloredlogs disabling colors in docker containers
        isatty=sys.stderr.isatty(),
    )

    log = logging.getLogger("annopatch")

    try:
        config = RunConfig(
            vcf=None if str(args.in_file) == "-" else args.in_file,
            sources=tuple(
                SourceConfig(annotations=annotations, spec=spec)
                for annotations, spec in args.annotations
            ),
            output=None if args.output is None or str(args.output) == "-" else args.output,
            workers=args.workers,
            chunk_size=args.chunk_size,
            processes=args.processes,
            strict=not args.lenient,
        )
    except ValidationError as error:
        log.error("invalid settings: %s", error)
        return 1

    try:
        run(config, log)
    except PatchError as error:
        log.error("%s", error)
        return 1
    except OSError as error:
        log.error("I/O error: %s", error)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
