"""
Command line interface.

Usage:
    postcorrect align "master line" "other line" ...
    postcorrect train rr -c config.yaml -m model.json.gz -e .tsv -e .gt.txt DIR...
    postcorrect eval ms -c config.yaml -e .tsv -e .calamari.txt -e .gt.txt DIR...
    postcorrect train ff -c config.yaml -m model.json.gz -e .tsv -e .gt.txt DIR...
    postcorrect correct -c config.yaml -e .tsv DIR...
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from postcorrect.align import align_strings
from postcorrect.config import load_config
from postcorrect.evaluation import TokenStats
from postcorrect.exceptions import PostCorrectError
from postcorrect.runs import run_correction, run_evaluation, run_training
from postcorrect.training import KINDS

logger = logging.getLogger(__name__)


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("dirs", nargs="+", help="Snippet directories, one document each")
    parser.add_argument("--config", "-c", default="", help="YAML/JSON file or inline JSON")
    parser.add_argument("--model", "-m", default="", help="Model file (overrides config)")
    parser.add_argument(
        "--extension",
        "-e",
        dest="extensions",
        action="append",
        required=True,
        help="Snippet file extension; master OCR first, ground truth last",
    )
    parser.add_argument("--nocr", type=int, default=0, help="Number of OCR readings")
    parser.add_argument("--cache", action="store_true", help="Cache document profiles")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="postcorrect",
        description="Post-correction of multi-source OCR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More logging")
    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser("align", help="Align readings of one line")
    p.add_argument("master")
    p.add_argument("others", nargs="*")

    p = commands.add_parser("train", help="Train a classifier")
    p.add_argument("kind", choices=sorted(KINDS))
    p.add_argument("--update", action="store_true", help="Continue the model's classifier")
    p.add_argument("--filter", default="", help="Decision-maker training filter")
    _add_run_arguments(p)

    p = commands.add_parser("eval", help="Evaluate a classifier")
    p.add_argument("kind", choices=sorted(KINDS))
    p.add_argument("--threshold", type=float, default=0.5)
    _add_run_arguments(p)

    p = commands.add_parser("correct", help="Correct OCR tokens")
    p.add_argument("--threshold", type=float, default=0.5)
    p.add_argument("--gt", action="store_true", help="Input carries ground truth")
    _add_run_arguments(p)
    return parser


async def _run(args: argparse.Namespace) -> None:
    config = load_config(args.config)
    config.overwrite(
        model=args.model,
        filter=getattr(args, "filter", ""),
        nocr=args.nocr,
        cache=args.cache,
        gt=getattr(args, "gt", False),
    )
    if args.command == "train":
        stats = TokenStats(gt=True)
        await run_training(
            args.kind, config, args.dirs, args.extensions, update=args.update, stats=stats
        )
        print(json.dumps(stats.to_dict(), indent=2))
    elif args.command == "eval":
        metrics = await run_evaluation(
            args.kind, config, args.dirs, args.extensions, threshold=args.threshold
        )
        print(json.dumps({"kind": args.kind, "nocr": config.nocr, **metrics.to_dict()}, indent=2))
    else:
        for t in await run_correction(
            config, args.dirs, args.extensions, threshold=args.threshold
        ):
            print(f"{t.id}\t{t.master}\t{t.cor}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    if args.command == "align":
        for row in align_strings(args.master, *args.others):
            print(" | ".join(row))
        return 0
    try:
        asyncio.run(_run(args))
    except PostCorrectError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
