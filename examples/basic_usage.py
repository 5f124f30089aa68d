#!/usr/bin/env python3
"""
Basic postcorrect Usage Example

This example demonstrates the core workflow:
1. Load a configuration
2. Train the ranker (rr) and decision maker (dm)
3. Evaluate a trained classifier
4. Correct a directory of OCR line snippets
5. Align OCR readings by hand
"""

import asyncio
import json

from postcorrect import (
    StaticProfiler,
    TokenStats,
    align_strings,
    load_config,
    run_correction,
    run_evaluation,
    run_training,
)

# Line snippets: <id>.ocr.txt holds the OCR, <id>.gt.txt the ground truth.
EXTENSIONS = [".ocr.txt", ".gt.txt"]
TRAIN_DIRS = ["path/to/train/book1", "path/to/train/book2"]
TEST_DIRS = ["path/to/test/book3"]


async def main():
    # ─────────────────────────────────────────────────────────────────────────
    # 1. Configuration
    # ─────────────────────────────────────────────────────────────────────────

    # Empty string: defaults; otherwise a YAML/JSON file or an inline JSON object
    config = load_config("config.yaml")
    config.overwrite(model="output/model.json.gz", nocr=0, cache=True)

    # ─────────────────────────────────────────────────────────────────────────
    # 2. Training
    # ─────────────────────────────────────────────────────────────────────────

    # The decision maker ranks with the rr classifier, so rr comes first
    stats = TokenStats(gt=True)
    await run_training("rr", config, TRAIN_DIRS, EXTENSIONS, stats=stats)
    print(json.dumps(stats.to_dict(), indent=2))

    await run_training("dm", config, TRAIN_DIRS, EXTENSIONS)
    await run_training("ms", config, TRAIN_DIRS, EXTENSIONS)

    # ─────────────────────────────────────────────────────────────────────────
    # 3. Evaluation
    # ─────────────────────────────────────────────────────────────────────────

    metrics = await run_evaluation("dm", config, TEST_DIRS, EXTENSIONS, threshold=0.5)
    print(f"dm: precision={metrics.precision:.3f} recall={metrics.recall:.3f}")

    # ─────────────────────────────────────────────────────────────────────────
    # 4. Correction
    # ─────────────────────────────────────────────────────────────────────────

    for token in await run_correction(config, TEST_DIRS, EXTENSIONS[:1]):
        if token.master != token.cor:
            print(f"{token.id}: {token.master} -> {token.cor}")

    # A fixed profile avoids loading a word list (useful for experiments)
    profiler = StaticProfiler({})
    await run_evaluation("rr", config, TEST_DIRS, EXTENSIONS, profiler=profiler)


def alignment_example():
    """Align a master OCR with other readings word by word."""
    for row in align_strings("n uch ter in", "nuchter in", "nuchter m"):
        print(" | ".join(row))


if __name__ == "__main__":
    # Note: These examples use placeholder paths.
    # Replace with actual snippet directories to run.
    alignment_example()
    asyncio.run(main())
