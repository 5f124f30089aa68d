"""
postcorrect: Post-correction of multi-source OCR.

This library aligns the readings of several OCR engines word by word,
profiles the master reading for correction candidates and trains
logistic regression classifiers that rank the candidates, decide whether
to correct a token and decide whether adjacent tokens should be merged.
All processing runs as a pipeline of concurrent asyncio stages.

Example:
    >>> import asyncio
    >>> import postcorrect
    >>> config = postcorrect.load_config("postcorrect.yaml")
    >>> config.overwrite(model="model.json.gz", nocr=2)
    >>> asyncio.run(postcorrect.run_training("rr", config, ["book1"], [".tsv", ".ocr2.txt", ".gt.txt"]))

    >>> # Compose stages by hand
    >>> from postcorrect.stream import normalize, pipe, tee
    >>> ext = postcorrect.Extensions([".tsv", ".gt.txt"])
    >>> asyncio.run(pipe(ext.tokenize("book1"), normalize(), tee(print)))
"""

from postcorrect.align import Pos, align, align_lev, align_strings
from postcorrect.config import (
    DMSettings,
    MSSettings,
    PostCorrectConfig,
    ProfilerSettings,
    TrainingSettings,
    load_config,
)
from postcorrect.evaluation import BinaryMetrics, TokenStats
from postcorrect.exceptions import (
    ConfigurationError,
    PayloadError,
    PipelineError,
    PostCorrectError,
    ProfileError,
    StageError,
)
from postcorrect.features import FeatureSet
from postcorrect.lm import FreqList, load_freq_list
from postcorrect.ml import LogisticRegression
from postcorrect.model import Model, read_model
from postcorrect.models import (
    # Tokens
    Char,
    Document,
    Token,
    # Payloads
    Candidate,
    Correction,
    PayloadKind,
    Ranking,
    Rankings,
    Split,
    # Profile
    Interpretation,
    Pattern,
    Profile,
)
from postcorrect.profiler import (
    CachedProfiler,
    Profiler,
    SpellcheckProfiler,
    StaticProfiler,
    read_profile,
    write_profile,
)
from postcorrect.runs import run_correction, run_evaluation, run_training
from postcorrect.snippets import Extensions

__version__ = "0.1.0"
__all__ = [
    # Runs
    "run_training",
    "run_evaluation",
    "run_correction",
    # Configuration
    "PostCorrectConfig",
    "TrainingSettings",
    "DMSettings",
    "MSSettings",
    "ProfilerSettings",
    "load_config",
    # Alignment
    "Pos",
    "align",
    "align_lev",
    "align_strings",
    # Data model
    "Char",
    "Document",
    "Token",
    "Candidate",
    "Correction",
    "PayloadKind",
    "Ranking",
    "Rankings",
    "Split",
    "Interpretation",
    "Pattern",
    "Profile",
    # Profilers
    "Profiler",
    "SpellcheckProfiler",
    "StaticProfiler",
    "CachedProfiler",
    "read_profile",
    "write_profile",
    # Models
    "FeatureSet",
    "FreqList",
    "load_freq_list",
    "LogisticRegression",
    "Model",
    "read_model",
    # Input
    "Extensions",
    # Evaluation
    "BinaryMetrics",
    "TokenStats",
    # Exceptions
    "PostCorrectError",
    "ConfigurationError",
    "PipelineError",
    "PayloadError",
    "ProfileError",
    "StageError",
]
