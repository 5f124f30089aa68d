"""
Configuration for training, evaluation and correction runs.

Configurations are read from YAML or JSON files or from an inline JSON
string, and command line values overwrite them afterwards. Keys may be
written in snake_case or camelCase (``learning_rate`` or
``learningRate``).

Example:
    >>> config = load_config("postcorrect.yaml")
    >>> config.overwrite(model="model.json.gz", nocr=2)
    >>> config.dm.filter
    'courageous'
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from postcorrect.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CAUTIOUS = "cautious"
COURAGEOUS = "courageous"
REDUNDANT = "redundant"
DM_FILTERS = (CAUTIOUS, COURAGEOUS, REDUNDANT)

CAMEL_HUMP = re.compile(r"(?<=[a-z0-9])([A-Z])")


@dataclass
class TrainingSettings:
    """Features and gradient descent parameters of one classifier."""

    features: list[str] = field(default_factory=list)
    learning_rate: float = 0.9
    ntrain: int = 100_000

    def __post_init__(self):
        """Validate configuration."""
        if self.learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be > 0, got {self.learning_rate}")
        if self.ntrain < 1:
            raise ConfigurationError(f"ntrain must be >= 1, got {self.ntrain}")


@dataclass
class DMSettings(TrainingSettings):
    """
    Decision-maker settings.

    ``filter`` selects the training tokens: ``cautious`` uses all of them,
    ``courageous`` skips incorrect suggestions for incorrect OCR and
    ``redundant`` additionally skips correct suggestions for correct OCR.
    """

    filter: str = COURAGEOUS

    def __post_init__(self):
        """Validate configuration."""
        super().__post_init__()
        if self.filter not in DM_FILTERS:
            raise ConfigurationError(f"filter must be one of {DM_FILTERS}, got {self.filter!r}")


@dataclass
class MSSettings(TrainingSettings):
    """Merge-split settings; ``window`` limits the tokens per merge (0: whole line)."""

    window: int = 0

    def __post_init__(self):
        """Validate configuration."""
        super().__post_init__()
        if self.window < 0 or self.window == 1:
            raise ConfigurationError(f"window must be 0 or >= 2, got {self.window}")


@dataclass
class ProfilerSettings:
    language: str = "en"
    max_distance: int = 2

    def __post_init__(self):
        """Validate configuration."""
        if self.max_distance < 1:
            raise ConfigurationError(f"max_distance must be >= 1, got {self.max_distance}")


@dataclass
class PostCorrectConfig:
    """
    Complete configuration of a run.

    Attributes:
        model: Path of the model file.
        ngrams: Language model names mapped to frequency list files.
        profiler: Settings of the spell checking profiler.
        rr: Candidate ranking classifier.
        dm: Correction decision classifier.
        ms: Merge classifier.
        ff: False friends classifier (lexicon entries that are OCR errors).
        nocr: Number of OCR readings per token (without ground truth).
        cache: Cache document profiles.
        gt: Input carries ground truth as its last reading.
    """

    model: str = ""
    ngrams: dict[str, str] = field(default_factory=dict)
    profiler: ProfilerSettings = field(default_factory=ProfilerSettings)
    rr: TrainingSettings = field(default_factory=TrainingSettings)
    dm: DMSettings = field(default_factory=DMSettings)
    ms: MSSettings = field(default_factory=MSSettings)
    ff: TrainingSettings = field(default_factory=TrainingSettings)
    nocr: int = 1
    cache: bool = False
    gt: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if self.nocr < 1:
            raise ConfigurationError(f"nocr must be >= 1, got {self.nocr}")

    def overwrite(
        self,
        model: str = "",
        filter: str = "",
        nocr: int = 0,
        cache: bool = False,
        gt: bool = False,
    ) -> None:
        """Apply command line values; empty values keep the configured ones."""
        if model:
            self.model = model
        if filter:
            self.dm = DMSettings(
                features=self.dm.features,
                learning_rate=self.dm.learning_rate,
                ntrain=self.dm.ntrain,
                filter=filter,
            )
        if nocr:
            if nocr < 1:
                raise ConfigurationError(f"nocr must be >= 1, got {nocr}")
            self.nocr = nocr
        if cache:
            self.cache = cache
        if gt:
            self.gt = gt

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PostCorrectConfig:
        """
        Build a configuration from a (possibly camelCase) mapping.

        Raises:
            ConfigurationError: On unknown keys or invalid values.
        """
        data = _snake_keys(data)
        ngrams = data.pop("ngrams", {}) or {}
        if isinstance(ngrams, str):
            ngrams = {"3grams": ngrams}
        kwargs: dict[str, Any] = {"ngrams": dict(ngrams)}
        nested = {
            "profiler": ProfilerSettings,
            "rr": TrainingSettings,
            "dm": DMSettings,
            "ms": MSSettings,
            "ff": TrainingSettings,
        }
        for key, value in data.items():
            if key in nested:
                kwargs[key] = _build(nested[key], value or {})
            else:
                kwargs[key] = value
        return _build(cls, kwargs)


def _snake(key: str) -> str:
    return CAMEL_HUMP.sub(r"_\1", key).lower()


def _snake_keys(data: dict[str, Any]) -> dict[str, Any]:
    ret = {}
    for key, value in data.items():
        if isinstance(value, dict) and key != "ngrams":
            value = _snake_keys(value)
        ret[_snake(key)] = value
    return ret


def _build(cls: type, values: dict[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"unknown {cls.__name__} keys: {', '.join(unknown)}")
    try:
        return cls(**values)
    except TypeError as e:
        raise ConfigurationError(f"invalid {cls.__name__}: {e}") from e


def load_config(source: str | Path = "") -> PostCorrectConfig:
    """
    Load a configuration.

    Args:
        source: Empty for the defaults, an inline JSON object, or the path
            of a YAML (``.yaml``/``.yml``) or JSON file.

    Raises:
        ConfigurationError: If the source cannot be read or is invalid.
    """
    if not source:
        return PostCorrectConfig()
    text = str(source)
    if text.startswith("{") and text.endswith("}"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"invalid inline configuration: {e}") from e
        return PostCorrectConfig.from_dict(data)
    path = Path(source)
    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot read configuration {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration {path} must be a mapping")
    logger.debug("Loaded configuration from %s", path)
    return PostCorrectConfig.from_dict(data)
