"""
Persisted classifiers.

A model file holds one trained classifier per kind (``rr`` ranking,
``dm`` decision making, ``ms`` merge splitting) and number of OCR readings,
each with the names of the features it was trained on, together with the
global language models the features refer to. Model files are gzipped
JSON.
"""

from __future__ import annotations

import gzip
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from postcorrect.exceptions import ConfigurationError
from postcorrect.features import FeatureSet
from postcorrect.lm import FreqList, load_freq_list
from postcorrect.ml.lr import LogisticRegression

logger = logging.getLogger(__name__)

MODEL_VERSION = 1


@dataclass
class ModelData:
    features: list[str]
    lr: LogisticRegression

    def to_dict(self) -> dict[str, Any]:
        return {"features": self.features, "lr": self.lr.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelData:
        return cls(features=list(data["features"]), lr=LogisticRegression.from_dict(data["lr"]))


@dataclass
class Model:
    """
    Trained classifiers keyed by kind and number of OCR readings.

    Example:
        >>> model = read_model("model.json.gz", {"3grams": "3grams.csv.gz"}, create=True)
        >>> model.put("rr", 2, lr, ["CandidateLevDist", "CandidateLen"])
        >>> model.write("model.json.gz")
        >>> lr, fs = model.get("rr", 2)
    """

    models: dict[str, dict[int, ModelData]] = field(default_factory=dict)
    ngrams: dict[str, FreqList] = field(default_factory=dict)

    def put(self, kind: str, nocr: int, lr: LogisticRegression, features: list[str]) -> None:
        self.models.setdefault(kind, {})[nocr] = ModelData(list(features), lr)

    def get(self, kind: str, nocr: int) -> tuple[LogisticRegression, FeatureSet]:
        """
        Return the classifier and feature set for ``kind`` and ``nocr``.

        Raises:
            ConfigurationError: If the model has no such classifier or its
                feature names are no longer valid.
        """
        data = self.models.get(kind, {}).get(nocr)
        if data is None:
            raise ConfigurationError(f"model has no {kind} classifier for nocr={nocr}")
        return data.lr, FeatureSet.from_names(data.features)

    def load_language_models(self, lms: dict[str, str | Path]) -> None:
        """Load the named frequency lists the model does not hold yet."""
        for name, path in lms.items():
            if name not in self.ngrams:
                self.ngrams[name] = load_freq_list(path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": MODEL_VERSION,
            "models": {
                kind: {str(nocr): data.to_dict() for nocr, data in byocr.items()}
                for kind, byocr in self.models.items()
            },
            "ngrams": {name: freqs.to_dict() for name, freqs in self.ngrams.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Model:
        return cls(
            models={
                kind: {int(nocr): ModelData.from_dict(d) for nocr, d in byocr.items()}
                for kind, byocr in data.get("models", {}).items()
            },
            ngrams={name: FreqList.from_dict(d) for name, d in data.get("ngrams", {}).items()},
        )

    def write(self, path: Path | str) -> None:
        """
        Write the model as gzipped JSON.

        Raises:
            OSError: If the file cannot be written.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with gzip.open(path, "wt", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False)
        logger.info("Wrote model %s", path)


def read_model(
    path: Path | str,
    lms: dict[str, str | Path] | None = None,
    create: bool = False,
) -> Model:
    """
    Read a model and load any missing language models.

    Args:
        path: Gzipped JSON model file.
        lms: Language model names mapped to frequency list files.
        create: Start from an empty model if ``path`` does not exist.

    Raises:
        ConfigurationError: If the file is missing (and ``create`` is
            false) or is not a model.
    """
    path = Path(path)
    if path.exists():
        try:
            with gzip.open(path, "rt", encoding="utf-8") as f:
                model = Model.from_dict(json.load(f))
        except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
            raise ConfigurationError(f"cannot read model {path}: {e}") from e
    elif create:
        logger.info("Creating new model %s", path)
        model = Model()
    else:
        raise ConfigurationError(f"model {path} does not exist")
    model.load_language_models(lms or {})
    return model
