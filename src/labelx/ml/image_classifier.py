"""Classification result type and the classifier protocol the walker depends on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from labelx.ml.model_manager import LoadedModel


@dataclass(frozen=True)
class PredictionResult:
    """A single ranked prediction: class index and score in [0, 1]."""

    score: float
    class_index: int


class ImageClassifier(Protocol):
    """Protocol for running one model over one image file."""

    def classify(self, model: LoadedModel, image_path: str | Path) -> list[PredictionResult]:
        """Classify an image with a loaded model.

        Args:
            model: Loaded model handle from the registry.
            image_path: Image file in any decodable format.

        Returns:
            Predictions sorted by score (descending).
        """
        ...
