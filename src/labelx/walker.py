"""Batch driver: classify every file under a directory and annotate the hits.

The walk is sequential and fail-fast. The first error on any file stops the
batch and is re-raised as :class:`~labelx.errors.PipelineError` naming that file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from labelx.annotator import AnnotationRequest
from labelx.errors import LabelIndexError, PipelineError, PipelineIOError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from labelx.annotator import Annotator
    from labelx.ml.image_classifier import ImageClassifier, PredictionResult
    from labelx.ml.model_manager import LoadedMember
    from labelx.rules import RuleMatcher

logger = logging.getLogger(__name__)

DEFAULT_MIRROR_DEPTH = 6
DEFAULT_MAX_LABELS_PER_MODEL = 7


@dataclass
class WalkSummary:
    """Counts for a completed walk."""

    files_seen: int = 0
    files_annotated: int = 0
    files_skipped: int = 0


def format_line(model_name: str, label: str, display_label: str, score: float) -> str:
    return f"{model_name} - {label}({display_label}): {score:.2f}"


def iter_files(root: str | Path) -> Iterator[Path]:
    """Yield every non-directory entry under ``root``, in lexical order."""
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        dirnames.sort()
        for name in sorted(filenames):
            yield Path(dirpath, name)


def output_path_for(source: str | Path, output_root: str | Path, mirror_depth: int = DEFAULT_MIRROR_DEPTH) -> Path:
    """Map a source file to its annotated copy under ``output_root``.

    Sources deeper than ``mirror_depth`` directories keep their last
    ``mirror_depth`` parent directories (e.g. ``user/Photos/preview/2020/01/01``);
    anything shallower lands directly in ``output_root``.
    """
    source = str(source)
    parts = source.split(os.sep)
    name = os.path.basename(source)
    if len(parts) > mirror_depth + 1:
        return Path(output_root, *parts[-(mirror_depth + 1) : -1], name)
    return Path(output_root, name)


class BatchWalker:
    """Runs the ensemble over a tree and writes annotated copies."""

    def __init__(
        self,
        members: Sequence[LoadedMember],
        classifier: ImageClassifier,
        rules: RuleMatcher,
        annotator: Annotator,
        mirror_depth: int = DEFAULT_MIRROR_DEPTH,
        max_labels_per_model: int = DEFAULT_MAX_LABELS_PER_MODEL,
    ) -> None:
        self._members = list(members)
        self._classifier = classifier
        self._rules = rules
        self._annotator = annotator
        self._mirror_depth = mirror_depth
        self._max_labels = max_labels_per_model

    def label_file(self, path: str | Path) -> list[str]:
        """Return the accepted annotation lines for one image, in ensemble order."""
        lines: list[str] = []
        for member in self._members:
            predictions = self._classifier.classify(member.model, path)
            lines.extend(self._accept(member, predictions))
        return lines

    def process_file(self, path: str | Path, output_root: str | Path) -> Path | None:
        """Label one file and write its annotated copy. Returns ``None`` if nothing qualified."""
        lines = self.label_file(path)
        if not lines:
            logger.debug("No accepted labels for %s", path)
            return None

        out = output_path_for(path, output_root, self._mirror_depth)
        try:
            out.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PipelineIOError(f"cannot create {out.parent}: {exc}") from exc
        return self._annotator.process(AnnotationRequest(Path(path), out, tuple(lines)))

    def walk(self, root: str | Path, output_root: str | Path) -> WalkSummary:
        """Process every file under ``root``.

        Raises:
            PipelineError: On the first failure, naming the file being processed.
        """
        summary = WalkSummary()
        current: Path | str = root
        try:
            for path in iter_files(root):
                current = path
                summary.files_seen += 1
                if self.process_file(path, output_root) is None:
                    summary.files_skipped += 1
                else:
                    summary.files_annotated += 1
        except Exception as exc:
            if isinstance(exc, PipelineError):
                raise
            raise PipelineError(current, exc) from exc

        logger.info(
            "Walk complete: %d files, %d annotated, %d skipped",
            summary.files_seen,
            summary.files_annotated,
            summary.files_skipped,
        )
        return summary

    # -- Internal -----------------------------------------------------------

    def _accept(self, member: LoadedMember, predictions: list[PredictionResult]) -> list[str]:
        accepted: list[str] = []
        for prediction in predictions[: self._max_labels]:
            index = prediction.class_index
            if index >= len(member.labels):
                raise LabelIndexError(
                    f"{member.name}: class index {index} outside label set of {len(member.labels)}"
                )
            label = member.labels[index]
            rule, _found = self._rules.find(label)
            # Thresholds are single precision.
            if np.float32(prediction.score) < np.float32(rule.threshold):
                continue
            accepted.append(format_line(member.name, label, rule.display_label, prediction.score))
        return accepted


def _raise(exc: OSError) -> None:
    raise exc
