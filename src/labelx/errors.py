"""Exception hierarchy for the labelling pipeline.

Every failure is fatal to a batch walk; nothing below is recovered locally.
"""

from __future__ import annotations

from pathlib import Path


class LabelXError(Exception):
    """Base class for all pipeline errors."""


class PipelineIOError(LabelXError, OSError):
    """A file could not be opened, read, or written."""


class LabelLoadError(PipelineIOError):
    """A label file could not be read."""


class DecodeError(LabelXError):
    """An image could not be decoded."""


class EncodeError(LabelXError):
    """An annotated image could not be encoded."""


class ModelLoadError(LabelXError):
    """A model file is missing or cannot be turned into a runtime handle."""


class AllocationError(LabelXError):
    """An interpreter could not be created or its tensors allocated."""


class InferenceError(LabelXError):
    """Running the model failed."""


class UnsupportedTypeError(LabelXError):
    """A tensor has an element type or layout the pipeline cannot feed or read."""


class RuleFileError(LabelXError):
    """A rules file is malformed."""


class LabelIndexError(LabelXError):
    """A predicted class index has no entry in the model's label set."""


class PipelineError(LabelXError):
    """Wraps a failure with the source file being processed when it happened."""

    def __init__(self, path: str | Path, cause: Exception) -> None:
        super().__init__(f"{path}: {cause}")
        self.path = Path(path)
        self.cause = cause
