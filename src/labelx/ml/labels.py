"""Label catalog: one ordered label list per model."""

from __future__ import annotations

import logging
from pathlib import Path

from labelx.errors import LabelLoadError

logger = logging.getLogger(__name__)


def load_labels(path: str | Path) -> list[str]:
    """Read a label file, one label per line, in file order.

    Line i names output class i. Lines are kept verbatim apart from the line
    terminator; an empty file gives an empty list.

    Raises:
        LabelLoadError: If the file cannot be opened or decoded.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LabelLoadError(f"cannot read label file {path}: {exc}") from exc

    labels = [line.removesuffix("\r") for line in text.split("\n")]
    if labels and labels[-1] == "":
        labels.pop()
    logger.debug("Loaded %d labels from %s", len(labels), path)
    return labels
