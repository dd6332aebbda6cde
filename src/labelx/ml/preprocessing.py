"""Image preprocessing and output postprocessing for quantized classifiers.

The byte conversions here reproduce the reference labeller's numbers exactly
rather than applying a model's real scale/zero-point quantization parameters.
"""

from __future__ import annotations

import struct
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, UnidentifiedImageError

from labelx.errors import DecodeError, PipelineIOError

if TYPE_CHECKING:
    from numpy.typing import NDArray

# 8-bit samples are widened to 16 bits (v * 0x101) before the divide.
_WIDEN = 0x101


def decode_image(path: str | Path, formats: tuple[str, ...] | None = None) -> Image.Image:
    """Decode an image file into an RGB Pillow image.

    Args:
        path: Image file to open.
        formats: Restrict decoding to these Pillow format names (e.g. ``("JPEG",)``).
            ``None`` accepts any format Pillow can read.

    Raises:
        PipelineIOError: If the file cannot be opened.
        DecodeError: If the file is not a supported, intact image.
    """
    try:
        with Image.open(path, formats=formats) as img:
            img.load()
            return img.convert("RGB")
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        SyntaxError,
        ValueError,
        EOFError,
        struct.error,
    ) as exc:
        raise DecodeError(f"cannot decode {path}: {exc}") from exc
    except (FileNotFoundError, PermissionError, IsADirectoryError) as exc:
        raise PipelineIOError(f"cannot open {path}: {exc}") from exc
    except OSError as exc:
        # Pillow reports truncated and corrupt data as OSError.
        raise DecodeError(f"cannot decode {path}: {exc}") from exc


def resize_nearest(image: Image.Image, width: int, height: int) -> Image.Image:
    """Resize to exactly ``(width, height)`` with nearest-neighbour sampling."""
    return image.resize((width, height), Image.Resampling.NEAREST)


def quantize_rgb(image: Image.Image) -> NDArray[np.uint8]:
    """Convert an RGB image into the uint8 input layout, HxWx3 row-major.

    Each sample v becomes ``trunc(v * 0x101 / 255)`` narrowed to a byte, so
    255 wraps to 1 and every other value maps to itself or one above.
    """
    samples = np.asarray(image.convert("RGB"), dtype=np.uint32) * _WIDEN
    scaled = np.trunc(samples / 255.0).astype(np.uint32)
    return (scaled & 0xFF).astype(np.uint8)


def scores_from_bytes(raw: NDArray[np.uint8]) -> NDArray[np.float64]:
    """Map raw uint8 output values to scores in [0, 1] as ``byte / 255``."""
    return raw.astype(np.float64) / 255.0


def rank_scores(scores: NDArray[np.float64], floor: float) -> list[tuple[int, float]]:
    """Return ``(class_index, score)`` pairs with ``score >= floor``, best first.

    Ties keep ascending class-index order.
    """
    keep = np.flatnonzero(scores >= floor)
    order = np.argsort(-scores[keep], kind="stable")
    return [(int(keep[i]), float(scores[keep[i]])) for i in order]
