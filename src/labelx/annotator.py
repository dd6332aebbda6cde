"""Compose annotated copies of source images.

Output layout: a fixed-width canvas as tall as the source, filled with a
cover-fit copy of the source, with an opaque banner across the top holding
one line of text per accepted label.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont, ImageOps

from labelx.errors import EncodeError, PipelineIOError
from labelx.ml.preprocessing import decode_image

logger = logging.getLogger(__name__)

BANNER_COLOR = (0x00, 0x00, 0x00)
TEXT_COLOR = (0xFF, 0x00, 0x00)
TEXT_MARGIN_X = 2

# Monospace face shipped in labelx/fonts.
DEFAULT_FONT = "DejaVuSansMono.ttf"


def load_font(font_size: int, font_path: str | None = None) -> ImageFont.FreeTypeFont:
    """Load the banner font: ``font_path`` if given, else the bundled monospace face.

    Raises:
        PipelineIOError: If the font file cannot be read.
    """
    if font_path is not None:
        try:
            return ImageFont.truetype(font_path, font_size)
        except OSError as exc:
            raise PipelineIOError(f"cannot load font {font_path}: {exc}") from exc

    data = (resources.files("labelx") / "fonts" / DEFAULT_FONT).read_bytes()
    return ImageFont.truetype(io.BytesIO(data), font_size)


@dataclass(frozen=True)
class AnnotationRequest:
    source_path: Path
    output_path: Path
    lines: tuple[str, ...] = field(default_factory=tuple)


class Annotator:
    """Draws label banners onto JPEG copies of source images."""

    def __init__(
        self,
        canvas_width: int = 400,
        font_size: int = 15,
        font_path: str | None = None,
        jpeg_quality: int = 75,
    ) -> None:
        self.canvas_width = canvas_width
        self.font_size = font_size
        self._jpeg_quality = jpeg_quality
        self._font = load_font(font_size, font_path)

    def banner_height(self, num_lines: int) -> int:
        return (num_lines + 1) * self.font_size

    def render(self, source: Image.Image, lines: list[str] | tuple[str, ...]) -> Image.Image:
        """Return the annotated canvas for an already-decoded source image."""
        size = (self.canvas_width, source.height)
        canvas = ImageOps.fit(
            source.convert("RGB"),
            size,
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )

        draw = ImageDraw.Draw(canvas)
        draw.rectangle(
            (0, 0, self.canvas_width - 1, self.banner_height(len(lines)) - 1),
            fill=BANNER_COLOR,
        )

        baseline = self.font_size
        for line in lines:
            self._draw_line(draw, line, baseline)
            baseline += self.font_size
        return canvas

    def annotate(self, source_path: str | Path, output_path: str | Path, lines: list[str] | tuple[str, ...]) -> Path:
        """Decode a JPEG, annotate it with ``lines``, and write it to ``output_path``.

        Raises:
            DecodeError: If the source is not a decodable JPEG.
            EncodeError: If the result cannot be encoded.
            PipelineIOError: If the source cannot be opened or the output written.
        """
        out = Path(output_path)
        logger.info("save [%s] into %s", ",".join(lines), out)

        source = decode_image(source_path, formats=("JPEG",))
        canvas = self.render(source, lines)

        buffer = io.BytesIO()
        try:
            canvas.save(buffer, format="JPEG", quality=self._jpeg_quality)
        except (OSError, ValueError) as exc:
            raise EncodeError(f"cannot encode {out}: {exc}") from exc

        try:
            out.write_bytes(buffer.getvalue())
        except OSError as exc:
            raise PipelineIOError(f"cannot write {out}: {exc}") from exc
        return out

    def process(self, request: AnnotationRequest) -> Path:
        return self.annotate(request.source_path, request.output_path, request.lines)

    # -- Internal -----------------------------------------------------------

    def _draw_line(self, draw: ImageDraw.ImageDraw, text: str, baseline: int) -> None:
        draw.text((TEXT_MARGIN_X, baseline), text, fill=TEXT_COLOR, font=self._font, anchor="ls")
