"""Command-line entry point: ``labelx <sourceDir> [<outputDir>]``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from labelx.annotator import Annotator
from labelx.config import get_settings
from labelx.errors import LabelXError
from labelx.ml.inference import InferenceEngine
from labelx.ml.model_manager import InterpreterOptions, ModelRegistry
from labelx.rules import RuleBook
from labelx.walker import BatchWalker

if TYPE_CHECKING:
    from collections.abc import Sequence

    from labelx.config import Settings

logger = logging.getLogger(__name__)

_QUIET_LOGGERS = ("PIL", "huggingface_hub", "urllib3")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="labelx",
        description="Label every image under a directory with an ensemble of classifiers",
    )
    parser.add_argument("source_dir", help="source image directory")
    parser.add_argument(
        "output_dir",
        nargs="?",
        default=settings.output_dir,
        help=f"annotated image directory (default: {settings.output_dir})",
    )
    parser.add_argument("--rules", default=settings.rules_path, help="JSON rules file (default: accept every label)")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=settings.log_level,
    )
    return parser


def run(settings: Settings, source_dir: str, output_dir: str, rules_path: str | None) -> int:
    """Load the ensemble, walk ``source_dir``, and return a process exit code."""
    logger.info(
        "Starting LabelX (models=%s, source=%s, output=%s)",
        ",".join(m.name for m in settings.ensemble),
        source_dir,
        output_dir,
    )

    registry = ModelRegistry(settings)
    try:
        members = registry.load_ensemble()
        rules = RuleBook.from_file(rules_path) if rules_path else RuleBook()
        engine = InferenceEngine(
            InterpreterOptions(num_threads=settings.num_threads),
            score_floor=settings.score_floor,
            log=logging.getLogger("labelx.runtime"),
        )
        annotator = Annotator(
            canvas_width=settings.canvas_width,
            font_size=settings.font_size,
            font_path=settings.font_path,
            jpeg_quality=settings.jpeg_quality,
        )
        walker = BatchWalker(
            members,
            engine,
            rules,
            annotator,
            mirror_depth=settings.mirror_depth,
            max_labels_per_model=settings.max_labels_per_model,
        )
        walker.walk(source_dir, output_dir)
    except LabelXError as exc:
        logger.error("LabelX failed: %s", exc)
        return 1
    finally:
        registry.shutdown()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    settings = get_settings()
    args = build_parser(settings).parse_args(argv)
    configure_logging(args.log_level)
    return run(settings, args.source_dir, args.output_dir, args.rules)


if __name__ == "__main__":
    sys.exit(main())
