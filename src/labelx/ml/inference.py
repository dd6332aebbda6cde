"""Per-image inference: preprocess -> invoke -> postprocess.

Every (model, image) pair gets a fresh interpreter (an ONNX Runtime
``InferenceSession`` built from the model's bytes). Interpreters are not
thread-safe and are dropped before ``classify`` returns or raises.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

import numpy as np
from onnxruntime import InferenceSession

from labelx.errors import AllocationError, InferenceError, UnsupportedTypeError
from labelx.ml.image_classifier import PredictionResult
from labelx.ml.model_manager import PROVIDERS, InterpreterOptions, build_session_options
from labelx.ml.preprocessing import decode_image, quantize_rgb, rank_scores, resize_nearest, scores_from_bytes

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from labelx.ml.model_manager import LoadedModel

logger = logging.getLogger(__name__)

UINT8_TENSOR = "tensor(uint8)"
DEFAULT_SCORE_FLOOR: float = 0.2


class InferenceEngine:
    """Runs ensemble members over image files.

    Diagnostics go to ``log``, so callers choose where runtime messages land.
    """

    def __init__(
        self,
        options: InterpreterOptions | None = None,
        score_floor: float = DEFAULT_SCORE_FLOOR,
        log: logging.Logger | None = None,
    ) -> None:
        self._options = options or InterpreterOptions()
        self._session_options = build_session_options(self._options)
        self._score_floor = score_floor
        self._log = log or logger
        self._active_count: int = 0
        self._counter_lock = threading.Lock()

    @property
    def active_count(self) -> int:
        """Number of interpreters currently alive."""
        with self._counter_lock:
            return self._active_count

    @contextmanager
    def interpreter(self, model: LoadedModel) -> Iterator[InferenceSession]:
        """Build an interpreter for ``model`` and release it on every exit path.

        Raises:
            AllocationError: If the runtime cannot create the session.
        """
        try:
            session = InferenceSession(
                model.content,
                sess_options=self._session_options,
                providers=PROVIDERS,
            )
        except Exception as exc:
            raise AllocationError(f"cannot create interpreter for {model.name}: {exc}") from exc

        with self._counter_lock:
            self._active_count += 1
        try:
            yield session
        finally:
            del session
            with self._counter_lock:
                self._active_count -= 1

    def classify(self, model: LoadedModel, image_path: str | Path) -> list[PredictionResult]:
        """Classify one image with one model.

        Returns:
            Predictions with ``score >= score_floor``, sorted by score (descending).

        Raises:
            DecodeError: If the image cannot be decoded.
            AllocationError: If the interpreter cannot be built or has a dynamic input size.
            UnsupportedTypeError: If the input is not 3-channel uint8 or the output is not uint8.
            InferenceError: If invocation fails.
        """
        image = decode_image(image_path)

        with self.interpreter(model) as session:
            # The interpreter must not outlive its scope.
            try:
                input_arg = session.get_inputs()[0]
                height, width, channels = _input_hwc(model, input_arg.shape)
                if input_arg.type != UINT8_TENSOR:
                    raise UnsupportedTypeError(f"{model.name}: input type {input_arg.type} is not wanted type")
                if channels != 3:
                    raise UnsupportedTypeError(f"{model.name}: expected 3 input channels, got {channels}")

                resized = resize_nearest(image, width, height)
                tensor = quantize_rgb(resized)[np.newaxis, ...]

                self._log.debug("Invoking %s on %s (%dx%d)", model.name, image_path, width, height)
                try:
                    outputs = session.run(None, {input_arg.name: tensor})
                except Exception as exc:
                    raise InferenceError(f"{model.name}: invoke failed: {exc}") from exc

                output = np.asarray(outputs[0])
                if output.dtype != np.uint8:
                    raise UnsupportedTypeError(f"{model.name}: output type {output.dtype} is not uint8")
                num_classes = output.shape[-1]
                raw = output.reshape(-1)[:num_classes]
                ranked = rank_scores(scores_from_bytes(raw), self._score_floor)
            finally:
                del session

        return [PredictionResult(score=score, class_index=index) for index, score in ranked]


def classify(
    model: LoadedModel,
    options: InterpreterOptions,
    image_path: str | Path,
) -> list[PredictionResult]:
    """Classify one image with a one-off engine."""
    return InferenceEngine(options).classify(model, image_path)


def _input_hwc(model: LoadedModel, shape: list[int | str | None]) -> tuple[int, int, int]:
    if len(shape) != 4:
        raise UnsupportedTypeError(f"{model.name}: expected NHWC input, got shape {shape}")
    dims = shape[1:]
    if not all(isinstance(d, int) for d in dims):
        raise AllocationError(f"{model.name}: input shape {shape} is not static")
    height, width, channels = dims
    return height, width, channels  # type: ignore[return-value]
