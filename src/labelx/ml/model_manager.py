"""Model registry: resolve, load, and own the ensemble's model handles.

Model files are read once into immutable bytes and validated against ONNX
Runtime. Interpreters (inference sessions) are built from those bytes per
image by :mod:`labelx.ml.inference`; the registry itself never runs a model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from labelx.errors import ModelLoadError
from labelx.ml.labels import load_labels

if TYPE_CHECKING:
    from labelx.config import EnsembleMember, Settings

logger = logging.getLogger(__name__)

PROVIDERS: list[str] = ["CPUExecutionProvider"]


# ---------------------------------------------------------------------------
# Handles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoadedModel:
    """An immutable compiled model, shared read-only by every image."""

    name: str
    path: Path
    content: bytes = field(repr=False)


@dataclass(frozen=True)
class LoadedMember:
    """An ensemble member with its model and label set loaded."""

    name: str
    model: LoadedModel
    labels: tuple[str, ...]


@dataclass(frozen=True)
class InterpreterOptions:
    """Settings applied to every interpreter built for a model.

    ``num_threads`` sizes the runtime's intra-op pool for a single invocation
    (0 lets the runtime decide). ``log_severity`` follows ONNX Runtime's scale,
    0 (verbose) to 4 (fatal).
    """

    num_threads: int = 8
    log_severity: int = 2


def build_session_options(options: InterpreterOptions) -> SessionOptions:
    opts = SessionOptions()
    opts.intra_op_num_threads = options.num_threads
    opts.inter_op_num_threads = 1
    opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    opts.log_severity_level = options.log_severity
    return opts


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ModelRegistry:
    """Loads the configured ensemble and holds it for the lifetime of a run."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._members: list[LoadedMember] = []

    # -- Public API ---------------------------------------------------------

    @property
    def members(self) -> list[LoadedMember]:
        """Loaded members in ensemble order."""
        return list(self._members)

    def load(self, path: str | Path, name: str | None = None) -> LoadedModel:
        """Read a model file and check the runtime can construct it.

        Loading the same path twice returns two independent handles.

        Raises:
            ModelLoadError: If the file is missing, empty, or rejected by the runtime.
        """
        model_path = Path(path)
        try:
            content = model_path.read_bytes()
        except OSError as exc:
            raise ModelLoadError(f"cannot read model {model_path}: {exc}") from exc
        if not content:
            raise ModelLoadError(f"model file {model_path} is empty")

        try:
            InferenceSession(
                content,
                sess_options=build_session_options(InterpreterOptions(num_threads=1)),
                providers=PROVIDERS,
            )
        except Exception as exc:
            raise ModelLoadError(f"cannot construct model from {model_path}: {exc}") from exc

        model = LoadedModel(name=name or model_path.stem, path=model_path, content=content)
        logger.info("Loaded model %s from %s (%d bytes)", model.name, model_path, len(content))
        return model

    def ensure_downloaded(self, member: EnsembleMember) -> Path:
        """Return the member's local model path, downloading it if configured to.

        Raises:
            ModelLoadError: If the file is absent and no Hugging Face repo is named.
        """
        local = Path(member.model_path)
        if local.exists():
            return local
        if member.repo_id is None:
            raise ModelLoadError(f"model file {local} not found for '{member.name}'")

        self._models_dir.mkdir(parents=True, exist_ok=True)
        try:
            downloaded = Path(
                hf_hub_download(
                    repo_id=member.repo_id,
                    filename=member.filename or local.name,
                    local_dir=str(self._models_dir),
                )
            )
        except Exception as exc:
            raise ModelLoadError(f"cannot download '{member.name}' from {member.repo_id}: {exc}") from exc
        logger.info("Downloaded %s to %s", member.name, downloaded)
        return downloaded

    def load_ensemble(self) -> list[LoadedMember]:
        """Load every configured member, in table order, replacing any previous set."""
        members: list[LoadedMember] = []
        for spec in self._settings.ensemble:
            model_path = self.ensure_downloaded(spec)
            model = self.load(model_path, name=spec.name)
            labels = tuple(load_labels(spec.label_path))
            members.append(LoadedMember(name=spec.name, model=model, labels=labels))
        self._members = members
        logger.info("Ensemble ready: %s", ", ".join(m.name for m in members))
        return self.members

    def shutdown(self) -> None:
        """Release all loaded models."""
        self._members.clear()
        logger.info("All models released")
