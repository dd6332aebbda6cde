"""Environment-based configuration for LabelX."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnsembleMember(BaseModel):
    """One classifier in the ensemble: display name, model file, and label file.

    ``repo_id``/``filename`` are optional; when set and ``model_path`` does not
    exist locally, the model is fetched from the Hugging Face Hub.
    """

    model_config = ConfigDict(protected_namespaces=())

    name: str
    model_path: str
    label_path: str
    repo_id: str | None = None
    filename: str | None = None


DEFAULT_ENSEMBLE: list[EnsembleMember] = [
    EnsembleMember(
        name="mobilenet",
        model_path="models/mobilenet_quant_v1_224.onnx",
        label_path="labels.txt",
    ),
    EnsembleMember(
        name="i_v4",
        model_path="models/inception_v4_quant.onnx",
        label_path="labels.txt",
    ),
]


class Settings(BaseSettings):
    """Application settings loaded from LABELX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LABELX_",
        case_sensitive=False,
    )

    # Ensemble, in run order
    ensemble: list[EnsembleMember] = Field(default_factory=lambda: list(DEFAULT_ENSEMBLE))
    models_dir: str = "models"

    # Rules (None = every label accepted)
    rules_path: str | None = None

    # Output
    output_dir: str = "label_images"
    mirror_depth: int = Field(default=6, ge=1)

    # Inference
    num_threads: int = Field(default=8, ge=0)
    score_floor: float = Field(default=0.2, ge=0.0, le=1.0)
    max_labels_per_model: int = Field(default=7, ge=1)

    # Annotation
    canvas_width: int = Field(default=400, gt=0)
    font_size: int = Field(default=15, gt=0)
    font_path: str | None = None
    jpeg_quality: int = Field(default=75, ge=1, le=95)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
