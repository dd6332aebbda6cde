"""Shared test helpers: synthetic images and fake ONNX Runtime sessions."""

from __future__ import annotations

import struct
import zlib
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
from PIL import Image

from labelx.config import Settings
from labelx.ml.model_manager import LoadedMember, LoadedModel


def make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "models_dir": "/tmp/labelx_test_models",
        "num_threads": 1,
        "rules_path": None,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def write_image(path: Path, size: tuple[int, int] = (64, 48), color: object = "white", fmt: str = "JPEG") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path, format=fmt)
    return path


def fake_session(
    output: np.ndarray,
    shape: list[int | str] | None = None,
    input_type: str = "tensor(uint8)",
) -> MagicMock:
    session = MagicMock()
    session.get_inputs.return_value = [
        SimpleNamespace(name="input", shape=shape or [1, 224, 224, 3], type=input_type),
    ]
    session.run.return_value = [output]
    return session


def uint8_output(values: list[int]) -> np.ndarray:
    return np.array([values], dtype=np.uint8)


def make_model(name: str = "mobilenet", content: bytes = b"model-bytes") -> LoadedModel:
    return LoadedModel(name=name, path=Path(f"{name}.onnx"), content=content)


def make_member(name: str, labels: list[str], content: bytes | None = None) -> LoadedMember:
    return LoadedMember(
        name=name,
        model=make_model(name, content or name.encode()),
        labels=tuple(labels),
    )


def write_truncated_png(path: Path) -> Path:
    """Write a PNG whose IHDR chunk is shorter than its required 13 bytes."""
    header = b"\x00\x00\x00\x10\x00\x00"
    chunk = b"IHDR" + header
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(
        b"\x89PNG\r\n\x1a\n"
        + struct.pack(">I", len(header))
        + chunk
        + struct.pack(">I", zlib.crc32(chunk) & 0xFFFFFFFF)
        + b"\x00\x00\x00\x00IEND\xaeB`\x82"
    )
    return path
