"""Tests for the model registry."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import make_settings
from labelx.config import DEFAULT_ENSEMBLE, EnsembleMember
from labelx.errors import LabelLoadError, ModelLoadError
from labelx.ml.model_manager import InterpreterOptions, ModelRegistry, build_session_options

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_member(tmp_path: Path, name: str, labels: str = "a\nb\n") -> EnsembleMember:
    model_path = tmp_path / f"{name}.onnx"
    model_path.write_bytes(f"{name}-bytes".encode())
    label_path = tmp_path / f"{name}_labels.txt"
    label_path.write_text(labels, encoding="utf-8")
    return EnsembleMember(name=name, model_path=str(model_path), label_path=str(label_path))


# ---------------------------------------------------------------------------
# Ensemble configuration
# ---------------------------------------------------------------------------


class TestEnsembleTable:
    def test_default_order(self) -> None:
        assert [m.name for m in DEFAULT_ENSEMBLE] == ["mobilenet", "i_v4"]

    def test_settings_use_default_ensemble(self) -> None:
        settings = make_settings()
        assert [m.name for m in settings.ensemble] == ["mobilenet", "i_v4"]

    def test_session_options_threads(self) -> None:
        opts = build_session_options(InterpreterOptions(num_threads=8, log_severity=3))
        assert opts.intra_op_num_threads == 8
        assert opts.log_severity_level == 3


# ---------------------------------------------------------------------------
# ModelRegistry
# ---------------------------------------------------------------------------


class TestModelRegistryLoad:
    @patch("labelx.ml.model_manager.InferenceSession")
    def test_load_reads_bytes_and_probes_runtime(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "mobilenet.onnx"
        model_file.write_bytes(b"onnx")
        registry = ModelRegistry(make_settings())

        model = registry.load(model_file)

        assert model.content == b"onnx"
        assert model.name == "mobilenet"
        assert model.path == model_file
        assert mock_session_cls.call_args.args[0] == b"onnx"

    @patch("labelx.ml.model_manager.InferenceSession")
    def test_load_twice_gives_independent_handles(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "m.onnx"
        model_file.write_bytes(b"onnx")
        registry = ModelRegistry(make_settings())

        first = registry.load(model_file)
        second = registry.load(model_file)

        assert first is not second
        assert first.content == second.content

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        registry = ModelRegistry(make_settings())
        with pytest.raises(ModelLoadError, match="cannot read model"):
            registry.load(tmp_path / "missing.onnx")

    def test_empty_file_raises(self, tmp_path: Path) -> None:
        model_file = tmp_path / "empty.onnx"
        model_file.touch()
        registry = ModelRegistry(make_settings())
        with pytest.raises(ModelLoadError, match="empty"):
            registry.load(model_file)

    @patch("labelx.ml.model_manager.InferenceSession")
    def test_runtime_rejection_raises(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        mock_session_cls.side_effect = RuntimeError("invalid protobuf")
        model_file = tmp_path / "bad.onnx"
        model_file.write_bytes(b"garbage")
        registry = ModelRegistry(make_settings())

        with pytest.raises(ModelLoadError, match="invalid protobuf"):
            registry.load(model_file)


class TestEnsureDownloaded:
    @patch("labelx.ml.model_manager.hf_hub_download")
    def test_existing_file_skips_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "m.onnx"
        model_file.write_bytes(b"x")
        member = EnsembleMember(name="m", model_path=str(model_file), label_path="labels.txt", repo_id="org/repo")
        registry = ModelRegistry(make_settings(models_dir=str(tmp_path)))

        assert registry.ensure_downloaded(member) == model_file
        mock_download.assert_not_called()

    @patch("labelx.ml.model_manager.hf_hub_download")
    def test_downloads_from_repo(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "mobilenet_quant.onnx")
        member = EnsembleMember(
            name="mobilenet",
            model_path=str(tmp_path / "absent.onnx"),
            label_path="labels.txt",
            repo_id="org/models",
            filename="mobilenet_quant.onnx",
        )
        registry = ModelRegistry(make_settings(models_dir=str(tmp_path / "cache")))

        path = registry.ensure_downloaded(member)

        mock_download.assert_called_once_with(
            repo_id="org/models",
            filename="mobilenet_quant.onnx",
            local_dir=str(tmp_path / "cache"),
        )
        assert path == tmp_path / "mobilenet_quant.onnx"

    def test_missing_without_repo_raises(self, tmp_path: Path) -> None:
        member = EnsembleMember(name="m", model_path=str(tmp_path / "absent.onnx"), label_path="labels.txt")
        registry = ModelRegistry(make_settings())
        with pytest.raises(ModelLoadError, match="not found"):
            registry.ensure_downloaded(member)


class TestLoadEnsemble:
    @patch("labelx.ml.model_manager.InferenceSession")
    def test_loads_in_table_order(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        members = [_write_member(tmp_path, "mobilenet", "x\ncat\n"), _write_member(tmp_path, "i_v4", "y\n")]
        registry = ModelRegistry(make_settings(ensemble=members))

        loaded = registry.load_ensemble()

        assert [m.name for m in loaded] == ["mobilenet", "i_v4"]
        assert loaded[0].labels == ("x", "cat")
        assert loaded[1].labels == ("y",)
        assert loaded[0].model.content == b"mobilenet-bytes"
        assert registry.members == loaded

    @patch("labelx.ml.model_manager.InferenceSession")
    def test_missing_label_file_raises(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        member = _write_member(tmp_path, "mobilenet")
        member.label_path = str(tmp_path / "nope.txt")
        registry = ModelRegistry(make_settings(ensemble=[member]))

        with pytest.raises(LabelLoadError):
            registry.load_ensemble()

    @patch("labelx.ml.model_manager.InferenceSession")
    def test_shutdown_releases_models(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        registry = ModelRegistry(make_settings(ensemble=[_write_member(tmp_path, "mobilenet")]))
        registry.load_ensemble()
        assert len(registry.members) == 1

        registry.shutdown()
        assert registry.members == []
