"""Tests for the ONNX model manager."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from facescope.config import Settings
from facescope.errors import CapabilityBootstrapError
from facescope.ml.model_manager import MODEL_REGISTRY, ModelRole, OnnxModelManager

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "models_dir": "/tmp/facescope_test_models",
        "model_repo": None,
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "gpu_mem_limit": 2_147_483_648,
        "max_concurrent": 2,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def _touch_all(models_dir: Path, skip: ModelRole | None = None) -> None:
    for role, spec in MODEL_REGISTRY.items():
        if role != skip:
            (models_dir / spec.filename).touch()


# ---------------------------------------------------------------------------
# Model registry tests
# ---------------------------------------------------------------------------


class TestModelRegistry:
    def test_registry_has_five_models(self) -> None:
        assert len(MODEL_REGISTRY) == 5

    def test_every_role_registered(self) -> None:
        assert set(MODEL_REGISTRY) == set(ModelRole)

    def test_known_model_lookup(self) -> None:
        spec = MODEL_REGISTRY[ModelRole.DETECTOR]
        assert spec.role == "detector"
        assert spec.filename.endswith(".onnx")

    def test_filenames_unique(self) -> None:
        filenames = [spec.filename for spec in MODEL_REGISTRY.values()]
        assert len(set(filenames)) == len(filenames)


# ---------------------------------------------------------------------------
# OnnxModelManager tests
# ---------------------------------------------------------------------------


class TestEnsureAvailable:
    @patch("facescope.ml.model_manager.hf_hub_download")
    def test_local_file_skips_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "genderage.onnx"
        model_file.touch()
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path), model_repo="org/models"))

        path = mgr.ensure_available(ModelRole.AGE_GENDER)

        mock_download.assert_not_called()
        assert path == model_file

    def test_missing_file_without_repo_raises(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        with pytest.raises(FileNotFoundError, match="landmarks"):
            mgr.ensure_available(ModelRole.LANDMARKS)

    @patch("facescope.ml.model_manager.hf_hub_download")
    def test_missing_file_downloaded_from_repo(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "arcface_r100.onnx")
        mgr = OnnxModelManager(
            _make_settings(models_dir=str(tmp_path), model_repo="org/models", model_revision="v1")
        )

        path = mgr.ensure_available(ModelRole.RECOGNITION)

        mock_download.assert_called_once_with(
            repo_id="org/models",
            filename="arcface_r100.onnx",
            revision="v1",
            local_dir=str(tmp_path),
        )
        assert path == tmp_path / "arcface_r100.onnx"

    def test_unknown_role_raises_keyerror(self) -> None:
        mgr = OnnxModelManager(_make_settings())
        with pytest.raises(KeyError, match="Unknown model role"):
            mgr.ensure_available("totally_fake_model")  # type: ignore[arg-type]


class TestSessions:
    @patch("facescope.ml.model_manager.InferenceSession")
    def test_get_session_creates_and_caches(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        _touch_all(tmp_path)
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        session1 = mgr.get_session(ModelRole.DETECTOR)
        session2 = mgr.get_session(ModelRole.DETECTOR)

        assert session1 is mock_session
        assert session2 is mock_session
        mock_session_cls.assert_called_once()
        assert mock_session_cls.call_args.args[0] == str(tmp_path / "ultraface_rfb_640.onnx")

    @patch("facescope.ml.model_manager.InferenceSession")
    def test_get_loaded_models(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        _touch_all(tmp_path)
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        assert mgr.get_loaded_models() == []
        mgr.get_session(ModelRole.EXPRESSION)
        assert mgr.get_loaded_models() == ["expression"]

    @patch("facescope.ml.model_manager.InferenceSession")
    def test_load_all_loads_every_role(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        _touch_all(tmp_path)
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        mgr.load_all()

        assert sorted(mgr.get_loaded_models()) == sorted(str(role) for role in ModelRole)
        assert mock_session_cls.call_count == 5

    @patch("facescope.ml.model_manager.InferenceSession")
    def test_load_all_fails_on_missing_model(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        _touch_all(tmp_path, skip=ModelRole.LANDMARKS)
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        with pytest.raises(CapabilityBootstrapError, match="landmarks"):
            mgr.load_all()

    @patch("facescope.ml.model_manager.InferenceSession")
    def test_load_all_fails_on_corrupt_model(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        _touch_all(tmp_path)

        def _load(path: str, **_: object) -> MagicMock:
            if path.endswith("genderage.onnx"):
                raise RuntimeError("Protobuf parsing failed")
            return MagicMock()

        mock_session_cls.side_effect = _load
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        with pytest.raises(CapabilityBootstrapError, match="Protobuf parsing failed"):
            mgr.load_all()
        assert "age_gender" not in mgr.get_loaded_models()

    @patch("facescope.ml.model_manager.InferenceSession")
    def test_shutdown_clears_sessions(self, mock_session_cls: MagicMock, tmp_path: Path) -> None:
        _touch_all(tmp_path)
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))
        mgr.get_session(ModelRole.DETECTOR)
        assert len(mgr.get_loaded_models()) == 1

        mgr.shutdown()
        assert mgr.get_loaded_models() == []


class TestProviders:
    def test_provider_building_cpu(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cpu"))
        assert mgr._providers == ["CPUExecutionProvider"]

    def test_provider_building_cuda(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cuda"))
        assert len(mgr._providers) == 2
        provider_name, provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert mgr._providers[1] == "CPUExecutionProvider"

    def test_provider_building_openvino(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="openvino"))
        assert len(mgr._providers) == 2
        provider_name, _provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"
        assert mgr._providers[1] == "CPUExecutionProvider"
