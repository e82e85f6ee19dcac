"""Model manager: locate, fetch, and load the ONNX models behind the face capability.

All five models are loaded once, in parallel, before the service accepts traffic.
Artifacts are read from ``models_dir``; when ``model_repo`` is configured, missing
files are fetched from the Hugging Face Hub first. There are no retries.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from facescope.errors import CapabilityBootstrapError

if TYPE_CHECKING:
    from facescope.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def get_session(self, role: ModelRole) -> InferenceSession:
        """Return the session for a model role."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return roles of currently loaded models."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


class ModelRole(StrEnum):
    DETECTOR = "detector"
    LANDMARKS = "landmarks"
    RECOGNITION = "recognition"
    EXPRESSION = "expression"
    AGE_GENDER = "age_gender"


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX model."""

    role: ModelRole
    filename: str
    description: str


MODEL_REGISTRY: dict[ModelRole, ModelSpec] = {
    ModelRole.DETECTOR: ModelSpec(
        role=ModelRole.DETECTOR,
        filename="ultraface_rfb_640.onnx",
        description="UltraFace RFB-640 face detector",
    ),
    ModelRole.LANDMARKS: ModelSpec(
        role=ModelRole.LANDMARKS,
        filename="landmarks_68.onnx",
        description="68-point facial landmark regressor",
    ),
    ModelRole.RECOGNITION: ModelSpec(
        role=ModelRole.RECOGNITION,
        filename="arcface_r100.onnx",
        description="ArcFace 512-d face embedder",
    ),
    ModelRole.EXPRESSION: ModelSpec(
        role=ModelRole.EXPRESSION,
        filename="emotion_ferplus_8.onnx",
        description="FER+ facial expression classifier",
    ),
    ModelRole.AGE_GENDER: ModelSpec(
        role=ModelRole.AGE_GENDER,
        filename="genderage.onnx",
        description="Age and gender estimator",
    ),
}


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Locates artifacts and holds one InferenceSession per model role."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)

        self._lock = threading.Lock()
        self._sessions: dict[ModelRole, InferenceSession] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_available(self, role: ModelRole) -> Path:
        """Return the local path of a model, fetching it from the Hub if configured."""
        spec = self._get_spec(role)
        local = self._models_dir / spec.filename
        if local.is_file():
            return local

        if self._settings.model_repo is None:
            raise FileNotFoundError(f"Model file for '{role}' not found: {local}")

        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=self._settings.model_repo,
                filename=spec.filename,
                revision=self._settings.model_revision,
                local_dir=str(self._models_dir),
            )
        )
        logger.info("Downloaded %s to %s", role, downloaded)
        return downloaded

    def get_session(self, role: ModelRole) -> InferenceSession:
        """Return the cached InferenceSession for a role, creating one if needed."""
        with self._lock:
            session = self._sessions.get(role)
            if session is not None:
                return session

        model_path = self.ensure_available(role)
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )

        with self._lock:
            # Another thread may have created it while we loaded.
            existing = self._sessions.get(role)
            if existing is not None:
                return existing
            self._sessions[role] = session
            logger.info("Loaded %s from %s", role, model_path)
            return session

    def load_all(self) -> None:
        """Load every registered model in parallel.

        Raises:
            CapabilityBootstrapError: If any model fails to load. The first failure
                in registry order is reported.
        """
        roles = list(MODEL_REGISTRY)
        with ThreadPoolExecutor(max_workers=len(roles), thread_name_prefix="model-load") as pool:
            futures = {role: pool.submit(self.get_session, role) for role in roles}

        for role, future in futures.items():
            exc = future.exception()
            if exc is not None:
                raise CapabilityBootstrapError(f"Failed to load model '{role}': {exc}") from exc

    def get_loaded_models(self) -> list[str]:
        """Return roles of models with active sessions."""
        with self._lock:
            return [str(role) for role in self._sessions]

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        with self._lock:
            self._sessions.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _get_spec(role: ModelRole | str) -> ModelSpec:
        try:
            return MODEL_REGISTRY[ModelRole(role)]
        except ValueError:
            raise KeyError(f"Unknown model role: {role}") from None

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
