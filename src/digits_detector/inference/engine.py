from __future__ import annotations

import time
from types import TracebackType
from typing import Final

import torch
from PIL import Image
from torch import Tensor

from ..config import Settings
from ..errors import AppError, ErrorCode
from ..logging import get_logger, log_event
from ..preprocess import preprocess_into
from .assets import LOAD_ERRORS, LoadedEngine, load_engine
from .backends import InferenceBackend, backend_for
from .postprocess import postprocess
from .types import NUMBER_LENGTH, Prediction, new_input_tensor, new_output_tensor

_RUN_ERRORS: Final[tuple[type[BaseException], ...]] = (
    RuntimeError,
    ValueError,
    TypeError,
    LookupError,
    AttributeError,
)


class DigitsDetector:
    """Classifies 28x28 digit bitmaps with a memory-mapped model.

    The model is loaded once at construction. A load failure is logged and
    leaves the detector unusable (``ready is False``); ``classify`` then raises
    ``AppError(service_not_ready)``.

    Input and output tensors are allocated once and reused by every call, so
    an instance must not be shared between threads.
    """

    def __init__(
        self, settings: Settings, backend: InferenceBackend[object] | None = None
    ) -> None:
        self._settings = settings
        self._logger = get_logger()
        self._backend: InferenceBackend[object] = (
            backend if backend is not None else backend_for(settings.digits.backend)
        )
        self._engine: LoadedEngine[object] | None = None
        self._input = new_input_tensor()
        self._output = new_output_tensor()
        if settings.app.threads > 0:
            torch.set_num_threads(settings.app.threads)
        try:
            self._engine = load_engine(
                settings.digits.assets_dir, settings.digits.model_name, self._backend
            )
        except LOAD_ERRORS:
            self._logger.exception(
                "%s name=%s backend=%s",
                ErrorCode.model_load_failed.value,
                settings.digits.model_name,
                self._backend.name,
            )

    @property
    def ready(self) -> bool:
        return self._engine is not None

    @property
    def input_tensor(self) -> Tensor:
        return self._input

    @property
    def output_tensor(self) -> Tensor:
        return self._output

    def classify(self, img: Image.Image | None) -> int:
        """Return the predicted digit 0-9, or -1 when no class is selected."""
        return self.predict(img).digit

    def predict(self, img: Image.Image | None) -> Prediction:
        engine = self._engine
        if engine is None:
            self._logger.error("classifier_not_ready")
            raise AppError(ErrorCode.service_not_ready)
        start = time.perf_counter()
        preprocess_into(img, self._input)
        self._run_inference(engine)
        scores = tuple(float(v) for v in self._output[0].tolist())
        digit = postprocess(
            scores,
            self._settings.digits.selection,
            self._settings.digits.confidence_threshold,
        )
        latency_ms = int((time.perf_counter() - start) * 1000)
        log_event(
            "classify",
            {"digit": digit, "latency_ms": latency_ms, "model_name": engine.model_name},
        )
        return Prediction(
            digit=digit, scores=scores, latency_ms=latency_ms, model_name=engine.model_name
        )

    def close(self) -> None:
        engine = self._engine
        self._engine = None
        if engine is not None:
            engine.close()

    def __enter__(self) -> DigitsDetector:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _run_inference(self, engine: LoadedEngine[object]) -> None:
        try:
            out = engine.backend.run(engine.handle, self._input)
        except _RUN_ERRORS as exc:
            self._logger.info("inference_failed error=%s", type(exc).__name__)
            raise AppError(ErrorCode.inference_failed, str(exc)) from exc
        if out.dtype != torch.float32:
            # Scores are compared exactly, so they must not be converted
            raise AppError(
                ErrorCode.inference_failed, f"model returned {out.dtype} scores, expected float32"
            )
        if out.numel() != NUMBER_LENGTH:
            raise AppError(
                ErrorCode.inference_failed,
                f"model returned {out.numel()} scores, expected {NUMBER_LENGTH}",
            )
        self._output.copy_(out.detach().reshape(self._output.shape))
