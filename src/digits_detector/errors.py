from __future__ import annotations

from enum import Enum
from typing import Final


class ErrorCode(str, Enum):
    model_load_failed = "model_load_failed"
    service_not_ready = "service_not_ready"
    bad_dimensions = "bad_dimensions"
    preprocessing_failed = "preprocessing_failed"
    inference_failed = "inference_failed"


_DEFAULT_MESSAGE: Final[dict[ErrorCode, str]] = {
    ErrorCode.model_load_failed: "Failed to load the model artifact.",
    ErrorCode.service_not_ready: "Image classifier has not been initialized.",
    ErrorCode.bad_dimensions: "Image must be exactly 28x28 pixels.",
    ErrorCode.preprocessing_failed: "Image preprocessing failed.",
    ErrorCode.inference_failed: "Model inference failed.",
}


class AppError(Exception):
    def __init__(self, code: ErrorCode, message: str | None = None) -> None:
        msg = message if message is not None else default_message(code)
        super().__init__(msg)
        self.code = code
        self.message = msg


def default_message(code: ErrorCode) -> str:
    return _DEFAULT_MESSAGE.get(code, "")
