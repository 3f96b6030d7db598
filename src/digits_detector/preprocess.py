from __future__ import annotations

import time

import torch
from PIL import Image
from torch import Tensor

from .errors import AppError, ErrorCode
from .inference.types import DIM_IMG_SIZE_X, DIM_IMG_SIZE_Y, INPUT_LENGTH
from .logging import get_logger


def preprocess_into(img: Image.Image | None, dest: Tensor | None) -> None:
    """Write the inverted blue channel of a 28x28 image into ``dest``.

    Pixels are read row-major; each entry becomes ``255 - blue`` as float32,
    so a black stroke maps to 255.0 and a white background to 0.0. Values are
    not scaled to [0, 1]. Every entry of ``dest`` is overwritten.

    A missing image or destination is a silent no-op.
    """
    if img is None or dest is None:
        return
    width, height = img.size
    if (width, height) != (DIM_IMG_SIZE_X, DIM_IMG_SIZE_Y):
        raise AppError(
            ErrorCode.bad_dimensions,
            f"expected {DIM_IMG_SIZE_X}x{DIM_IMG_SIZE_Y} image, got {width}x{height}",
        )
    if dest.numel() != INPUT_LENGTH:
        raise AppError(
            ErrorCode.preprocessing_failed,
            f"input buffer holds {dest.numel()} values, expected {INPUT_LENGTH}",
        )

    start = time.perf_counter()
    blue = _blue_channel(img)
    if len(blue) != INPUT_LENGTH:
        raise AppError(ErrorCode.preprocessing_failed, "unexpected buffer size")
    data: list[float] = [float(0xFF - blue[i]) for i in range(len(blue))]
    src = torch.tensor(data, dtype=torch.float32).reshape(dest.shape)
    dest.copy_(src)
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    get_logger().debug("preprocess_done elapsed_ms=%d", elapsed_ms)


def _blue_channel(img: Image.Image) -> bytes:
    try:
        rgb = img if img.mode == "RGB" else img.convert("RGB")
        return rgb.getchannel("B").tobytes()
    except (ValueError, OSError) as exc:
        raise AppError(ErrorCode.preprocessing_failed, str(exc)) from None
