from __future__ import annotations

from dataclasses import dataclass
from typing import Final

import torch
from torch import Tensor

DIM_BATCH_SIZE: Final[int] = 1
DIM_IMG_SIZE_X: Final[int] = 28
DIM_IMG_SIZE_Y: Final[int] = 28
DIM_PIXEL_SIZE: Final[int] = 1
NUMBER_LENGTH: Final[int] = 10
INPUT_SHAPE: Final[tuple[int, int, int, int]] = (
    DIM_BATCH_SIZE,
    DIM_IMG_SIZE_Y,
    DIM_IMG_SIZE_X,
    DIM_PIXEL_SIZE,
)
INPUT_LENGTH: Final[int] = DIM_BATCH_SIZE * DIM_IMG_SIZE_Y * DIM_IMG_SIZE_X * DIM_PIXEL_SIZE
NO_MATCH: Final[int] = -1


@dataclass(frozen=True)
class Prediction:
    digit: int  # NO_MATCH when no class was selected
    scores: tuple[float, ...]  # length 10
    latency_ms: int
    model_name: str


def new_input_tensor() -> Tensor:
    return torch.zeros(INPUT_SHAPE, dtype=torch.float32)


def new_output_tensor() -> Tensor:
    return torch.zeros((DIM_BATCH_SIZE, NUMBER_LENGTH), dtype=torch.float32)
