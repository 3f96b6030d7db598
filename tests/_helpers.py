from __future__ import annotations

from pathlib import Path

import torch
from PIL import Image
from torch import Tensor

from digits_detector.config import AppConfig, DigitsConfig, Settings
from digits_detector.inference.assets import MappedModel


def solid(rgb: tuple[int, int, int], size: tuple[int, int] = (28, 28)) -> Image.Image:
    return Image.new("RGB", size, rgb)


def make_settings(assets_dir: Path, model_name: str = "mnist.tflite", **digits: object) -> Settings:
    dig = DigitsConfig(assets_dir=assets_dir, model_name=model_name)
    for k, v in digits.items():
        dig = _replace(dig, k, v)
    return Settings(app=AppConfig(), digits=dig)


def _replace(d: DigitsConfig, key: str, value: object) -> DigitsConfig:
    from dataclasses import replace

    return replace(d, **{key: value})


def one_hot(index: int, value: float = 1.0) -> Tensor:
    out = torch.zeros((1, 10), dtype=torch.float32)
    out[0, index] = value
    return out


class FakeBackend:
    """Returns canned outputs and records a copy of every input it saw."""

    name = "fake"

    def __init__(self, outputs: list[Tensor] | None = None) -> None:
        self._outputs = outputs if outputs is not None else [one_hot(3)]
        self.loaded: bytes | None = None
        self.inputs: list[Tensor] = []

    def load(self, model: MappedModel) -> object:
        self.loaded = bytes(model.view)
        return "handle"

    def run(self, handle: object, inputs: Tensor) -> Tensor:
        assert handle == "handle"
        self.inputs.append(inputs.clone())
        idx = min(len(self.inputs) - 1, len(self._outputs) - 1)
        return self._outputs[idx]
