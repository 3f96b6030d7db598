from __future__ import annotations

import importlib
import io
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, TypeVar

import torch
from torch import Tensor

if TYPE_CHECKING:
    from .assets import MappedModel

_H = TypeVar("_H")


class InferenceBackend(Protocol[_H]):
    """Opaque engine capability: build a handle from a mapped model, then run it."""

    name: str

    def load(self, model: MappedModel) -> _H: ...

    def run(self, handle: _H, inputs: Tensor) -> Tensor: ...


class TFLiteInterpreter(Protocol):
    def allocate_tensors(self) -> None: ...
    def get_input_details(self) -> list[dict[str, object]]: ...
    def get_output_details(self) -> list[dict[str, object]]: ...
    def set_tensor(self, tensor_index: int, value: object) -> None: ...
    def invoke(self) -> None: ...
    def get_tensor(self, tensor_index: int) -> object: ...


class TFLiteBackend:
    """TensorFlow Lite interpreter from the ``tflite-runtime`` distribution.

    A model occupying its whole file is opened by path, which lets the
    interpreter map the file itself. A model packed inside a larger file is
    handed over as the bytes of its mapped range.
    """

    name = "tflite"

    def load(self, model: MappedModel) -> TFLiteInterpreter:
        if model.whole_file:
            interpreter = _make_interpreter(model.desc.path, None)
        else:
            interpreter = _make_interpreter(None, bytes(model.view))
        interpreter.allocate_tensors()
        return interpreter

    def run(self, handle: TFLiteInterpreter, inputs: Tensor) -> Tensor:
        in_index = _tensor_index(handle.get_input_details())
        out_index = _tensor_index(handle.get_output_details())
        handle.set_tensor(in_index, inputs.detach().contiguous().numpy())
        handle.invoke()
        return torch.as_tensor(handle.get_tensor(out_index))


class TorchModel(Protocol):
    def eval(self) -> object: ...
    def __call__(self, x: Tensor) -> Tensor: ...


class TorchScriptBackend:
    """CPU TorchScript module serialized with ``torch.jit.save``.

    TorchScript materializes parameters as tensors on load, so weights end up
    in process memory whichever way the archive is read.
    """

    name = "torchscript"

    def load(self, model: MappedModel) -> TorchModel:
        if model.whole_file:
            m = _jit_load(model.desc.path.as_posix())
        else:
            m = _jit_load(io.BytesIO(model.view))
        m.eval()
        return m

    def run(self, handle: TorchModel, inputs: Tensor) -> Tensor:
        with torch.no_grad():
            return handle(inputs)


def backend_for(name: str) -> TFLiteBackend | TorchScriptBackend:
    if name == "tflite":
        return TFLiteBackend()
    if name == "torchscript":
        return TorchScriptBackend()
    raise ValueError(f"unknown inference backend: {name}")


def _tensor_index(details: list[dict[str, object]]) -> int:
    if not details:
        raise RuntimeError("interpreter reports no tensors")
    idx = details[0].get("index")
    if not isinstance(idx, int):
        raise RuntimeError("interpreter tensor index is not an int")
    return idx


if TYPE_CHECKING:

    def _make_interpreter(path: Path | None, content: bytes | None) -> TFLiteInterpreter: ...

    def _jit_load(src: str | io.BytesIO) -> TorchModel: ...
else:

    def _make_interpreter(path: Path | None, content: bytes | None) -> TFLiteInterpreter:
        mod = importlib.import_module("tflite_runtime.interpreter")
        if path is not None:
            return mod.Interpreter(model_path=path.as_posix())
        return mod.Interpreter(model_content=content)

    def _jit_load(src: str | io.BytesIO) -> TorchModel:
        return torch.jit.load(src, map_location=torch.device("cpu"))
