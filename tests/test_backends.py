from __future__ import annotations

import io
import tempfile
from pathlib import Path

import pytest
import torch

from digits_detector.inference import backends
from digits_detector.inference.assets import AssetDescriptor, load_engine, map_asset
from digits_detector.inference.backends import (
    TFLiteBackend,
    TorchScriptBackend,
    backend_for,
)


def test_backend_for_names() -> None:
    assert isinstance(backend_for("tflite"), TFLiteBackend)
    assert isinstance(backend_for("torchscript"), TorchScriptBackend)
    with pytest.raises(ValueError):
        backend_for("onnx")


class _FakeInterpreter:
    def __init__(self, path: Path | None, content: bytes | None) -> None:
        self.path = path
        self.content = content
        self.allocated = False
        self.invoked = False
        self.inputs: dict[int, object] = {}

    def allocate_tensors(self) -> None:
        self.allocated = True

    def get_input_details(self) -> list[dict[str, object]]:
        return [{"index": 0, "shape": [1, 28, 28, 1]}]

    def get_output_details(self) -> list[dict[str, object]]:
        return [{"index": 9, "shape": [1, 10]}]

    def set_tensor(self, tensor_index: int, value: object) -> None:
        self.inputs[tensor_index] = value

    def invoke(self) -> None:
        self.invoked = True

    def get_tensor(self, tensor_index: int) -> object:
        assert tensor_index == 9
        return [[0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]]


def test_tflite_whole_file_model_opened_by_path(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(backends, "_make_interpreter", _FakeInterpreter)
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "mnist.tflite"
        p.write_bytes(b"\x01" * 4096)
        eng = load_engine(Path(td), "mnist.tflite", TFLiteBackend())
        eng.close()
        handle = eng.handle
        assert isinstance(handle, _FakeInterpreter)
        assert handle.path == p
        assert handle.content is None
        assert handle.allocated is True


def test_tflite_packed_model_handed_over_as_bytes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(backends, "_make_interpreter", _FakeInterpreter)
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "bundle.bin"
        p.write_bytes(b"hdr" + b"flatbuffer" + b"trailer")
        m = map_asset(AssetDescriptor(path=p, start_offset=3, declared_length=10))
        try:
            handle = TFLiteBackend().load(m)
        finally:
            m.close()
    assert isinstance(handle, _FakeInterpreter)
    assert handle.path is None
    assert handle.content == b"flatbuffer"


def test_tflite_run_drives_interpreter() -> None:
    pytest.importorskip("numpy")
    handle = _FakeInterpreter(None, b"flatbuffer")
    out = TFLiteBackend().run(handle, torch.full((1, 28, 28, 1), 255.0, dtype=torch.float32))
    assert handle.invoked is True
    assert 0 in handle.inputs
    assert out.dtype == torch.float32
    assert out.tolist() == [[0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]]


def test_tflite_run_rejects_missing_tensor_index() -> None:
    class _NoOutputs(_FakeInterpreter):
        def get_output_details(self) -> list[dict[str, object]]:
            return []

    with pytest.raises(RuntimeError):
        TFLiteBackend().run(_NoOutputs(None, b""), torch.zeros((1, 28, 28, 1)))


class _Doubler(torch.nn.Module):
    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x * 2.0


def test_torchscript_packed_model_loads_from_range() -> None:
    buf = io.BytesIO()
    torch.jit.save(torch.jit.script(_Doubler()), buf)
    archive = buf.getvalue()
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "bundle.bin"
        p.write_bytes(b"pad" + archive)
        m = map_asset(AssetDescriptor(path=p, start_offset=3, declared_length=len(archive)))
        try:
            be = TorchScriptBackend()
            model = be.load(m)
        finally:
            m.close()
        out = be.run(model, torch.ones((1, 2)))
    assert out.tolist() == [[2.0, 2.0]]
