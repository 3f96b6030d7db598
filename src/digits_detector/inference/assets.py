from __future__ import annotations

import mmap
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Generic, TypeVar

from ..logging import get_logger
from .backends import InferenceBackend

_H = TypeVar("_H")

LOAD_ERRORS: Final[tuple[type[BaseException], ...]] = (
    OSError,
    ValueError,
    RuntimeError,
    TypeError,
    EOFError,
    ImportError,
)


@dataclass(frozen=True)
class AssetDescriptor:
    path: Path
    start_offset: int
    declared_length: int


def open_asset(assets_dir: Path, name: str) -> AssetDescriptor:
    """Resolve a bundled asset to the byte range holding it."""
    path = assets_dir / name
    if not path.is_file():
        raise FileNotFoundError(f"asset not found: {path}")
    size = path.stat().st_size
    if size == 0:
        raise ValueError(f"asset is empty: {path}")
    return AssetDescriptor(path=path, start_offset=0, declared_length=size)


class MappedModel:
    """Read-only memory mapping of one asset byte range."""

    def __init__(self, desc: AssetDescriptor) -> None:
        if desc.start_offset < 0 or desc.declared_length <= 0:
            raise ValueError("invalid asset byte range")
        # mmap offsets must be a multiple of the allocation granularity
        aligned = desc.start_offset - desc.start_offset % mmap.ALLOCATIONGRANULARITY
        skip = desc.start_offset - aligned
        with desc.path.open("rb") as fh:
            file_size = os.fstat(fh.fileno()).st_size
            self._mm = mmap.mmap(
                fh.fileno(),
                skip + desc.declared_length,
                access=mmap.ACCESS_READ,
                offset=aligned,
            )
        self._base = memoryview(self._mm)
        self._view: memoryview | None = self._base[skip : skip + desc.declared_length]
        self.desc = desc
        # The engine may open the file itself when the range is the whole file
        self.whole_file = desc.start_offset == 0 and desc.declared_length == file_size

    @property
    def view(self) -> memoryview:
        if self._view is None:
            raise ValueError("mapping is closed")
        return self._view

    @property
    def closed(self) -> bool:
        return self._view is None

    def close(self) -> None:
        if self._view is None:
            return
        self._view.release()
        self._base.release()
        self._view = None
        self._mm.close()


def map_asset(desc: AssetDescriptor) -> MappedModel:
    return MappedModel(desc)


class LoadedEngine(Generic[_H]):
    """Engine handle together with the mapping it was built from."""

    def __init__(self, backend: InferenceBackend[_H], handle: _H, mapping: MappedModel) -> None:
        self.backend = backend
        self.handle = handle
        self.mapping = mapping

    @property
    def model_name(self) -> str:
        return self.mapping.desc.path.name

    def close(self) -> None:
        self.mapping.close()


def load_engine(
    assets_dir: Path, name: str, backend: InferenceBackend[_H]
) -> LoadedEngine[_H]:
    desc = open_asset(assets_dir, name)
    mapping = map_asset(desc)
    try:
        handle = backend.load(mapping)
    except LOAD_ERRORS:
        mapping.close()
        raise
    get_logger().info(
        "model_loaded name=%s backend=%s bytes=%d", name, backend.name, desc.declared_length
    )
    return LoadedEngine(backend, handle, mapping)
