from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final, Literal

_DEFAULT_CONFIG_PATH: Final[Path] = Path("config/detector.toml")
_BACKENDS: Final[tuple[str, ...]] = ("tflite", "torchscript")
_SELECTIONS: Final[tuple[str, ...]] = ("exact", "argmax")

BackendName = Literal["tflite", "torchscript"]
Selection = Literal["exact", "argmax"]


@dataclass(frozen=True)
class AppConfig:
    # 0 leaves torch's intra-op thread count untouched
    threads: int = 0


@dataclass(frozen=True)
class DigitsConfig:
    assets_dir: Path = Path("assets")
    model_name: str = "mnist.tflite"
    backend: BackendName = "tflite"
    selection: Selection = "exact"
    confidence_threshold: float = 0.5


@dataclass(frozen=True)
class Settings:
    app: AppConfig
    digits: DigitsConfig

    @staticmethod
    def _toml_path() -> Path:
        env_val = os.getenv("DIGITS_DETECTOR_CONFIG")
        if env_val:
            return Path(env_val)
        return _DEFAULT_CONFIG_PATH

    @classmethod
    def load(cls) -> Settings:
        # Env first, then TOML overrides when the file exists.
        base = cls(app=_load_app_from_env(), digits=_load_digits_from_env())
        cfg_path = cls._toml_path()
        if not cfg_path.exists():
            return base
        try:
            raw: object = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise RuntimeError(f"Failed to read config TOML: {cfg_path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise RuntimeError(f"Invalid TOML config: {cfg_path}") from exc
        return cls(
            app=_merge_app(base.app, _toml_table(raw, "app")),
            digits=_merge_digits(base.digits, _toml_table(raw, "digits")),
        )


def _load_app_from_env() -> AppConfig:
    a = AppConfig()
    th = os.getenv("APP__THREADS")
    if th is not None and th.isdigit():
        a = replace(a, threads=int(th))
    return a


def _load_digits_from_env() -> DigitsConfig:
    d = DigitsConfig()
    ad = os.getenv("DIGITS__ASSETS_DIR")
    mn = os.getenv("DIGITS__MODEL_NAME")
    be = os.getenv("DIGITS__BACKEND")
    sel = os.getenv("DIGITS__SELECTION")
    ct = os.getenv("DIGITS__CONFIDENCE_THRESHOLD")
    if ad:
        d = replace(d, assets_dir=Path(ad))
    if mn:
        d = replace(d, model_name=mn)
    if be:
        d = replace(d, backend=_backend(be))
    if sel:
        d = replace(d, selection=_selection(sel))
    if ct is not None:
        d = replace(d, confidence_threshold=_threshold(ct))
    return d


def _merge_app(base: AppConfig, data: dict[str, object]) -> AppConfig:
    out = base
    if "threads" in data:
        threads = int(str(data["threads"]))
        if threads < 0:
            raise RuntimeError("threads must be >= 0")
        out = replace(out, threads=threads)
    return out


def _merge_digits(base: DigitsConfig, data: dict[str, object]) -> DigitsConfig:
    out = base
    if "assets_dir" in data:
        out = replace(out, assets_dir=Path(str(data["assets_dir"])))
    if "model_name" in data:
        out = replace(out, model_name=str(data["model_name"]))
    if "backend" in data:
        out = replace(out, backend=_backend(str(data["backend"])))
    if "selection" in data:
        out = replace(out, selection=_selection(str(data["selection"])))
    if "confidence_threshold" in data:
        out = replace(out, confidence_threshold=_threshold(str(data["confidence_threshold"])))
    return out


def _backend(v: str) -> BackendName:
    name = v.strip().lower()
    if name == "tflite":
        return "tflite"
    if name == "torchscript":
        return "torchscript"
    raise RuntimeError(f"backend must be one of {', '.join(_BACKENDS)}")


def _selection(v: str) -> Selection:
    name = v.strip().lower()
    if name == "exact":
        return "exact"
    if name == "argmax":
        return "argmax"
    raise RuntimeError(f"selection must be one of {', '.join(_SELECTIONS)}")


def _threshold(v: str) -> float:
    try:
        t = float(v)
    except ValueError as exc:
        raise RuntimeError(f"confidence_threshold is not a number: {v}") from exc
    if not (0.0 <= t <= 1.0):
        raise RuntimeError("confidence_threshold must be within [0,1]")
    return t


def _toml_table(raw: object, key: str) -> dict[str, object]:
    if isinstance(raw, dict):
        tab: object = raw.get(key, {})
        if isinstance(tab, dict):
            return {str(k): v for k, v in tab.items()}
    return {}
