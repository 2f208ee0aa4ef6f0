from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional, Union

import yaml
from dotenv import load_dotenv


@dataclass(frozen=True)
class CameraConfig:
    width: int = 640
    height: int = 480
    facing_mode: str = "user"           # "user" | "environment"
    device_id: Optional[Union[int, str]] = None
    metadata_timeout_s: float = 3.0


@dataclass(frozen=True)
class AnalyzerConfig:
    # top fraction of the frame never scored (faces live there)
    face_exclusion: float = 0.3
    region_size: int = 80
    step: int = 6
    min_skin_ratio: float = 0.015
    min_edge_ratio: float = 0.008
    min_finger_ratio: float = 0.003
    min_region_score: float = 25.0
    edge_threshold: int = 25
    finger_edge_threshold: int = 40
    criteria_required: int = 3


@dataclass(frozen=True)
class StabilityConfig:
    required_stable_frames: int = 6
    confidence_threshold: int = 35
    check_interval_ms: int = 250
    min_consecutive: int = 3


@dataclass(frozen=True)
class CropConfig:
    padding: int = 60
    broad_fraction: float = 0.7
    center_fraction: float = 0.8
    fallback_fraction: float = 0.7
    jpeg_quality: int = 90


@dataclass(frozen=True)
class EvaluationConfig:
    acceptance_floor: int = 70
    rejected_confidence_cap: int = 60
    fallback_confidence: int = 30
    models: tuple = ("gemini-2.5-flash", "gemini-2.5-pro")
    request_timeout_s: float = 30.0
    rate_limit_backoff_s: float = 2.0


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///isl_exam.db"
    db_echo: bool = False
    gemini_api_key: str = ""
    groq_api_key: str = ""
    groq_model: str = "llama-3.3-70b-versatile"
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    media_dir: str = "media"
    public_base_url: str = "http://localhost:8000"
    ws_debug: bool = False

    camera: CameraConfig = field(default_factory=CameraConfig)
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    crop: CropConfig = field(default_factory=CropConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)

    @property
    def cloudinary_configured(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)


_SECTIONS = {
    "camera": CameraConfig,
    "analyzer": AnalyzerConfig,
    "stability": StabilityConfig,
    "crop": CropConfig,
    "evaluation": EvaluationConfig,
}


def _section(cls, values: dict):
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {', '.join(sorted(unknown))}")
    if "models" in values:
        values = {**values, "models": tuple(values["models"])}
    return cls(**values)


def load_thresholds(path: Union[str, Path]) -> dict:
    """Read the tunable sections from a YAML file.

    The file holds any of the sections ``camera``, ``analyzer``, ``stability``,
    ``crop`` and ``evaluation``; missing keys keep their defaults.
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at top level")

    out = {}
    for name, cls in _SECTIONS.items():
        section = raw.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"{path}: section '{name}' must be a mapping")
        out[name] = _section(cls, section)
    return out


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Settings:
    load_dotenv()

    settings = Settings(
        database_url=os.getenv("ISL_DATABASE_URL", "sqlite:///isl_exam.db"),
        db_echo=_env_flag("ISL_DB_ECHO"),
        gemini_api_key=os.getenv("GEMINI_API_KEY", "").strip(),
        groq_api_key=os.getenv("GROQ_API_KEY", "").strip(),
        groq_model=os.getenv("ISL_GROQ_MODEL", "llama-3.3-70b-versatile"),
        cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME", "").strip(),
        cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY", "").strip(),
        cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET", "").strip(),
        media_dir=os.getenv("ISL_MEDIA_DIR", "media"),
        public_base_url=os.getenv("ISL_PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        ws_debug=_env_flag("ISL_WS_DEBUG"),
    )

    config_path = config_path or os.getenv("ISL_CONFIG_PATH", "").strip()
    if config_path:
        settings = replace(settings, **load_thresholds(config_path))
    return settings
