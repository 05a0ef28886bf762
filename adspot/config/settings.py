"""
Run configuration.

The packaged default.yaml is loaded first and an optional user file is merged
over it. The result is validated into one immutable AdSpotConfig value that
every component receives at construction.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from adspot.errors import MalformedFile, MissingResource

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"


class SamplingConfig(BaseModel):
    """How fingerprints are taken from a video."""
    sample_rate: int = Field(10, ge=1)
    resize_width: int = Field(16, ge=1)
    resize_height: int = Field(16, ge=1)

    @property
    def fingerprint_length(self) -> int:
        return self.resize_width * self.resize_height

    class Config:
        frozen = True
        extra = "forbid"


class TrackerConfig(BaseModel):
    """Scoring constants for the per-ad sequence tracker."""
    match_start_error_margin: int = 5
    match_end_error_margin: int = 5
    name_fail_limit: float = 4.0
    sequence_fail_limit: float = 10.0
    sequence_overshoot_factor: float = 0.2
    name_fail_forgiveness: float = Field(0.2, ge=0)
    sequence_fail_forgiveness: float = Field(0.2, ge=0)
    sequence_undershoot_penalty: float = Field(0.5, ge=0)
    overshoot_tolerance: int = Field(5, ge=0)

    class Config:
        frozen = True
        extra = "forbid"


class ProcessingConfig(BaseModel):
    batch_size: int = Field(256, ge=1)
    workers: int = Field(1, ge=1)

    class Config:
        frozen = True
        extra = "forbid"


class IOConfig(BaseModel):
    ad_extension: str = "mpg"
    descriptor_extension: str = "txt"
    ad_directory_name: str = "ads.txt"
    nearest_file_name: str = "nearest.txt"
    results_file_name: str = "results.txt"

    class Config:
        frozen = True
        extra = "forbid"


class AdSpotConfig(BaseModel):
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    io: IOConfig = Field(default_factory=IOConfig)

    class Config:
        frozen = True
        extra = "forbid"


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override dict into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict:
    if not path.is_file():
        raise MissingResource(path, "config file")
    try:
        with open(path, encoding="utf8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        line = None
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            line = int(mark.line) + 1
        raise MalformedFile(path, f"invalid YAML: {e}", line=line) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MalformedFile(path, "config root must be a mapping")
    return data


def load_config(config_path: Path | None = None, overrides: dict | None = None) -> AdSpotConfig:
    """Load the default configuration, optionally merged with a custom file and overrides."""
    config = _read_yaml(DEFAULT_CONFIG_PATH)
    source: Path = DEFAULT_CONFIG_PATH

    if config_path:
        source = Path(config_path)
        config = deep_merge(config, _read_yaml(source))

    if overrides:
        config = deep_merge(config, overrides)

    try:
        return AdSpotConfig.model_validate(config)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        msg = first.get("msg", str(e))
        raise MalformedFile(source, f"invalid config value {loc}: {msg}") from e
