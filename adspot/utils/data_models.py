"""
Pydantic data models for the ad detection system.

Defines the fingerprint sequences, catalog entries, per-frame nearest matches
and detections that flow between the pipeline stages.
"""

from typing import Optional

import numpy as np
from pydantic import BaseModel, Field, field_validator

from adspot.errors import DegenerateInput


def frames_per_second(total_frames: int, duration_ms: int) -> float:
    """Frame rate implied by a frame count and a duration in milliseconds."""
    if duration_ms <= 0:
        raise DegenerateInput(f"duration must be > 0 ms to derive fps (got {duration_ms})")
    if total_frames <= 0:
        raise DegenerateInput(f"frame count must be > 0 to derive fps (got {total_frames})")
    return total_frames / (duration_ms / 1000.0)


class VideoFingerprintSequence(BaseModel):
    """Sampled fingerprints of one video (broadcast or ad)."""
    name: str
    frames: np.ndarray  # (sampled_frames, width * height) uint8, read-only
    total_frames: int = Field(ge=0)  # frame count before sampling
    duration_ms: int = Field(ge=0)

    @field_validator("frames", mode="before")
    @classmethod
    def _as_fingerprint_matrix(cls, value):
        arr = np.asarray(value)
        if arr.size == 0:
            width = arr.shape[1] if arr.ndim == 2 else 0
            arr = arr.reshape(0, width)
        if arr.ndim != 2:
            raise ValueError(f"frames must be 2-D (one row per sampled frame), got shape {arr.shape}")
        if arr.size and (arr.min() < 0 or arr.max() > 255):
            raise ValueError("fingerprint values must be within [0, 255]")
        arr = arr.astype(np.uint8, copy=True)
        arr.setflags(write=False)
        return arr

    @property
    def sampled_frames(self) -> int:
        return int(self.frames.shape[0])

    @property
    def fingerprint_length(self) -> int:
        return int(self.frames.shape[1])

    @property
    def fps(self) -> float:
        return frames_per_second(self.total_frames, self.duration_ms)

    class Config:
        arbitrary_types_allowed = True
        frozen = True


class AdCatalogEntry(BaseModel):
    """One known ad. The fingerprints are absent when only the ad directory was read."""
    name: str
    total_frames: int = Field(ge=0)
    duration_ms: int = Field(ge=0)
    sampled_frames: int = Field(ge=0)
    sequence: Optional[VideoFingerprintSequence] = None

    @property
    def duration_seconds(self) -> float:
        return self.duration_ms / 1000.0

    class Config:
        arbitrary_types_allowed = True
        frozen = True


class NearestMatch(BaseModel):
    """Closest ad frame for one sampled broadcast frame."""
    ad_name: str
    ad_frame: int = Field(ge=0)  # 1-based; 0 means no match

    class Config:
        frozen = True


class NearestFrames(BaseModel):
    """Matcher output for a whole broadcast, as stored in the nearest-frames file."""
    broadcast: str
    total_frames: int = Field(ge=0)
    duration_ms: int = Field(ge=0)
    sample_rate: int = Field(ge=1)
    resize_width: int = Field(ge=1)
    resize_height: int = Field(ge=1)
    matches: list[NearestMatch] = Field(default_factory=list)

    @property
    def fps(self) -> float:
        return frames_per_second(self.total_frames, self.duration_ms)

    class Config:
        frozen = True


class Detection(BaseModel):
    """One detected airing of an ad inside a broadcast."""
    broadcast: str
    start_seconds: float
    duration_seconds: float
    ad_name: str
    start_frame: int = 0  # sampled broadcast index where the match began
    end_frame: int = 0    # sampled broadcast index that completed it

    def to_tsv(self) -> str:
        return f"{self.broadcast}\t{self.start_seconds:.3f}\t{self.duration_seconds:.3f}\t{self.ad_name}"

    class Config:
        frozen = True
