"""Shared fixtures; also puts the repository root on sys.path so tests run without installation."""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from adspot.config import AdSpotConfig, load_config  # noqa: E402
from adspot.utils.data_models import VideoFingerprintSequence  # noqa: E402

FINGERPRINT_LENGTH = 16 * 16


def uniform_frames(values: list[int], length: int = FINGERPRINT_LENGTH) -> np.ndarray:
    """One flat fingerprint per value, every pixel set to that value."""
    return np.vstack([np.full(length, v, dtype=np.uint8) for v in values])


def make_sequence(name: str, values: list[int], *, sample_rate: int = 10, duration_ms: int | None = None) -> VideoFingerprintSequence:
    total = len(values) * sample_rate
    return VideoFingerprintSequence(
        name=name,
        frames=uniform_frames(values),
        total_frames=total,
        duration_ms=duration_ms if duration_ms is not None else int(total * 1000 / 30),
    )


@pytest.fixture
def config() -> AdSpotConfig:
    return load_config()
