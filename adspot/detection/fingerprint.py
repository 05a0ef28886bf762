"""
Frame fingerprints.

A fingerprint is a grayscale frame resized to resize_width x resize_height and
flattened row by row into uint8 values. Fingerprints are compared by squared
Euclidean distance; the square root is skipped since only the ordering matters.
"""

import logging
from typing import Optional

import cv2
import numpy as np
from tqdm import tqdm

from adspot.config import SamplingConfig
from adspot.errors import DegenerateInput, DimensionMismatch
from adspot.utils.data_models import VideoFingerprintSequence
from adspot.utils.video_io import VideoReader

logger = logging.getLogger(__name__)


def distance(a: np.ndarray, b: np.ndarray) -> int:
    """Sum of squared per-element differences between two fingerprints."""
    a = np.asarray(a)
    b = np.asarray(b)
    if a.shape != b.shape or a.ndim != 1:
        raise DimensionMismatch(a.size, b.size)
    diff = a.astype(np.int64) - b.astype(np.int64)
    return int(np.dot(diff, diff))


def amount_sampled(total_frames: int, sample_rate: int) -> int:
    """Number of frames kept when taking every ``sample_rate``-th frame starting at 0."""
    if sample_rate < 1:
        raise DegenerateInput(f"sample rate must be >= 1 (got {sample_rate})")
    if total_frames <= 0:
        return 0
    return (total_frames - 1) // sample_rate + 1


def fingerprint_frame(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Convert one decoded frame into a fingerprint.

    Args:
        frame: RGB (H, W, 3) or grayscale (H, W) uint8 image
        width: Fingerprint width in pixels
        height: Fingerprint height in pixels

    Returns:
        Flat uint8 array of length width * height
    """
    if frame.ndim == 3:
        gray = cv2.cvtColor(frame, cv2.COLOR_RGB2GRAY)
    elif frame.ndim == 2:
        gray = frame
    else:
        raise ValueError(f"expected an RGB or grayscale image, got shape {frame.shape}")
    small = cv2.resize(gray, (width, height), interpolation=cv2.INTER_CUBIC)
    return np.ascontiguousarray(small, dtype=np.uint8).reshape(-1)


def fingerprint_video(
    reader: VideoReader,
    sampling: SamplingConfig,
    name: Optional[str] = None,
    progress: bool = True,
) -> VideoFingerprintSequence:
    """Sample and fingerprint every ``sample_rate``-th frame of a video."""
    name = name if name is not None else reader.video_path.stem
    expected = amount_sampled(reader.total_frames, sampling.sample_rate)

    rows: list[np.ndarray] = []
    with tqdm(total=expected, desc=f"Fingerprinting {name}", unit="frame", disable=not progress) as pbar:
        for _frame_idx, frame in reader.frames(step=sampling.sample_rate):
            rows.append(fingerprint_frame(frame, sampling.resize_width, sampling.resize_height))
            pbar.update(1)

    if len(rows) != expected:
        logger.warning(
            "%s: container reports %d frames (%d sampled) but %d sampled frames were decoded",
            name, reader.total_frames, expected, len(rows),
        )
    if not rows:
        raise DegenerateInput(f"no frames decoded from {reader.video_path}")

    return VideoFingerprintSequence(
        name=name,
        frames=np.vstack(rows),
        total_frames=reader.total_frames,
        duration_ms=reader.duration_ms,
    )
