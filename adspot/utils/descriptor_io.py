"""
Plain-text file formats exchanged between pipeline stages.

descriptor file      one per video: header "sampled total duration_ms",
                     then one row of space-separated pixel values per sampled frame
ad directory         two-line records: ad name, then "total duration_ms"
nearest-frames file  broadcast header (name / "total duration_ms" /
                     "sample_rate width height"), then two lines per sampled
                     broadcast frame: ad name, 1-based ad frame
results file         one tab-separated detection per line

Every writer goes through atomic_write_text so a failed write never leaves a
truncated file behind.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable

import numpy as np

from adspot.errors import AdSpotError, DimensionMismatch, MalformedFile, MissingResource
from adspot.utils.data_models import Detection, NearestFrames, NearestMatch, VideoFingerprintSequence

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str) -> None:
    """Write to a sibling temp file, then rename it over the target."""
    path = Path(path)
    tmp = path.with_name(f".{path.name}.tmp.{os.getpid()}")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf8", newline="\n") as f:
            f.write(text)
        os.replace(tmp, path)
    except OSError as e:
        if tmp.exists():
            tmp.unlink()
        raise AdSpotError(f"failed to write {path}: {e}") from e
    logger.debug("Wrote %s", path)


def _read_lines(path: Path, what: str) -> list[str]:
    path = Path(path)
    if not path.is_file():
        raise MissingResource(path, what)
    try:
        text = path.read_text(encoding="utf8")
    except UnicodeDecodeError as e:
        raise MalformedFile(path, f"not valid UTF-8 text: {e}") from e
    lines = [line.rstrip("\r") for line in text.split("\n")]
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def _parse_ints(path: Path, line_no: int, raw: str, count: int, what: str) -> list[int]:
    parts = raw.split()
    if len(parts) != count:
        raise MalformedFile(path, f"{what}: expected {count} fields, got {len(parts)}", line=line_no)
    try:
        return [int(p) for p in parts]
    except ValueError as e:
        raise MalformedFile(path, f"{what}: expected integers, got {raw.strip()!r}", line=line_no) from e


def _parse_duration_ms(path: Path, line_no: int, raw: str) -> int:
    try:
        value = float(raw)
    except ValueError as e:
        raise MalformedFile(path, f"duration must be a number, got {raw!r}", line=line_no) from e
    if not np.isfinite(value) or value < 0:
        raise MalformedFile(path, f"duration must be finite and >= 0, got {raw!r}", line=line_no)
    return int(round(value))


def _parse_counts_and_duration(path: Path, line_no: int, raw: str, count: int, what: str) -> list[int]:
    parts = raw.split()
    if len(parts) != count:
        raise MalformedFile(path, f"{what}: expected {count} fields, got {len(parts)}", line=line_no)
    values = _parse_ints(path, line_no, " ".join(parts[:-1]), count - 1, what)
    if any(v < 0 for v in values):
        raise MalformedFile(path, f"{what}: counts must be >= 0", line=line_no)
    return values + [_parse_duration_ms(path, line_no, parts[-1])]


# ---------------------------------------------------------------------------
# Descriptor files
# ---------------------------------------------------------------------------

def write_descriptor(path: Path, sequence: VideoFingerprintSequence) -> None:
    lines = [f"{sequence.sampled_frames} {sequence.total_frames} {sequence.duration_ms}"]
    for row in sequence.frames:
        lines.append(" ".join(str(int(v)) for v in row))
    atomic_write_text(path, "\n".join(lines) + "\n")


def read_descriptor(
    path: Path,
    name: str | None = None,
    fingerprint_length: int | None = None,
) -> VideoFingerprintSequence:
    """
    Read a descriptor file.

    Args:
        path: Descriptor file path
        name: Video name (defaults to the file stem)
        fingerprint_length: Expected values per row, checked when given

    Returns:
        The fingerprint sequence stored in the file
    """
    path = Path(path)
    lines = _read_lines(path, "descriptor")
    if not lines:
        raise MalformedFile(path, "empty descriptor file", line=1)

    sampled, total, duration_ms = _parse_counts_and_duration(path, 1, lines[0], 3, "descriptor header")
    rows = lines[1:]
    if len(rows) != sampled:
        raise MalformedFile(
            path,
            f"header declares {sampled} sampled frames but file has {len(rows)} rows",
            line=1,
        )

    width = fingerprint_length
    frames = []
    for offset, raw in enumerate(rows):
        line_no = offset + 2
        try:
            row = np.array(raw.split(), dtype=np.int64)
        except ValueError as e:
            raise MalformedFile(path, "fingerprint row must contain integers", line=line_no) from e
        if len(row) == 0:
            raise MalformedFile(path, "empty fingerprint row", line=line_no)
        if width is None:
            width = len(row)
        if len(row) != width:
            if fingerprint_length is not None:
                raise DimensionMismatch(len(row), fingerprint_length, context=f"{path}: line {line_no}")
            raise MalformedFile(path, f"expected {width} values, got {len(row)}", line=line_no)
        if len(row) and (row.min() < 0 or row.max() > 255):
            raise MalformedFile(path, "fingerprint values must be within [0, 255]", line=line_no)
        frames.append(row)

    matrix = np.vstack(frames) if frames else np.zeros((0, width or 0), dtype=np.uint8)
    return VideoFingerprintSequence(
        name=name if name is not None else path.stem,
        frames=matrix,
        total_frames=total,
        duration_ms=duration_ms,
    )


# ---------------------------------------------------------------------------
# Ad directory
# ---------------------------------------------------------------------------

def write_ad_directory(path: Path, records: Iterable[tuple[str, int, int]]) -> None:
    lines: list[str] = []
    for name, total_frames, duration_ms in records:
        lines.append(str(name))
        lines.append(f"{int(total_frames)} {int(duration_ms)}")
    atomic_write_text(path, "\n".join(lines) + ("\n" if lines else ""))


def read_ad_directory(path: Path) -> list[tuple[str, int, int]]:
    """Return (name, total_frames, duration_ms) records in file order."""
    path = Path(path)
    lines = _read_lines(path, "ad directory")
    if len(lines) % 2 != 0:
        raise MalformedFile(path, "ad directory must hold two-line records", line=len(lines))

    records: list[tuple[str, int, int]] = []
    seen: set[str] = set()
    for i in range(0, len(lines), 2):
        name = lines[i].strip()
        if not name:
            raise MalformedFile(path, "empty ad name", line=i + 1)
        if name in seen:
            raise MalformedFile(path, f"duplicate ad name {name!r}", line=i + 1)
        seen.add(name)
        total, duration_ms = _parse_counts_and_duration(path, i + 2, lines[i + 1], 2, "ad record")
        records.append((name, total, duration_ms))
    return records


# ---------------------------------------------------------------------------
# Nearest-frames file
# ---------------------------------------------------------------------------

def write_nearest_frames(path: Path, nearest: NearestFrames) -> None:
    lines = [
        nearest.broadcast,
        f"{nearest.total_frames} {nearest.duration_ms}",
        f"{nearest.sample_rate} {nearest.resize_width} {nearest.resize_height}",
    ]
    for m in nearest.matches:
        lines.append(m.ad_name)
        lines.append(str(m.ad_frame))
    atomic_write_text(path, "\n".join(lines) + "\n")


def read_nearest_frames(path: Path) -> NearestFrames:
    path = Path(path)
    lines = _read_lines(path, "nearest-frames file")
    if len(lines) < 3:
        raise MalformedFile(path, "missing broadcast header (expected 3 lines)", line=len(lines) + 1)

    broadcast = lines[0].strip()
    if not broadcast:
        raise MalformedFile(path, "empty broadcast name", line=1)
    total, duration_ms = _parse_counts_and_duration(path, 2, lines[1], 2, "broadcast header")
    sample_rate, width, height = _parse_ints(path, 3, lines[2], 3, "sampling header")
    if sample_rate < 1 or width < 1 or height < 1:
        raise MalformedFile(path, "sample rate and resize dimensions must be >= 1", line=3)

    body = lines[3:]
    if len(body) % 2 != 0:
        raise MalformedFile(path, "nearest match records must be two lines each", line=len(lines))

    matches: list[NearestMatch] = []
    for i in range(0, len(body), 2):
        line_no = i + 4
        ad_name = body[i].strip()
        if not ad_name:
            raise MalformedFile(path, "empty ad name", line=line_no)
        (ad_frame,) = _parse_ints(path, line_no + 1, body[i + 1], 1, "ad frame index")
        if ad_frame < 0:
            raise MalformedFile(path, "ad frame index must be >= 0", line=line_no + 1)
        matches.append(NearestMatch(ad_name=ad_name, ad_frame=ad_frame))

    return NearestFrames(
        broadcast=broadcast,
        total_frames=total,
        duration_ms=duration_ms,
        sample_rate=sample_rate,
        resize_width=width,
        resize_height=height,
        matches=matches,
    )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

def write_results(path: Path, detections: Iterable[Detection]) -> None:
    lines = [d.to_tsv() for d in detections]
    atomic_write_text(path, "\n".join(lines) + ("\n" if lines else ""))


def write_results_json(path: Path, detections: Iterable[Detection]) -> None:
    rows = [d.model_dump() for d in detections]
    atomic_write_text(path, json.dumps(rows, indent=2, sort_keys=True) + "\n")
