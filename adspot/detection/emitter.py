"""Collects detections for one broadcast and writes them out."""

import logging
from pathlib import Path
from typing import Iterable, Iterator, Literal

from adspot.utils.data_models import Detection
from adspot.utils.descriptor_io import write_results, write_results_json

logger = logging.getLogger(__name__)

ResultsFormat = Literal["tsv", "json"]


class DetectionEmitter:
    """Keeps detections in the order they were found. No merging or dedup across ads."""

    def __init__(self, broadcast: str):
        self.broadcast = broadcast
        self._detections: list[Detection] = []

    def __len__(self) -> int:
        return len(self._detections)

    def __iter__(self) -> Iterator[Detection]:
        return iter(self._detections)

    @property
    def detections(self) -> list[Detection]:
        return list(self._detections)

    def add(self, detection: Detection) -> None:
        if detection.broadcast != self.broadcast:
            raise ValueError(
                f"detection for broadcast {detection.broadcast!r} added to emitter for {self.broadcast!r}"
            )
        self._detections.append(detection)

    def extend(self, detections: Iterable[Detection]) -> None:
        for detection in detections:
            self.add(detection)

    def write(self, path: Path, fmt: ResultsFormat = "tsv") -> Path:
        """Write the results file (tab-separated or JSON)."""
        path = Path(path)
        if fmt == "json":
            write_results_json(path, self._detections)
        elif fmt == "tsv":
            write_results(path, self._detections)
        else:
            raise ValueError(f"unknown results format: {fmt!r}")
        logger.info("Wrote %d detections for %s to %s", len(self._detections), self.broadcast, path)
        return path
