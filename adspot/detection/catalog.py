"""
Ad catalog.

An ordered mapping from ad name to its catalog entry. Iteration order is
always lexicographic by ad name, whatever order the ads were added in; the
nearest-frame tie-break and the detection emission order both depend on it.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

import numpy as np

from adspot.config import IOConfig, SamplingConfig
from adspot.errors import AdSpotError, DegenerateInput, DimensionMismatch, MissingResource
from adspot.utils.data_models import AdCatalogEntry, VideoFingerprintSequence
from adspot.utils.descriptor_io import read_ad_directory, read_descriptor

from .fingerprint import amount_sampled

logger = logging.getLogger(__name__)


class AdCatalog:
    """All known ads for one detection run."""

    def __init__(self, entries: Iterable[AdCatalogEntry]):
        by_name: dict[str, AdCatalogEntry] = {}
        for entry in entries:
            if entry.name in by_name:
                raise AdSpotError(f"duplicate ad name in catalog: {entry.name!r}")
            by_name[entry.name] = entry
        self._entries: dict[str, AdCatalogEntry] = {name: by_name[name] for name in sorted(by_name)}
        self._stacked: Optional[tuple[np.ndarray, np.ndarray, list[str]]] = None

    def __repr__(self) -> str:
        return f"AdCatalog({len(self)} ads)"

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AdCatalogEntry]:
        return iter(self._entries.values())

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __getitem__(self, name: str) -> AdCatalogEntry:
        return self._entries[name]

    @property
    def names(self) -> list[str]:
        return list(self._entries)

    @property
    def has_fingerprints(self) -> bool:
        return all(e.sequence is not None for e in self._entries.values())

    @property
    def fingerprint_length(self) -> Optional[int]:
        """Shared fingerprint length, or None when the catalog holds no fingerprints."""
        length: Optional[int] = None
        for entry in self._entries.values():
            if entry.sequence is None:
                continue
            if length is None:
                length = entry.sequence.fingerprint_length
            elif entry.sequence.fingerprint_length != length:
                raise DimensionMismatch(length, entry.sequence.fingerprint_length, context=f"ad {entry.name!r}")
        return length

    def stacked(self) -> tuple[np.ndarray, np.ndarray, list[str]]:
        """
        All ad fingerprints as one matrix in catalog order.

        Returns:
            Tuple of (matrix, starts, names): ``matrix`` holds every sampled
            frame of every ad as int64 rows, ``starts[i]`` is the first row of
            ad ``names[i]``.
        """
        if self._stacked is None:
            if not self.has_fingerprints:
                raise DegenerateInput("catalog was loaded without fingerprints; descriptors are required for matching")
            length = self.fingerprint_length or 0
            blocks = [e.sequence.frames for e in self._entries.values() if e.sequence.sampled_frames > 0]
            matrix = np.vstack(blocks).astype(np.int64) if blocks else np.zeros((0, length), dtype=np.int64)
            sizes = [e.sequence.sampled_frames for e in self._entries.values()]
            starts = np.concatenate(([0], np.cumsum(sizes)[:-1])).astype(np.int64) if sizes else np.zeros(0, np.int64)
            self._stacked = (matrix, starts, self.names)
        return self._stacked

    @classmethod
    def from_sequences(cls, sequences: Iterable[VideoFingerprintSequence]) -> "AdCatalog":
        return cls(
            AdCatalogEntry(
                name=seq.name,
                total_frames=seq.total_frames,
                duration_ms=seq.duration_ms,
                sampled_frames=seq.sampled_frames,
                sequence=seq,
            )
            for seq in sequences
        )

    @classmethod
    def from_ad_directory(cls, path: Path, sampling: SamplingConfig) -> "AdCatalog":
        """Metadata-only catalog; enough for tracking, not for matching."""
        return cls(
            AdCatalogEntry(
                name=name,
                total_frames=total,
                duration_ms=duration_ms,
                sampled_frames=amount_sampled(total, sampling.sample_rate),
            )
            for name, total, duration_ms in read_ad_directory(path)
        )

    @classmethod
    def from_descriptor_dir(cls, directory: Path, sampling: SamplingConfig, io: IOConfig) -> "AdCatalog":
        """
        Load every ad descriptor in a directory.

        The ad directory file decides which ads are loaded when present;
        otherwise every file with the descriptor extension is taken.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise MissingResource(directory, "descriptor directory")

        manifest = directory / io.ad_directory_name
        sequences: list[VideoFingerprintSequence] = []
        if manifest.is_file():
            for name, total, duration_ms in read_ad_directory(manifest):
                seq = read_descriptor(
                    directory / f"{name}.{io.descriptor_extension}",
                    name=name,
                    fingerprint_length=sampling.fingerprint_length,
                )
                if seq.total_frames != total or seq.duration_ms != duration_ms:
                    logger.warning(
                        "Ad %s: descriptor header (%d frames, %d ms) disagrees with ad directory (%d frames, %d ms)",
                        name, seq.total_frames, seq.duration_ms, total, duration_ms,
                    )
                sequences.append(seq)
        else:
            reserved = {io.ad_directory_name, io.nearest_file_name, io.results_file_name}
            for path in sorted(directory.glob(f"*.{io.descriptor_extension}")):
                if path.name in reserved:
                    continue
                sequences.append(read_descriptor(path, fingerprint_length=sampling.fingerprint_length))

        if not sequences:
            raise DegenerateInput(f"no ad descriptors found in {directory}")

        for seq in sequences:
            expected = amount_sampled(seq.total_frames, sampling.sample_rate)
            if seq.sampled_frames != expected:
                logger.warning(
                    "Ad %s: %d sampled frames stored, %d expected for %d frames at sample rate %d",
                    seq.name, seq.sampled_frames, expected, seq.total_frames, sampling.sample_rate,
                )

        catalog = cls.from_sequences(sequences)
        logger.info("Loaded %d ads (%d sampled frames) from %s", len(catalog), sum(e.sampled_frames for e in catalog), directory)
        return catalog
