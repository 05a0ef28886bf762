"""
Nearest-frame matching.

For every sampled broadcast frame, find the closest sampled frame among all
ads in the catalog. Distances are exact squared Euclidean distances computed
in int64 as |b|^2 + |a|^2 - 2 b.a over batches of broadcast frames.

Ties go to the first ad frame in catalog order: numpy.argmin returns the
first index holding the minimum, which is the same as scanning ads and
frames in order and only replacing the best on a strictly smaller distance.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np
from tqdm import tqdm

from adspot.config import AdSpotConfig
from adspot.errors import DegenerateInput, DimensionMismatch
from adspot.utils.data_models import NearestFrames, NearestMatch, VideoFingerprintSequence

from .catalog import AdCatalog

logger = logging.getLogger(__name__)


class NearestFrameMatcher:
    """Labels each broadcast frame with its nearest ad and ad frame."""

    def __init__(self, config: AdSpotConfig, progress: bool = True):
        """
        Initialize the matcher.

        Args:
            config: Run configuration (sampling and processing sections are used)
            progress: Show a progress bar while matching
        """
        self.config = config
        self.batch_size = config.processing.batch_size
        self.workers = config.processing.workers
        self.progress = progress

    def nearest_indices(self, broadcast: np.ndarray, catalog: AdCatalog) -> np.ndarray:
        """
        Row index of the nearest stacked ad frame for every broadcast fingerprint.

        Args:
            broadcast: (n, length) fingerprint matrix
            catalog: Ad catalog with fingerprints loaded

        Returns:
            (n,) int64 array of rows into ``catalog.stacked()[0]``
        """
        ads, _starts, _names = catalog.stacked()
        if ads.shape[0] == 0:
            raise DegenerateInput("ad catalog contains no sampled frames")
        broadcast = np.asarray(broadcast)
        if broadcast.ndim == 2 and broadcast.shape[0] == 0:
            return np.zeros(0, dtype=np.int64)
        if broadcast.ndim != 2 or broadcast.shape[1] != ads.shape[1]:
            width = broadcast.shape[1] if broadcast.ndim == 2 else broadcast.size
            raise DimensionMismatch(width, ads.shape[1], context="broadcast vs ad fingerprints")

        ad_norms = np.einsum("ij,ij->i", ads, ads)
        ads_t = np.ascontiguousarray(ads.T)
        n = broadcast.shape[0]
        bounds = [(s, min(s + self.batch_size, n)) for s in range(0, n, self.batch_size)]

        def run_batch(bound: tuple[int, int]) -> np.ndarray:
            lo, hi = bound
            block = broadcast[lo:hi].astype(np.int64)
            dists = np.einsum("ij,ij->i", block, block)[:, None] + ad_norms[None, :] - 2 * (block @ ads_t)
            return np.argmin(dists, axis=1)

        results: list[Optional[np.ndarray]] = [None] * len(bounds)
        with tqdm(total=n, desc="Matching", unit="frame", disable=not self.progress) as pbar:
            if self.workers > 1 and len(bounds) > 1:
                with ThreadPoolExecutor(max_workers=self.workers) as pool:
                    for i, out in enumerate(pool.map(run_batch, bounds)):
                        results[i] = out
                        pbar.update(bounds[i][1] - bounds[i][0])
            else:
                for i, bound in enumerate(bounds):
                    results[i] = run_batch(bound)
                    pbar.update(bound[1] - bound[0])

        if not results:
            return np.zeros(0, dtype=np.int64)
        return np.concatenate(results).astype(np.int64)

    def match(self, broadcast: VideoFingerprintSequence, catalog: AdCatalog) -> list[NearestMatch]:
        """Nearest (ad name, 1-based ad frame) for every sampled broadcast frame, in order."""
        if len(catalog) == 0:
            raise DegenerateInput("ad catalog is empty")
        _ads, starts, names = catalog.stacked()
        rows = self.nearest_indices(broadcast.frames, catalog)

        owners = np.searchsorted(starts, rows, side="right") - 1
        frames = rows - starts[owners] + 1
        matches = [NearestMatch(ad_name=names[o], ad_frame=int(f)) for o, f in zip(owners, frames)]
        logger.info("Matched %d broadcast frames of %s against %d ads", len(matches), broadcast.name, len(catalog))
        return matches

    def nearest_frames(self, broadcast: VideoFingerprintSequence, catalog: AdCatalog) -> NearestFrames:
        """Run the matcher and package the result with the broadcast header."""
        sampling = self.config.sampling
        if broadcast.sampled_frames and broadcast.fingerprint_length != sampling.fingerprint_length:
            raise DimensionMismatch(
                broadcast.fingerprint_length,
                sampling.fingerprint_length,
                context=f"broadcast {broadcast.name!r} vs configured resize",
            )
        return NearestFrames(
            broadcast=broadcast.name,
            total_frames=broadcast.total_frames,
            duration_ms=broadcast.duration_ms,
            sample_rate=sampling.sample_rate,
            resize_width=sampling.resize_width,
            resize_height=sampling.resize_height,
            matches=self.match(broadcast, catalog),
        )
