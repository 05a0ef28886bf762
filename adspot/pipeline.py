"""
Main processing pipeline for ad detection.

Orchestrates the stages: fingerprinting videos into descriptor files,
matching a broadcast against the ad catalog, and tracking each ad over the
nearest-match stream to produce detections.
"""

import logging
from pathlib import Path
from typing import Optional

from adspot.config import AdSpotConfig
from adspot.detection.catalog import AdCatalog
from adspot.detection.emitter import DetectionEmitter, ResultsFormat
from adspot.detection.fingerprint import fingerprint_video
from adspot.detection.matcher import NearestFrameMatcher
from adspot.detection.tracker import detect_ads
from adspot.errors import AdSpotError, DegenerateInput, MissingResource
from adspot.utils.data_models import NearestFrames, VideoFingerprintSequence
from adspot.utils.descriptor_io import (
    read_descriptor,
    read_nearest_frames,
    write_ad_directory,
    write_descriptor,
    write_nearest_frames,
)
from adspot.utils.video_io import VideoReader

logger = logging.getLogger(__name__)


class Pipeline:
    """Main processing pipeline for broadcast ad detection."""

    def __init__(
        self,
        config: AdSpotConfig,
        output_dir: Path,
        progress: bool = True,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Run configuration
            output_dir: Directory for output files
            progress: Show progress bars for long loops
        """
        self.config = config
        self.output_dir = Path(output_dir)
        self.progress = progress

        self._matcher: Optional[NearestFrameMatcher] = None

    @property
    def matcher(self) -> NearestFrameMatcher:
        """Lazy-load the nearest-frame matcher."""
        if self._matcher is None:
            self._matcher = NearestFrameMatcher(self.config, progress=self.progress)
        return self._matcher

    @property
    def nearest_path(self) -> Path:
        return self.output_dir / self.config.io.nearest_file_name

    @property
    def results_path(self) -> Path:
        return self.output_dir / self.config.io.results_file_name

    def fingerprint(self, video_path: Path, name: Optional[str] = None) -> VideoFingerprintSequence:
        """Decode, sample and fingerprint one video."""
        reader = VideoReader(video_path)
        logger.info("Fingerprinting %s", reader)
        return fingerprint_video(reader, self.config.sampling, name=name, progress=self.progress)

    def describe_videos(
        self,
        input_dir: Path,
        extension: Optional[str] = None,
    ) -> list[VideoFingerprintSequence]:
        """
        Write a descriptor file for every video in a directory, plus the ad directory file.

        Only the first level of ``input_dir`` is searched. Outputs go to the
        pipeline's output directory.
        """
        input_dir = Path(input_dir)
        if not input_dir.is_dir():
            raise MissingResource(input_dir, "video directory")
        extension = (extension or self.config.io.ad_extension).lstrip(".")

        video_paths = sorted(p for p in input_dir.glob(f"*.{extension}") if p.is_file())
        if not video_paths:
            raise DegenerateInput(f"no .{extension} videos found in {input_dir}")

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AdSpotError(f"cannot create output directory {self.output_dir}: {e}") from e
        sequences: list[VideoFingerprintSequence] = []
        for video_path in video_paths:
            seq = self.fingerprint(video_path)
            out_path = self.output_dir / f"{seq.name}.{self.config.io.descriptor_extension}"
            write_descriptor(out_path, seq)
            logger.info("Saved %d descriptors for %s to %s", seq.sampled_frames, seq.name, out_path)
            sequences.append(seq)

        write_ad_directory(
            self.output_dir / self.config.io.ad_directory_name,
            ((s.name, s.total_frames, s.duration_ms) for s in sequences),
        )
        return sequences

    def load_broadcast(self, path: Path) -> VideoFingerprintSequence:
        """Read a broadcast from a descriptor file, or fingerprint it when given a video."""
        path = Path(path)
        if path.suffix.lstrip(".") == self.config.io.descriptor_extension:
            return read_descriptor(path, fingerprint_length=self.config.sampling.fingerprint_length)
        return self.fingerprint(path)

    def load_catalog(self, descriptor_dir: Path) -> AdCatalog:
        return AdCatalog.from_descriptor_dir(descriptor_dir, self.config.sampling, self.config.io)

    def match(self, broadcast_path: Path, descriptor_dir: Path) -> NearestFrames:
        """Label every sampled broadcast frame with its nearest ad frame and save the stream."""
        catalog = self.load_catalog(descriptor_dir)
        broadcast = self.load_broadcast(broadcast_path)
        nearest = self.matcher.nearest_frames(broadcast, catalog)
        write_nearest_frames(self.nearest_path, nearest)
        return nearest

    def detect(
        self,
        nearest: NearestFrames | Path,
        ad_directory: Path,
        fmt: ResultsFormat = "tsv",
    ) -> DetectionEmitter:
        """Track every ad listed in the ad directory over a nearest-match stream."""
        if not isinstance(nearest, NearestFrames):
            nearest = read_nearest_frames(Path(nearest))

        sampling = self.config.sampling
        if nearest.sample_rate != sampling.sample_rate:
            logger.warning(
                "Nearest-frames file was sampled every %d frames, configuration says %d; using the file's rate",
                nearest.sample_rate, sampling.sample_rate,
            )
            sampling = sampling.model_copy(update={"sample_rate": nearest.sample_rate})

        catalog = AdCatalog.from_ad_directory(ad_directory, sampling)
        return self._emit(nearest, catalog, fmt)

    def run(
        self,
        broadcast_path: Path,
        descriptor_dir: Path,
        fmt: ResultsFormat = "tsv",
    ) -> DetectionEmitter:
        """
        Run the full pipeline for one broadcast.

        Args:
            broadcast_path: Broadcast video or descriptor file
            descriptor_dir: Directory holding the ad descriptors
            fmt: Results file format

        Returns:
            DetectionEmitter holding every detection found
        """
        catalog = self.load_catalog(descriptor_dir)
        broadcast = self.load_broadcast(broadcast_path)
        # fps is checked before the slow matching step
        _ = broadcast.fps

        nearest = self.matcher.nearest_frames(broadcast, catalog)
        write_nearest_frames(self.nearest_path, nearest)
        return self._emit(nearest, catalog, fmt)

    def _emit(self, nearest: NearestFrames, catalog: AdCatalog, fmt: ResultsFormat) -> DetectionEmitter:
        emitter = DetectionEmitter(nearest.broadcast)
        emitter.extend(detect_ads(nearest, catalog, self.config.tracker))
        path = self.results_path.with_suffix(".json") if fmt == "json" else self.results_path
        emitter.write(path, fmt)
        return emitter
