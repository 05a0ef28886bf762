"""
Video I/O module using PyAV for memory-efficient streaming.

Broadcast recordings are long, so frames are streamed and only every
``sample_rate``-th frame is converted to a numpy array.
"""

import logging
from pathlib import Path
from typing import Generator

import av
import numpy as np
from av.error import FFmpegError

from adspot.errors import DegenerateInput, MissingResource

logger = logging.getLogger(__name__)


class VideoReader:
    """Memory-efficient video reader using PyAV streaming."""

    def __init__(self, video_path: Path | str):
        """
        Initialize video reader.

        Args:
            video_path: Path to the video file
        """
        self.video_path = Path(video_path)
        if not self.video_path.is_file():
            raise MissingResource(self.video_path, "video")

        try:
            container = av.open(str(self.video_path))
        except FFmpegError as e:
            raise DegenerateInput(f"cannot open video {self.video_path}: {e}") from e

        try:
            if not container.streams.video:
                raise DegenerateInput(f"no video stream in {self.video_path}")
            stream = container.streams.video[0]

            self.width = stream.width
            self.height = stream.height
            self.fps = float(stream.average_rate) if stream.average_rate else 0.0
            self.total_frames = int(stream.frames or 0)
            if stream.duration is not None and stream.time_base is not None:
                self.duration = float(stream.duration * stream.time_base)
            elif container.duration is not None:
                self.duration = container.duration / av.time_base
            else:
                self.duration = None
            self.codec = stream.codec_context.name
        finally:
            container.close()

        # Some containers (MPEG-PS among them) do not store a frame count.
        if self.total_frames <= 0:
            self.total_frames = self._count_frames()
        if self.duration is None and self.fps > 0:
            self.duration = self.total_frames / self.fps

    def __repr__(self) -> str:
        return (
            f"VideoReader({self.video_path.name}, "
            f"{self.width}x{self.height}, "
            f"{self.fps:.2f}fps, "
            f"{self.total_frames} frames)"
        )

    @property
    def duration_ms(self) -> int:
        if self.duration is None:
            return 0
        return int(round(self.duration * 1000.0))

    def _count_frames(self) -> int:
        logger.debug("Counting frames of %s by demuxing", self.video_path)
        count = 0
        with av.open(str(self.video_path)) as container:
            for packet in container.demux(video=0):
                if packet.size:
                    count += 1
        return count

    def frames(self, step: int = 1) -> Generator[tuple[int, np.ndarray], None, None]:
        """
        Iterate over every ``step``-th frame, starting with the first.

        Args:
            step: Yield every Nth frame

        Yields:
            Tuple of (frame_number, frame_array) where frame_array is RGB uint8
        """
        if step < 1:
            raise DegenerateInput(f"frame step must be >= 1 (got {step})")

        try:
            container = av.open(str(self.video_path))
        except FFmpegError as e:
            raise DegenerateInput(f"cannot open video {self.video_path}: {e}") from e

        try:
            for frame_idx, frame in enumerate(container.decode(video=0)):
                if frame_idx % step != 0:
                    continue
                yield frame_idx, frame.to_ndarray(format="rgb24")
        except FFmpegError as e:
            raise DegenerateInput(f"decode failed for {self.video_path}: {e}") from e
        finally:
            container.close()


def get_video_info(video_path: Path | str) -> dict:
    """
    Get video metadata.

    Args:
        video_path: Path to video file

    Returns:
        Dictionary with video information
    """
    reader = VideoReader(video_path)
    return {
        "path": str(reader.video_path),
        "width": reader.width,
        "height": reader.height,
        "fps": reader.fps,
        "total_frames": reader.total_frames,
        "duration_ms": reader.duration_ms,
        "codec": reader.codec,
    }
