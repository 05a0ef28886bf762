"""
Per-ad sequence tracking.

One SequenceTracker follows one ad across the nearest-match stream of a
broadcast. It enters Matching when the ad shows up near its beginning,
scores every following frame, and either gives up once a fail score passes
its limit or reports a Detection once the ad has been followed close enough
to its end.

Per frame the rules are applied in this order:
  1. the frame names this ad: start, advance or penalize a backwards jump
  2. the frame names another ad: name_fail += 1 while Matching
  3. a fail score above its limit drops back to Idle, nothing emitted
  4. position past sampled_frames - match_end_error_margin emits and resets
The limit check runs before the completion check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable

from adspot.config import TrackerConfig
from adspot.utils.data_models import AdCatalogEntry, Detection, NearestFrames, NearestMatch

from .catalog import AdCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    """Not following a candidate airing."""


@dataclass(frozen=True)
class Matching:
    """Following a candidate airing of the ad."""
    position: int      # ad frame expected next (1-based)
    start_frame: int   # sampled broadcast frame where the candidate began
    name_fail: float = 0.0
    sequence_fail: float = 0.0


TrackerState = Idle | Matching


@dataclass
class SequenceTracker:
    ad: AdCatalogEntry
    broadcast: str
    broadcast_fps: float
    sample_rate: int
    cfg: TrackerConfig = field(default_factory=TrackerConfig)
    state: TrackerState = field(default_factory=Idle)

    def update(self, frame_index: int, match: NearestMatch) -> Detection | None:
        """Consume the nearest match of one sampled broadcast frame."""
        cfg = self.cfg
        state = self.state

        if match.ad_name == self.ad.name:
            if isinstance(state, Idle):
                if match.ad_frame < cfg.match_start_error_margin:
                    state = Matching(position=match.ad_frame, start_frame=frame_index)
            elif match.ad_frame >= state.position:
                name_fail = max(0.0, state.name_fail - cfg.name_fail_forgiveness)
                if match.ad_frame > state.position + cfg.overshoot_tolerance:
                    jump = match.ad_frame - state.position
                    sequence_fail = state.sequence_fail + jump * cfg.sequence_overshoot_factor
                else:
                    sequence_fail = max(0.0, state.sequence_fail - cfg.sequence_fail_forgiveness)
                state = Matching(
                    position=state.position + 1,
                    start_frame=state.start_frame,
                    name_fail=name_fail,
                    sequence_fail=sequence_fail,
                )
            else:
                state = replace(state, sequence_fail=state.sequence_fail + cfg.sequence_undershoot_penalty)
        elif isinstance(state, Matching):
            state = replace(state, name_fail=state.name_fail + 1.0)

        detection: Detection | None = None
        if isinstance(state, Matching):
            if state.name_fail > cfg.name_fail_limit or state.sequence_fail > cfg.sequence_fail_limit:
                logger.debug(
                    "%s: candidate from frame %d dropped at frame %d (name_fail=%.2f, sequence_fail=%.2f)",
                    self.ad.name, state.start_frame, frame_index, state.name_fail, state.sequence_fail,
                )
                state = Idle()
            elif state.position > self.ad.sampled_frames - cfg.match_end_error_margin:
                detection = Detection(
                    broadcast=self.broadcast,
                    start_seconds=(state.start_frame * self.sample_rate) / self.broadcast_fps,
                    duration_seconds=self.ad.duration_ms / 1000.0,
                    ad_name=self.ad.name,
                    start_frame=state.start_frame,
                    end_frame=frame_index,
                )
                state = Idle()

        self.state = state
        return detection

    def run(self, matches: Iterable[NearestMatch]) -> list[Detection]:
        """Feed a whole nearest-match stream, returning detections in order."""
        found: list[Detection] = []
        for frame_index, match in enumerate(matches):
            detection = self.update(frame_index, match)
            if detection is not None:
                found.append(detection)
        return found


def detect_ads(nearest: NearestFrames, catalog: AdCatalog, cfg: TrackerConfig) -> list[Detection]:
    """
    Run one tracker per catalog ad over the nearest-match stream.

    Detections come out grouped by ad in catalog order, and by broadcast
    frame within one ad.
    """
    fps = nearest.fps

    unknown = sorted({m.ad_name for m in nearest.matches} - set(catalog.names))
    if unknown:
        logger.warning("Nearest-frames stream names %d ads missing from the catalog: %s", len(unknown), ", ".join(unknown))

    detections: list[Detection] = []
    for entry in catalog:
        tracker = SequenceTracker(
            ad=entry,
            broadcast=nearest.broadcast,
            broadcast_fps=fps,
            sample_rate=nearest.sample_rate,
            cfg=cfg,
        )
        found = tracker.run(nearest.matches)
        if found:
            logger.info("%s: %d airing(s) of %s", nearest.broadcast, len(found), entry.name)
        detections.extend(found)
    return detections
