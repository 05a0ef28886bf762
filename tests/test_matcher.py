from __future__ import annotations

import numpy as np
import pytest

from conftest import make_sequence, uniform_frames
from adspot.config import load_config
from adspot.detection.catalog import AdCatalog
from adspot.detection.fingerprint import distance
from adspot.detection.matcher import NearestFrameMatcher
from adspot.errors import DegenerateInput, DimensionMismatch
from adspot.utils.data_models import NearestMatch, VideoFingerprintSequence


def _broadcast(values: list[int]) -> VideoFingerprintSequence:
    return make_sequence("mega", values)


def test_exact_frames_match_themselves(config) -> None:
    catalog = AdCatalog.from_sequences([make_sequence("alpha", [10, 20, 30]), make_sequence("bravo", [200, 210])])
    matcher = NearestFrameMatcher(config, progress=False)

    matches = matcher.match(_broadcast([210, 20, 31, 255, 0]), catalog)

    assert matches == [
        NearestMatch(ad_name="bravo", ad_frame=2),
        NearestMatch(ad_name="alpha", ad_frame=2),
        NearestMatch(ad_name="alpha", ad_frame=3),
        NearestMatch(ad_name="bravo", ad_frame=2),
        NearestMatch(ad_name="alpha", ad_frame=1),
    ]


def test_ties_go_to_first_ad_by_name_then_first_frame(config) -> None:
    # 50 is equally far from 40 and 60
    catalog = AdCatalog.from_sequences(
        [make_sequence("zulu", [40]), make_sequence("alpha", [60, 90, 60])]
    )
    matcher = NearestFrameMatcher(config, progress=False)

    assert matcher.match(_broadcast([50, 60]), catalog) == [
        NearestMatch(ad_name="alpha", ad_frame=1),
        NearestMatch(ad_name="alpha", ad_frame=1),
    ]


def _brute_force(broadcast: np.ndarray, catalog: AdCatalog) -> list[NearestMatch]:
    out = []
    for row in broadcast:
        best, best_name, best_frame = None, None, 0
        for entry in catalog:
            for j, ad_row in enumerate(entry.sequence.frames):
                d = distance(row, ad_row)
                if best is None or d < best:
                    best, best_name, best_frame = d, entry.name, j + 1
        out.append(NearestMatch(ad_name=best_name, ad_frame=best_frame))
    return out


@pytest.mark.parametrize("batch_size,workers", [(1, 1), (3, 1), (4, 3), (256, 2)])
def test_batched_matching_equals_exhaustive_scan(batch_size: int, workers: int) -> None:
    rng = np.random.default_rng(11)
    ads = [
        VideoFingerprintSequence(
            name=name,
            frames=rng.integers(0, 256, size=(n, 256), dtype=np.uint8),
            total_frames=n * 10,
            duration_ms=n * 333,
        )
        for name, n in [("c", 4), ("a", 6), ("b", 1)]
    ]
    catalog = AdCatalog.from_sequences(ads)
    broadcast = VideoFingerprintSequence(
        name="mega",
        frames=rng.integers(0, 256, size=(17, 256), dtype=np.uint8),
        total_frames=170,
        duration_ms=5667,
    )
    config = load_config(overrides={"processing": {"batch_size": batch_size, "workers": workers}})

    matches = NearestFrameMatcher(config, progress=False).match(broadcast, catalog)

    assert matches == _brute_force(broadcast.frames, catalog)


def test_nearest_frames_carries_broadcast_header(config) -> None:
    catalog = AdCatalog.from_sequences([make_sequence("alpha", [1, 2])])
    nearest = NearestFrameMatcher(config, progress=False).nearest_frames(_broadcast([1, 2, 2]), catalog)

    assert nearest.broadcast == "mega"
    assert nearest.total_frames == 30
    assert nearest.sample_rate == 10
    assert (nearest.resize_width, nearest.resize_height) == (16, 16)
    assert [m.ad_frame for m in nearest.matches] == [1, 2, 2]


def test_width_mismatch_is_rejected(config) -> None:
    catalog = AdCatalog.from_sequences([make_sequence("alpha", [1, 2])])
    matcher = NearestFrameMatcher(config, progress=False)
    with pytest.raises(DimensionMismatch):
        matcher.nearest_indices(uniform_frames([1], length=64), catalog)

    small = VideoFingerprintSequence(name="mega", frames=uniform_frames([1], length=64), total_frames=10, duration_ms=333)
    with pytest.raises(DimensionMismatch):
        matcher.nearest_frames(small, catalog)


def test_empty_catalog_is_degenerate(config) -> None:
    with pytest.raises(DegenerateInput):
        NearestFrameMatcher(config, progress=False).match(_broadcast([1]), AdCatalog([]))


def test_empty_broadcast_gives_no_matches(config) -> None:
    catalog = AdCatalog.from_sequences([make_sequence("alpha", [1])])
    empty = VideoFingerprintSequence(name="mega", frames=np.zeros((0, 256)), total_frames=0, duration_ms=0)
    assert NearestFrameMatcher(config, progress=False).match(empty, catalog) == []
