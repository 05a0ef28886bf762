from .catalog import AdCatalog
from .emitter import DetectionEmitter
from .fingerprint import amount_sampled, distance, fingerprint_frame, fingerprint_video
from .matcher import NearestFrameMatcher
from .tracker import Idle, Matching, SequenceTracker, detect_ads

__all__ = [
    "AdCatalog",
    "DetectionEmitter",
    "Idle",
    "Matching",
    "NearestFrameMatcher",
    "SequenceTracker",
    "amount_sampled",
    "detect_ads",
    "distance",
    "fingerprint_frame",
    "fingerprint_video",
]
