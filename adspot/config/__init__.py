from .settings import (
    DEFAULT_CONFIG_PATH,
    AdSpotConfig,
    IOConfig,
    ProcessingConfig,
    SamplingConfig,
    TrackerConfig,
    deep_merge,
    load_config,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "AdSpotConfig",
    "IOConfig",
    "ProcessingConfig",
    "SamplingConfig",
    "TrackerConfig",
    "deep_merge",
    "load_config",
]
