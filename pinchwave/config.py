"""Configuration constants for pinchwave.

All values are fixed for the lifetime of a process: a `PinchwaveConfig` is frozen,
and is validated on construction.

>>> config = PinchwaveConfig()
>>> config.pinch_on < config.pinch_off
True
>>> config.with_overrides(pinch_on=20).pinch_on
20
>>> PinchwaveConfig(pinch_on=40, pinch_off=30)
Traceback (most recent call last):
...
pinchwave.config.ConfigError: pinch_on (40) must be strictly smaller than pinch_off (30)
"""

from dataclasses import dataclass, replace

# -------------------------------------------------------------------------------
# Defaults
# -------------------------------------------------------------------------------

DFLT_VIDEO_WIDTH = 640
DFLT_VIDEO_HEIGHT = 480
DFLT_LERP_FACTOR = 0.2  # lower is smoother, but slower to follow
DFLT_PINCH_ON = 30  # pixels: distance under which a pinch starts
DFLT_PINCH_OFF = 40  # pixels: distance over which a pinch is released
DFLT_MIN_FREQ = 523.25  # C5
DFLT_MAX_FREQ = 2093.0  # C7
DFLT_MIN_FILTER = 100.0
DFLT_MAX_FILTER = 5000.0
DFLT_GLIDE_TIME = 0.1  # seconds of portamento while a note is held
DFLT_BPM = 160


class ConfigError(ValueError):
    """Raised when configuration values are inconsistent."""


@dataclass(frozen=True)
class PinchwaveConfig:
    video_width: int = DFLT_VIDEO_WIDTH
    video_height: int = DFLT_VIDEO_HEIGHT
    lerp_factor: float = DFLT_LERP_FACTOR
    pinch_on: float = DFLT_PINCH_ON
    pinch_off: float = DFLT_PINCH_OFF
    min_freq: float = DFLT_MIN_FREQ
    max_freq: float = DFLT_MAX_FREQ
    min_filter: float = DFLT_MIN_FILTER
    max_filter: float = DFLT_MAX_FILTER
    glide_time: float = DFLT_GLIDE_TIME
    bpm: float = DFLT_BPM

    def __post_init__(self):
        validate_lerp_factor(self.lerp_factor)
        validate_pinch_thresholds(self.pinch_on, self.pinch_off)
        _validate_range('freq', self.min_freq, self.max_freq)
        _validate_range('filter', self.min_filter, self.max_filter)
        if self.video_width <= 0 or self.video_height <= 0:
            raise ConfigError(
                f"Video size must be positive, got {self.video_width}x{self.video_height}"
            )
        if self.glide_time < 0:
            raise ConfigError(f"glide_time must be non-negative, got {self.glide_time}")
        if self.bpm <= 0:
            raise ConfigError(f"bpm must be positive, got {self.bpm}")

    def with_overrides(self, **overrides):
        """Return a new (validated) config, ignoring overrides that are None."""
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **overrides)


def validate_lerp_factor(lerp_factor):
    if not 0 < lerp_factor <= 1:
        raise ConfigError(f"lerp_factor must be in (0, 1], got {lerp_factor}")
    return lerp_factor


def validate_pinch_thresholds(pinch_on, pinch_off):
    if pinch_on <= 0:
        raise ConfigError(f"pinch_on must be positive, got {pinch_on}")
    if not pinch_on < pinch_off:
        raise ConfigError(
            f"pinch_on ({pinch_on}) must be strictly smaller than pinch_off ({pinch_off})"
        )
    return pinch_on, pinch_off


def _validate_range(name, low, high):
    if not low < high:
        raise ConfigError(f"min_{name} ({low}) must be smaller than max_{name} ({high})")


DFLT_CONFIG = PinchwaveConfig()
