"""Utils for pinchwave."""

import logging
import math
from importlib.resources import files

pkg_name = 'pinchwave'
data_files = files(pkg_name) / 'data'


def return_none(*args, **kwargs):
    """
    An empty function that returns None no matter the arguments.
    Often used as a "do nothing" general callback function.
    """
    return None


# --------------------------------------------------------------------------------------
# Constants


class HandLandmark:
    WRIST = 0
    THUMB_CMC = 1
    THUMB_MCP = 2
    THUMB_IP = 3
    THUMB_TIP = 4
    INDEX_FINGER_MCP = 5
    INDEX_FINGER_PIP = 6
    INDEX_FINGER_DIP = 7
    INDEX_FINGER_TIP = 8
    MIDDLE_FINGER_MCP = 9
    MIDDLE_FINGER_PIP = 10
    MIDDLE_FINGER_DIP = 11
    MIDDLE_FINGER_TIP = 12
    RING_FINGER_MCP = 13
    RING_FINGER_PIP = 14
    RING_FINGER_DIP = 15
    RING_FINGER_TIP = 16
    PINKY_MCP = 17
    PINKY_PIP = 18
    PINKY_DIP = 19
    PINKY_TIP = 20


N_HAND_LANDMARKS = 21

# Chains of landmark indices, wrist to finger tip
FINGER_CONNECTIONS = (
    (0, 1, 2, 3, 4),
    (0, 5, 6, 7, 8),
    (0, 9, 10, 11, 12),
    (0, 13, 14, 15, 16),
    (0, 17, 18, 19, 20),
)


# --------------------------------------------------------------------------------------
# Numeric utils


def lerp(start, stop, amount):
    """
    Linear interpolation from `start` towards `stop` by `amount`.

    >>> lerp(0, 100, 0.2)
    20.0
    >>> lerp(10, 10, 0.7)
    10.0
    """
    return start + (stop - start) * float(amount)


def clip(value, low, high):
    """
    Constrain `value` to the `[low, high]` interval.

    >>> clip(5, 0, 1)
    1
    >>> clip(-0.5, 0, 1)
    0
    >>> clip(0.25, 0, 1)
    0.25
    """
    return max(low, min(value, high))


def map_range(value, in_low, in_high, out_low, out_high):
    """
    Linearly re-map `value` from `[in_low, in_high]` to `[out_low, out_high]`.

    No clamping is done, and the input range may be "inverted" (`in_low > in_high`).

    >>> map_range(0.5, 0, 1, 100, 200)
    150.0
    >>> map_range(480, 480, 0, 10, 20)
    10.0
    >>> map_range(-240, 480, 0, 10, 20)
    25.0
    """
    span = in_high - in_low
    if span == 0:
        raise ValueError(f"Empty input range: ({in_low}, {in_high})")
    return out_low + (value - in_low) * (out_high - out_low) / float(span)


def euclidean_distance(point1, point2):
    """
    Calculate the Euclidean distance between two 2D points.

    Points can be anything with `x` and `y` attributes, or `(x, y)` sequences.

    >>> euclidean_distance((0, 0), (3, 4))
    5.0
    """
    x1, y1 = _xy(point1)
    x2, y2 = _xy(point2)
    return math.hypot(x1 - x2, y1 - y2)


def _xy(point):
    if hasattr(point, 'x'):
        return point.x, point.y
    return point[0], point[1]


# --------------------------------------------------------------------------------------
# String utils


def format_on_off(flag):
    """
    Format a boolean as a fixed width on/off badge.

    >>> format_on_off(True)
    '[ ON ]'
    >>> format_on_off(False)
    '[ OFF ]'
    """
    return "[ ON ]" if flag else "[ OFF ]"


# --------------------------------------------------------------------------------------
# Logging


DFLT_LOG_FORMAT = "%(asctime)s  %(levelname)-5s  %(name)s  %(message)s"
DFLT_LOG_DATE_FORMAT = "%H:%M:%S"


def setup_logging(level="INFO", *, fmt=DFLT_LOG_FORMAT, datefmt=DFLT_LOG_DATE_FORMAT):
    """Configure a compact console logger for the application and return it."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    root_logger.handlers.clear()
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    root_logger.addHandler(console)

    return root_logger
