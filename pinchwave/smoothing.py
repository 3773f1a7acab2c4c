"""Hand data types and temporal smoothing of hand landmarks.

The detector gives us jittery keypoint positions. Before any gesture logic runs, the
keypoints of every hand are exponentially interpolated (lerped) towards the latest
raw detection.

Hands have no tracking id: a hand is identified by its position in the list of
detected hands. So when the number of hands changes, the smoothed state is thrown
away and rebuilt from the raw data.

>>> smoother = LandmarkSmoother(alpha=0.5)
>>> raw = [Hand.from_points('Right', [(100, 100)] * 21)]
>>> smoother.update(raw)[0].keypoints[0]
Keypoint(x=100.0, y=100.0)
>>> raw = [Hand.from_points('Right', [(200, 0)] * 21)]
>>> smoother.update(raw)[0].keypoints[0]
Keypoint(x=150.0, y=50.0)
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Sequence, Tuple

from pinchwave.config import validate_lerp_factor, DFLT_LERP_FACTOR
from pinchwave.util import lerp, N_HAND_LANDMARKS

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------------------
# Types
# -------------------------------------------------------------------------------


class Handedness(Enum):
    LEFT = 'Left'
    RIGHT = 'Right'

    @classmethod
    def from_label(cls, label):
        """Get the handedness from a detector label ('Left', 'right', ...)."""
        if isinstance(label, cls):
            return label
        return cls(str(label).strip().capitalize())


@dataclass
class Keypoint:
    x: float
    y: float

    def copy(self):
        return Keypoint(self.x, self.y)


@dataclass
class Hand:
    handedness: Handedness
    keypoints: List[Keypoint] = field(default_factory=list)

    @classmethod
    def from_points(cls, handedness, points: Iterable[Tuple[float, float]]):
        """Make a hand from a handedness label and `(x, y)` pairs."""
        return cls(
            Handedness.from_label(handedness),
            [Keypoint(float(x), float(y)) for x, y in points],
        )

    def copy(self):
        return Hand(self.handedness, [kp.copy() for kp in self.keypoints])

    def __getitem__(self, idx):
        return self.keypoints[idx]

    def __len__(self):
        return len(self.keypoints)


def is_valid_hand(hand) -> bool:
    """
    Tell if `hand` has the expected structure: a handedness, and 21 keypoints with
    finite coordinates.

    >>> is_valid_hand(Hand.from_points('Left', [(0, 0)] * 21))
    True
    >>> is_valid_hand(Hand.from_points('Left', [(0, 0)] * 20))
    False
    >>> is_valid_hand(Hand.from_points('Left', [(float('nan'), 0)] * 21))
    False
    """
    if not isinstance(hand, Hand) or not isinstance(hand.handedness, Handedness):
        return False
    if len(hand.keypoints) != N_HAND_LANDMARKS:
        return False
    return all(
        math.isfinite(kp.x) and math.isfinite(kp.y) for kp in hand.keypoints
    )


# -------------------------------------------------------------------------------
# Smoothing
# -------------------------------------------------------------------------------


def copy_hands(hands: Sequence[Hand]) -> List[Hand]:
    """Deep copy of a list of hands."""
    return [hand.copy() for hand in hands]


class LandmarkSmoother:
    """
    Keeps a smoothed version of the stream of detected hands.

    The `smoothed` list is owned (and mutated in place) by the smoother. Other
    components should only read it.
    """

    def __init__(self, alpha: float = DFLT_LERP_FACTOR):
        self.alpha = validate_lerp_factor(alpha)
        self.smoothed: List[Hand] = []

    def update(self, raw_hands: Sequence[Hand]) -> List[Hand]:
        """
        Move the smoothed hands towards `raw_hands`, and return them.

        If the number of hands changed, the smoothed hands are reset to a copy of the
        raw ones. Otherwise, hand by hand:

        * a malformed raw hand is a dropped frame: the smoothed hand is left as is,
        * a malformed smoothed hand (copied from a malformed detection) is replaced
          by a copy of the raw hand,
        * otherwise the smoothed keypoints are lerped towards the raw ones.
        """
        if len(raw_hands) != len(self.smoothed):
            logger.debug(
                "Hand count changed (%d -> %d): resyncing",
                len(self.smoothed),
                len(raw_hands),
            )
            self.smoothed[:] = copy_hands(raw_hands)
            return self.smoothed

        alpha = self.alpha
        for i, (raw, smooth) in enumerate(zip(raw_hands, self.smoothed)):
            if not is_valid_hand(raw):
                continue
            if not is_valid_hand(smooth):
                self.smoothed[i] = raw.copy()
                continue
            smooth.handedness = raw.handedness
            for rk, sk in zip(raw.keypoints, smooth.keypoints):
                sk.x = lerp(sk.x, rk.x, alpha)
                sk.y = lerp(sk.y, rk.y, alpha)

        return self.smoothed

    __call__ = update

    def reset(self):
        self.smoothed.clear()
