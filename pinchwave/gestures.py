"""Pinch gesture detection with hysteresis.

A pinch is two finger landmarks of a same hand getting close to each other.
To avoid flickering when the distance hovers around a threshold, two thresholds are
used: a pinch starts when the distance gets under `on_threshold`, and is only
released when it goes back over `off_threshold` (with `on_threshold < off_threshold`).

The same detector drives two kinds of interaction:

* `GesturePolicy.SUSTAIN`: the channel is engaged while the pinch is held (a note
  sounds from the moment the fingers touch until they part).
* `GesturePolicy.TOGGLE_LOCK`: the channel is a lock; the caller only acts on the
  rising edge (to toggle something), and the lock is cleared as soon as the pinch is
  released, so that the next pinch is a new rising edge.

In both cases `PinchChannel.evaluate` tells the caller what transition happened, and
the caller decides what to do with it.

>>> channel = PinchChannel('lead', GesturePolicy.SUSTAIN, 30, 40)
>>> [channel.evaluate(d).name for d in [50, 35, 25, 35, 45]]
['NONE', 'NONE', 'ROSE', 'NONE', 'FELL']
"""

import logging
from enum import Enum
from typing import Dict, Mapping, Tuple

from pinchwave.config import validate_pinch_thresholds, DFLT_PINCH_ON, DFLT_PINCH_OFF
from pinchwave.util import euclidean_distance, HandLandmark

logger = logging.getLogger(__name__)


def check_pinch(
    p1, p2, was_pinched: bool, on_threshold=DFLT_PINCH_ON, off_threshold=DFLT_PINCH_OFF
) -> bool:
    """
    Tell if `p1` and `p2` are pinched, given whether they were pinched before.

    This doesn't store anything: the caller is responsible for keeping `was_pinched`.

    >>> check_pinch((0, 0), (0, 35), was_pinched=False)
    False
    >>> check_pinch((0, 0), (0, 35), was_pinched=True)
    True
    >>> check_pinch((0, 0), (0, 40), was_pinched=True)
    False
    """
    d = euclidean_distance(p1, p2)
    return is_pinched(d, was_pinched, on_threshold, off_threshold)


def is_pinched(distance, was_pinched, on_threshold, off_threshold) -> bool:
    if was_pinched:
        return distance < off_threshold
    else:
        return distance < on_threshold


class GesturePolicy(Enum):
    SUSTAIN = 'sustain'
    TOGGLE_LOCK = 'toggle_lock'


class Transition(Enum):
    NONE = 0
    ROSE = 1
    FELL = 2


def transition_between(was: bool, now: bool) -> Transition:
    if now and not was:
        return Transition.ROSE
    elif was and not now:
        return Transition.FELL
    return Transition.NONE


class PinchChannel:
    """
    A single pinch gesture channel, keeping its own hysteresis state.

    `engaged` means "note is sounding" for a sustain channel, and "trigger is locked"
    for a toggle-lock channel.
    """

    def __init__(
        self,
        name: str,
        policy: GesturePolicy = GesturePolicy.SUSTAIN,
        on_threshold: float = DFLT_PINCH_ON,
        off_threshold: float = DFLT_PINCH_OFF,
    ):
        validate_pinch_thresholds(on_threshold, off_threshold)
        self.name = name
        self.policy = GesturePolicy(policy)
        self.on_threshold = on_threshold
        self.off_threshold = off_threshold
        self.engaged = False

    def evaluate(self, distance: float) -> Transition:
        """Update the channel with the current distance, returning the transition."""
        was = self.engaged
        self.engaged = is_pinched(distance, was, self.on_threshold, self.off_threshold)
        transition = transition_between(was, self.engaged)
        if transition is not Transition.NONE:
            logger.debug(
                "%s (%s): %s at distance %.1f",
                self.name,
                self.policy.value,
                transition.name,
                distance,
            )
        return transition

    def evaluate_points(self, p1, p2) -> Transition:
        return self.evaluate(euclidean_distance(p1, p2))

    def reset(self):
        self.engaged = False

    def __repr__(self):
        return (
            f"{type(self).__name__}({self.name!r}, {self.policy}, "
            f"engaged={self.engaged})"
        )


# -------------------------------------------------------------------------------
# Gesture banks
# -------------------------------------------------------------------------------


class GestureBank:
    """
    The pinch channels of one hand role, all sharing a same policy.

    Each channel is the pinch of the thumb tip with one finger tip. Channels are
    fully independent (each has its own hysteresis state).

    >>> bank = GestureBank({'kick': 8, 'snare': 12}, GesturePolicy.TOGGLE_LOCK)
    >>> list(bank)
    ['kick', 'snare']
    """

    def __init__(
        self,
        finger_of_channel: Mapping[str, int],
        policy: GesturePolicy,
        on_threshold: float = DFLT_PINCH_ON,
        off_threshold: float = DFLT_PINCH_OFF,
        *,
        anchor: int = HandLandmark.THUMB_TIP,
    ):
        self.anchor = anchor
        self.finger_of_channel = dict(finger_of_channel)
        self.channels: Dict[str, PinchChannel] = {
            name: PinchChannel(name, policy, on_threshold, off_threshold)
            for name in self.finger_of_channel
        }

    def evaluate(self, hand) -> Dict[str, Tuple[bool, Transition]]:
        """Evaluate all channels on `hand`, returning `{name: (engaged, transition)}`."""
        anchor = hand.keypoints[self.anchor]
        out = {}
        for name, channel in self.channels.items():
            finger = hand.keypoints[self.finger_of_channel[name]]
            transition = channel.evaluate_points(anchor, finger)
            out[name] = (channel.engaged, transition)
        return out

    def __getitem__(self, name) -> PinchChannel:
        return self.channels[name]

    def __iter__(self):
        return iter(self.channels)

    def __len__(self):
        return len(self.channels)

    def engaged(self) -> Dict[str, bool]:
        return {name: channel.engaged for name, channel in self.channels.items()}

    def reset(self):
        for channel in self.channels.values():
            channel.reset()
