"""Shared fixtures and helpers for the pinchwave tests."""

import pytest

from pinchwave.config import PinchwaveConfig
from pinchwave.smoothing import Hand
from pinchwave.util import HandLandmark

THUMB = HandLandmark.THUMB_TIP
INDEX = HandLandmark.INDEX_FINGER_TIP
MIDDLE = HandLandmark.MIDDLE_FINGER_TIP
RING = HandLandmark.RING_FINGER_TIP


class RecordingAudio:
    """Audio backend that records the calls it gets, as `(method, *args)` tuples."""

    def __init__(self):
        self.calls = []

    def attack(self, voice, freq):
        self.calls.append(('attack', voice, freq))

    def release(self, voice):
        self.calls.append(('release', voice))

    def set_pitch(self, voice, freq, glide_time):
        self.calls.append(('set_pitch', voice, freq, glide_time))

    def set_filter_cutoff(self, voice, hz):
        self.calls.append(('set_filter_cutoff', voice, hz))

    def set_muted(self, voice, muted):
        self.calls.append(('set_muted', voice, muted))

    def calls_to(self, method):
        return [call[1:] for call in self.calls if call[0] == method]

    def clear(self):
        self.calls.clear()


def make_hand(handedness='Right', *, thumb=(180.0, 400.0), pinch=None):
    """
    A hand with keypoints laid out on a horizontal line (20 px apart, so no finger
    tip is close to the thumb tip), with the thumb tip at `thumb`.

    `pinch` maps finger tip indices to their distance to the thumb tip; those finger
    tips are placed straight below the thumb tip.
    """
    points = [(100.0 + 20 * i, 400.0) for i in range(21)]
    points[THUMB] = thumb
    # keep the other finger tips far away from wherever the thumb went
    for tip in (INDEX, MIDDLE, RING):
        points[tip] = (thumb[0] + 100.0 * (1 + tip), thumb[1])
    for tip, distance in (pinch or {}).items():
        points[tip] = (thumb[0], thumb[1] + distance)
    return Hand.from_points(handedness, points)


@pytest.fixture
def audio():
    return RecordingAudio()


@pytest.fixture
def config():
    return PinchwaveConfig()
