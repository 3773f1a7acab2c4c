"""Tests for the detector result handoff and conversion (no model needed)."""

import threading
from types import SimpleNamespace

from pinchwave.smoothing import Handedness
from pinchwave.video_features import LatestResult, hands_from_landmarker_result


def landmarks(n=21, x=0.5, y=0.25):
    return [SimpleNamespace(x=x, y=y, z=0.0) for _ in range(n)]


def category(name):
    return [SimpleNamespace(category_name=name, score=0.9)]


def test_conversion_to_pixels():
    result = SimpleNamespace(
        hand_landmarks=[landmarks(), landmarks(x=0.1, y=0.9)],
        handedness=[category('Left'), category('Right')],
    )
    hands = hands_from_landmarker_result(result, 640, 480)
    assert [h.handedness for h in hands] == [Handedness.LEFT, Handedness.RIGHT]
    assert len(hands[0].keypoints) == 21
    assert (hands[0][0].x, hands[0][0].y) == (320.0, 120.0)
    assert (hands[1][0].x, hands[1][0].y) == (64.0, 432.0)


def test_empty_result():
    result = SimpleNamespace(hand_landmarks=[], handedness=[])
    assert hands_from_landmarker_result(result, 640, 480) == []
    assert hands_from_landmarker_result(SimpleNamespace(), 640, 480) == []


def test_hands_without_handedness_are_skipped():
    result = SimpleNamespace(
        hand_landmarks=[landmarks(), landmarks(), landmarks()],
        handedness=[category('Right'), category('Ambidextrous')],
    )
    hands = hands_from_landmarker_result(result, 640, 480)
    assert [h.handedness for h in hands] == [Handedness.RIGHT]


def test_latest_result_keeps_the_last_write():
    latest = LatestResult()
    latest.set(['a'])
    latest.set(['b'])
    assert latest.get() == ['b']
    assert latest.get() == ['b']  # reading doesn't consume
    assert latest.version == 2


def test_latest_result_across_threads():
    latest = LatestResult()

    def write():
        for i in range(1000):
            latest.set([i])

    writer = threading.Thread(target=write)
    writer.start()
    seen = [latest.get() for _ in range(1000)]
    writer.join()

    assert latest.get() == [999]
    assert latest.version == 1000
    assert all(s == [] or len(s) == 1 for s in seen)
