"""Hand landmark detection for pinchwave.

Detection runs asynchronously, at its own pace: frames are handed to MediaPipe's hand
landmarker (in live stream mode), which calls us back whenever it has a result. The
latest result is kept in a `LatestResult`, which the frame loop reads (without
waiting) at the start of each tick.
"""

import logging
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from pinchwave.smoothing import Hand, Handedness, Keypoint
from pinchwave.util import data_files

logger = logging.getLogger(__name__)

# Path to the hand landmarker model
hand_landmarker_path = str(data_files / 'hand_landmarker.task')


class ModelNotFoundError(FileNotFoundError):
    """Raised when the hand landmarker model file can't be found."""


# -------------------------------------------------------------------------------
# Result handoff
# -------------------------------------------------------------------------------


class LatestResult:
    """
    Holds the most recent list of detected hands.

    Written by the detector's callback, read by the frame loop. Reading never blocks
    on a new result: if nothing new came in, the previous result is returned again.

    >>> latest = LatestResult()
    >>> latest.get()
    []
    >>> latest.set(['some hand'])
    >>> latest.snapshot()
    (1, ['some hand'])
    """

    def __init__(self):
        self._hands: List[Hand] = []
        self._lock = threading.Lock()
        self.version = 0

    def set(self, hands: List[Hand]):
        with self._lock:
            self._hands = hands
            self.version += 1

    def get(self) -> List[Hand]:
        with self._lock:
            return self._hands

    def snapshot(self) -> Tuple[int, List[Hand]]:
        """The `(version, hands)` of the latest result, read together."""
        with self._lock:
            return self.version, self._hands


# -------------------------------------------------------------------------------
# Conversion of detector results
# -------------------------------------------------------------------------------


def _handedness_label(categories):
    if not categories:
        return None
    category = categories[0]
    return getattr(category, 'category_name', None) or getattr(category, 'label', None)


def hands_from_landmarker_result(result, width, height) -> List[Hand]:
    """
    Convert a hand landmarker result to a list of `Hand`s, in pixel coordinates.

    `result` needs `hand_landmarks` (per hand, landmarks with normalized `x` and `y`)
    and `handedness` (per hand, categories whose first one has a `category_name`).
    Hands without a recognizable handedness are left out.
    """
    hands = []
    hand_landmarks = getattr(result, 'hand_landmarks', None) or []
    handedness = getattr(result, 'handedness', None) or []
    for idx, landmarks in enumerate(hand_landmarks):
        label = _handedness_label(handedness[idx]) if idx < len(handedness) else None
        try:
            side = Handedness.from_label(label)
        except ValueError:
            logger.debug("Skipping hand %d with handedness %r", idx, label)
            continue
        keypoints = [Keypoint(lm.x * width, lm.y * height) for lm in landmarks]
        hands.append(Hand(side, keypoints))
    return hands


# -------------------------------------------------------------------------------
# Hand Detector
# -------------------------------------------------------------------------------


class HandDetector:
    """
    Asynchronous hand landmark detection with MediaPipe's HandLandmarker.

    Attributes:
        max_hands (int): Maximum number of hands to detect.
        detection_con (float): Minimum detection confidence threshold.
        track_con (float): Minimum tracking confidence threshold.
    """

    def __init__(
        self,
        latest: Optional[LatestResult] = None,
        *,
        max_hands=2,
        detection_con=0.5,
        track_con=0.5,
        model_path=hand_landmarker_path,
    ):
        # Import here to avoid loading mediapipe (and cv2) just to use the core
        import mediapipe as mp

        if not Path(model_path).is_file():
            raise ModelNotFoundError(
                f"Hand landmarker model not found: {model_path}. Download "
                "hand_landmarker.task from the MediaPipe models page and point "
                "--model-path to it."
            )

        self.mp = mp
        self.latest = latest if latest is not None else LatestResult()
        self.max_hands = max_hands
        self.detection_con = detection_con
        self.track_con = track_con
        self._frame_size = (0, 0)
        self._last_timestamp_ms = -1

        options = mp.tasks.vision.HandLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=str(model_path)),
            running_mode=mp.tasks.vision.RunningMode.LIVE_STREAM,
            num_hands=self.max_hands,
            min_hand_detection_confidence=self.detection_con,
            min_tracking_confidence=self.track_con,
            result_callback=self._on_result,
        )
        self.landmarker = mp.tasks.vision.HandLandmarker.create_from_options(options)
        logger.info("Hand landmarker loaded from %s", model_path)

    def _on_result(self, result, output_image, timestamp_ms):
        width, height = self._frame_size
        hands = hands_from_landmarker_result(result, width, height)
        self.latest.set(hands)

    def detect_async(self, img, timestamp_ms: Optional[int] = None):
        """
        Hand a (BGR) frame to the detector. Returns immediately: the result will be
        delivered to `self.latest` when ready.
        """
        import cv2

        if timestamp_ms is None:
            timestamp_ms = int(time.monotonic() * 1000)
        # The landmarker requires strictly increasing timestamps
        timestamp_ms = max(timestamp_ms, self._last_timestamp_ms + 1)
        self._last_timestamp_ms = timestamp_ms

        height, width = img.shape[:2]
        self._frame_size = (width, height)
        img_rgb = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
        mp_image = self.mp.Image(image_format=self.mp.ImageFormat.SRGB, data=img_rgb)
        self.landmarker.detect_async(mp_image, timestamp_ms)

    def close(self):
        self.landmarker.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False
