"""Utility functions for running pinchwave."""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from pinchwave.config import PinchwaveConfig, DFLT_CONFIG
from pinchwave.controls import make_performance, tick
from pinchwave.util import setup_logging

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------------------
# Logging utilities
# -------------------------------------------------------------------------------


def hands_to_jdict(hands) -> Dict[str, Any]:
    """A json-friendly view of a list of hands."""
    return {
        'n_hands': len(hands),
        'hands': [
            {
                'handedness': hand.handedness.value,
                'keypoints': [[round(kp.x, 1), round(kp.y, 1)] for kp in hand.keypoints],
            }
            for hand in hands
        ],
    }


def print_json_if_possible(x):
    """Prints the input (as json, if possible) and adds a newline."""
    try:
        x = json.dumps(x)
    except (TypeError, ValueError):
        pass
    print(x)
    print()


def print_hands(hands):
    print_json_if_possible(hands_to_jdict(hands))


# -------------------------------------------------------------------------------
# Keyboard handling functions
# -------------------------------------------------------------------------------

ESCAPE_KEY_ASCII = 27
BREAK_KEYS = {ESCAPE_KEY_ASCII, ord('q')}


class KeyboardBreakSignal(Exception):
    """Exception raised when a break key is pressed."""


def read_keyboard(wait_time: int = 1) -> int:
    """
    Read keyboard input with the specified wait time.

    Args:
        wait_time: Time to wait for keyboard input in milliseconds

    Returns:
        The key code or 0 if no key was pressed
    """
    import cv2

    return cv2.waitKey(wait_time) & 0xFF


def keyboard_feature_vector(key_code: int) -> Dict[str, Any]:
    """
    Convert a key code into a feature vector with keyboard information.

    Raises:
        KeyboardBreakSignal: If a key that signals program termination is pressed
    """
    keyboard_fv = {
        'key_code': key_code,
        'key_pressed': key_code > 0,
        'is_escape': key_code == ESCAPE_KEY_ASCII,
        'timestamp': time.time(),
    }

    if keyboard_fv['key_code'] in BREAK_KEYS:
        raise KeyboardBreakSignal(f"Break key pressed: {key_code}")

    return keyboard_fv


# -------------------------------------------------------------------------------
# Camera handling functions
# -------------------------------------------------------------------------------


class CameraReadError(Exception):
    """Exception raised when camera read fails."""


def open_camera(camera=0, *, width=None, height=None):
    """Open a video capture device, asking (the device may refuse) for a frame size."""
    import cv2

    cap = cv2.VideoCapture(camera)
    if not cap.isOpened():
        raise CameraReadError(f"Could not open video capture device: {camera}")
    if width:
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    if height:
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    return cap


def read_camera(cap) -> Any:
    """
    Read a frame from the camera.

    The frame is NOT flipped: detection runs on the raw frame, and only the display
    is mirrored.

    Raises:
        CameraReadError: If the camera read operation fails
    """
    success, img = cap.read()
    if not success:
        raise CameraReadError("Failed to read from camera")
    return img


# -------------------------------------------------------------------------------
# Main run function
# -------------------------------------------------------------------------------

DFLT_WINDOW_NAME = 'pinchwave'


def read_latest(latest, last_version: int, log_hands: Optional[Callable] = None):
    """
    The `(version, hands)` of the latest detection. `log_hands`, if given, is called
    with the hands only when the detection is newer than `last_version`.
    """
    version, hands = latest.snapshot()
    if log_hands is not None and version != last_version:
        log_hands(hands)
    return version, hands


def run_pinchwave(
    *,
    camera=0,
    model_path: Optional[str] = None,
    config: PinchwaveConfig = DFLT_CONFIG,
    audio=None,
    log_hands: Optional[Callable] = None,
    window_name: str = DFLT_WINDOW_NAME,
    draw_on_screen: Optional[Callable] = None,
):
    """
    Run the pinchwave application: camera → hand detection → smoothing → gestures →
    audio, and a window showing what's going on.

    Args:
        camera: Index (or url) of the video capture device
        model_path: Path to the hand landmarker model (None for the packaged one)
        config: Configuration constants
        audio: Audio backend (None for a new `AudioEngine`)
        log_hands: Function called with every new detection (or None to disable)
        window_name: Title for the display window
        draw_on_screen: Function `(img, hands, state) -> img` (None for `draw_frame`)
    """
    import cv2

    from pinchwave.audio import AudioEngine
    from pinchwave.display import draw_frame
    from pinchwave.video_features import HandDetector, LatestResult

    if audio is None:
        audio = AudioEngine(bpm=config.bpm)
    draw_on_screen = draw_on_screen or draw_frame

    cap = open_camera(camera, width=config.video_width, height=config.video_height)
    frame_width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)) or config.video_width
    frame_height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)) or config.video_height
    if (frame_width, frame_height) != (config.video_width, config.video_height):
        logger.info("Camera gives %dx%d frames", frame_width, frame_height)
        config = config.with_overrides(video_width=frame_width, video_height=frame_height)

    latest = LatestResult()
    detector_kwargs = {'model_path': model_path} if model_path else {}
    detector = HandDetector(latest, **detector_kwargs)
    smoother, mapper, state = make_performance(audio, config)

    n_frames = 0
    last_version = 0
    with audio:
        try:
            while cap.isOpened():
                try:
                    keyboard_feature_vector(read_keyboard())

                    img = read_camera(cap)
                    detector.detect_async(img)

                    # Whatever the latest detection is (possibly the same as last tick)
                    last_version, raw_hands = read_latest(latest, last_version, log_hands)
                    smoothed = tick(raw_hands, smoother, mapper, state)

                    img = draw_on_screen(img, smoothed, state)
                    cv2.imshow(window_name, img)
                    n_frames += 1

                except (CameraReadError, KeyboardBreakSignal) as e:
                    logger.info("Stopping: %s", e)
                    break

        finally:
            logger.info("Ran %d frames", n_frames)
            detector.close()
            cap.release()
            cv2.destroyAllWindows()

    return state


# -------------------------------------------------------------------------------
# Command line interface
# -------------------------------------------------------------------------------


def print_voices():
    # Import here to avoid loading everything if just listing voices
    from pinchwave.audio import synth_funcs, drum_funcs
    from pinchwave.controls import MELODY_VOICES, RHYTHM_VOICES

    print("Melody voices (hold a pinch to play):")
    for voice in MELODY_VOICES:
        print(f"  - {voice.name} ({voice.label}): {_first_line(synth_funcs[voice.name])}")
    print("Rhythm voices (pinch to toggle):")
    for voice in RHYTHM_VOICES:
        print(f"  - {voice.name} ({voice.label}): {_first_line(drum_funcs[voice.name])}")


def _first_line(func):
    doc = (func.__doc__ or '').strip()
    return doc.splitlines()[0] if doc else ''


def pinchwave_cli(
    # Input
    camera: int = 0,
    model_path: Optional[str] = None,
    # Sound
    audio: bool = True,
    bpm: Optional[float] = None,
    # Gestures
    lerp_factor: Optional[float] = None,
    pinch_on: Optional[float] = None,
    pinch_off: Optional[float] = None,
    # Display and logging
    window_name: str = DFLT_WINDOW_NAME,
    log_level: str = 'INFO',
    log_hands: bool = False,
    # List available components
    list_voices: bool = False,
):
    """
    Play music with your hands: pinch with one hand to play melody voices, with the
    other to toggle drum loops.

    Args:
        camera: Index of the video capture device
        model_path: Path to the hand landmarker .task model (None for the packaged one)
        audio: Whether to make sound (False runs the gestures silently)
        bpm: Tempo of the drum loops
        lerp_factor: Landmark smoothing factor, in (0, 1]
        pinch_on: Distance (px) under which a pinch starts
        pinch_off: Distance (px) over which a pinch is released
        window_name: Title for the display window
        log_level: Logging level name
        log_hands: Whether to print every new detection as json
        list_voices: List the voices and exit
    """
    setup_logging(log_level)

    if list_voices:
        print_voices()
        return

    config = DFLT_CONFIG.with_overrides(
        bpm=bpm, lerp_factor=lerp_factor, pinch_on=pinch_on, pinch_off=pinch_off
    )

    audio_backend = None
    if not audio:
        from pinchwave.audio import NullAudio

        audio_backend = NullAudio()

    run_pinchwave(
        camera=camera,
        model_path=model_path,
        config=config,
        audio=audio_backend,
        log_hands=print_hands if log_hands else None,
        window_name=window_name,
    )
