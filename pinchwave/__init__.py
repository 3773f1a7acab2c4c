"""

pinchwave turns your hands, as seen by a webcam, into a small electronic music
instrument.

One hand plays melody: the height of its thumb tip chooses a note of a major
pentatonic scale (C5 to C7), its horizontal position opens or closes a filter, and
pinching the thumb with the index, middle or ring finger plays a lead, chip or bell
voice for as long as the pinch is held.

The other hand plays rhythm: pinching the thumb with the index, middle or ring finger
toggles a kick, snare or hi-hat loop on or off.

The interesting part is not the drawing nor the sound, but turning jittery hand
landmarks into stable gestures:

* `smoothing`: landmarks are smoothed over time (exponential lerp), and the smoothing
  is reset whenever the number of hands changes.
* `gestures`: pinches are detected with hysteresis (a pinch starts under one distance
  and is released over a larger one), and each pinch channel reports rising and
  falling edges, so that the same detector can drive both "hold to play" and
  "pinch to toggle" interactions.
* `controls`: positions and gesture edges are mapped to pitch, filter cutoff and
  on/off flags, and dispatched to the audio engine.

The rest is plumbing:

* `video_features`: asynchronous hand landmark detection (MediaPipe).
* `audio`: the synthesizer and drum loops (numpy, streamed with sounddevice).
* `display`: OpenCV drawing of the hands and a dashboard.
* `script_utils`: the application loop and command line interface.

"""

from pinchwave.config import PinchwaveConfig, ConfigError
from pinchwave.smoothing import Hand, Handedness, Keypoint, LandmarkSmoother
from pinchwave.gestures import (
    check_pinch,
    GesturePolicy,
    Transition,
    PinchChannel,
    GestureBank,
)
from pinchwave.controls import ControlMapper, PerformanceState, make_performance, tick
