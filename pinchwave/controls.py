"""Mapping of (smoothed) hands and pinch gestures to musical controls.

One hand plays melody, the other plays rhythm:

* Melody hand: the thumb tip height gives the pitch (quantized to a pentatonic
  scale), its horizontal position gives the filter cutoff, and pinching the thumb
  with the index, middle or ring finger plays the lead, chip or bell voice for as
  long as the pinch is held.
* Rhythm hand: pinching the thumb with the index, middle or ring finger toggles the
  kick, snare or hats loop on or off.

Everything that has to persist from frame to frame lives in a `PerformanceState`,
which is passed to the per-frame functions.
"""

import logging
import math
from collections import namedtuple
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pinchwave.config import PinchwaveConfig, DFLT_CONFIG
from pinchwave.gestures import GestureBank, GesturePolicy, Transition
from pinchwave.smoothing import Hand, Handedness, LandmarkSmoother, is_valid_hand
from pinchwave.util import HandLandmark, clip, map_range

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------------------
# Scale and pitch
# -------------------------------------------------------------------------------

# Scales are given as semitones above the root (C)
MAJOR_PENTATONIC = (0, 2, 4, 7, 9)

NOTE_NAMES = ('C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B')
C5_MIDI, C7_MIDI = 72, 96


def midi_to_frequency(midi_note, *, a4: float = 440.0) -> float:
    """
    Frequency (in Hz, equal temperament) of a MIDI note number.

    >>> midi_to_frequency(69)
    440.0
    >>> round(midi_to_frequency(72), 2), round(midi_to_frequency(96), 2)
    (523.25, 2093.0)
    """
    return a4 * 2 ** ((midi_note - 69) / 12)


def midi_to_note_name(midi_note) -> str:
    """
    >>> midi_to_note_name(72), midi_to_note_name(61), midi_to_note_name(21)
    ('C5', 'C#4', 'A0')
    """
    octave, semitone = divmod(int(midi_note), 12)
    return f"{NOTE_NAMES[semitone]}{octave - 1}"


def scale_midi_notes(scale=MAJOR_PENTATONIC, *, low=C5_MIDI, high=C7_MIDI, root=0):
    """
    The MIDI notes of `scale` (semitones above `root`) from `low` to `high`, inclusive.

    >>> scale_midi_notes(MAJOR_PENTATONIC, low=60, high=72)
    [60, 62, 64, 67, 69, 72]
    """
    scale = {s % 12 for s in scale}
    return [m for m in range(low, high + 1) if (m - root) % 12 in scale]


# Major pentatonic (C, D, E, G, A) from C5 to C7
PENTATONIC_NOTES = tuple(scale_midi_notes(MAJOR_PENTATONIC))
PENTATONIC_SCALE = tuple(midi_to_note_name(m) for m in PENTATONIC_NOTES)


def thumb_to_frequency(y, frame_height, min_freq, max_freq):
    """
    Map a vertical position to a frequency: the bottom of the frame is `min_freq`,
    the top is `max_freq`. Not clamped.

    >>> thumb_to_frequency(480, 480, 100, 200)
    100.0
    >>> thumb_to_frequency(0, 480, 100, 200)
    200.0
    """
    return map_range(y, frame_height, 0, min_freq, max_freq)


def scale_index(freq, scale_length, min_freq, max_freq) -> int:
    """
    Index of the scale note `freq` falls into, once `[min_freq, max_freq]` is split
    evenly over the scale. Out of range frequencies are clamped to the end notes.

    >>> scale_index(100, 11, 100, 200)
    0
    >>> scale_index(200, 11, 100, 200)
    10
    >>> scale_index(1e6, 11, 100, 200), scale_index(-1e6, 11, 100, 200)
    (10, 0)
    """
    t = clip(map_range(freq, min_freq, max_freq, 0, 1), 0.0, 1.0)
    return int(math.floor(t * (scale_length - 1)))


def quantize_to_scale(freq, scale=PENTATONIC_SCALE, *, min_freq, max_freq):
    """
    Snap `freq` to a note of `scale`, returning `(index, note)`.

    >>> quantize_to_scale(523.25, min_freq=523.25, max_freq=2093.0)
    (0, 'C5')
    >>> quantize_to_scale(2093.0, min_freq=523.25, max_freq=2093.0)
    (10, 'C7')
    """
    idx = scale_index(freq, len(scale), min_freq, max_freq)
    return idx, scale[idx]


def thumb_to_filter_cutoff(x, frame_width, min_filter, max_filter):
    """
    Map a horizontal position to a filter cutoff, clamped to `[min_filter, max_filter]`.

    >>> thumb_to_filter_cutoff(320, 640, 100, 5000)
    2550.0
    >>> thumb_to_filter_cutoff(-50, 640, 100, 5000)
    100
    """
    cutoff = map_range(x, 0, frame_width, min_filter, max_filter)
    return clip(cutoff, min_filter, max_filter)


# -------------------------------------------------------------------------------
# Voices
# -------------------------------------------------------------------------------

VoiceSpec = namedtuple('VoiceSpec', ['name', 'finger', 'label'])

MELODY_VOICES = (
    VoiceSpec('lead', HandLandmark.INDEX_FINGER_TIP, 'Hyperpop Lead'),
    VoiceSpec('chip', HandLandmark.MIDDLE_FINGER_TIP, '8-bit Chip'),
    VoiceSpec('bell', HandLandmark.RING_FINGER_TIP, 'FM Bell'),
)
RHYTHM_VOICES = (
    VoiceSpec('kick', HandLandmark.INDEX_FINGER_TIP, 'GABBER KICK'),
    VoiceSpec('snare', HandLandmark.MIDDLE_FINGER_TIP, 'METALLIC SNARE'),
    VoiceSpec('hats', HandLandmark.RING_FINGER_TIP, 'TRAP HATS'),
)

# The melody voice whose filter follows the thumb's horizontal position
FILTERED_VOICE = 'lead'

NO_NOTE = '-'
NO_SYNTH_NAME = 'None'

# The video is shown mirrored, so the detector's "Left" hand is the user's right hand
DFLT_RHYTHM_HANDEDNESS = Handedness.LEFT


def _label_of(voices):
    return {v.name: v.label for v in voices}


# -------------------------------------------------------------------------------
# State
# -------------------------------------------------------------------------------


class PerformanceState:
    """
    Everything that persists across frames: the pinch channels of both hand roles,
    which rhythm loops are audible, and what's shown on the dashboard.

    Rhythm loops start muted.
    """

    def __init__(
        self,
        config: PinchwaveConfig = DFLT_CONFIG,
        *,
        melody_voices=MELODY_VOICES,
        rhythm_voices=RHYTHM_VOICES,
    ):
        self.melody_voices = tuple(melody_voices)
        self.rhythm_voices = tuple(rhythm_voices)
        self.melody = GestureBank(
            {v.name: v.finger for v in self.melody_voices},
            GesturePolicy.SUSTAIN,
            config.pinch_on,
            config.pinch_off,
        )
        self.rhythm_locks = GestureBank(
            {v.name: v.finger for v in self.rhythm_voices},
            GesturePolicy.TOGGLE_LOCK,
            config.pinch_on,
            config.pinch_off,
        )
        self.rhythm: Dict[str, bool] = {v.name: False for v in self.rhythm_voices}
        self.active_note = NO_NOTE
        self.active_synth_name = NO_SYNTH_NAME

    @property
    def melody_labels(self):
        return _label_of(self.melody_voices)

    @property
    def rhythm_labels(self):
        return _label_of(self.rhythm_voices)

    def display_fields(self):
        """The read-only view that rendering needs."""
        labels = self.rhythm_labels
        return {
            'note': self.active_note,
            'synth': self.active_synth_name,
            'rhythm': {labels[name]: on for name, on in self.rhythm.items()},
        }


# -------------------------------------------------------------------------------
# Audio backend
# -------------------------------------------------------------------------------


@runtime_checkable
class AudioBackend(Protocol):
    """
    What the control mapper needs from an audio engine. Calls are fire-and-forget:
    nothing is ever read back.
    """

    def attack(self, voice: str, freq: float) -> None: ...

    def release(self, voice: str) -> None: ...

    def set_pitch(self, voice: str, freq: float, glide_time: float) -> None: ...

    def set_filter_cutoff(self, voice: str, hz: float) -> None: ...

    def set_muted(self, voice: str, muted: bool) -> None: ...


# -------------------------------------------------------------------------------
# Mapping
# -------------------------------------------------------------------------------


class ControlMapper:
    """
    Turns hands and gesture transitions into calls to an audio backend.

    `scale` is the sequence of MIDI notes the thumb height is snapped to.
    """

    def __init__(
        self,
        audio: AudioBackend,
        config: PinchwaveConfig = DFLT_CONFIG,
        *,
        scale: Sequence[int] = PENTATONIC_NOTES,
        rhythm_handedness: Handedness = DFLT_RHYTHM_HANDEDNESS,
    ):
        self.audio = audio
        self.config = config
        self.scale = tuple(midi_to_note_name(m) for m in scale)
        self.scale_freqs = tuple(midi_to_frequency(m) for m in scale)
        self.rhythm_handedness = Handedness.from_label(rhythm_handedness)

    def is_rhythm_hand(self, hand: Hand) -> bool:
        return hand.handedness is self.rhythm_handedness

    def handle_hand(self, hand: Hand, state: PerformanceState):
        if self.is_rhythm_hand(hand):
            self.handle_rhythm_hand(hand, state)
        else:
            self.handle_melody_hand(hand, state)

    def pitch_of(self, hand: Hand):
        """The `(note, freq)` pointed at by the thumb tip of `hand`."""
        c = self.config
        thumb = hand.keypoints[HandLandmark.THUMB_TIP]
        raw_freq = thumb_to_frequency(thumb.y, c.video_height, c.min_freq, c.max_freq)
        idx = scale_index(raw_freq, len(self.scale), c.min_freq, c.max_freq)
        return self.scale[idx], self.scale_freqs[idx]

    def filter_cutoff_of(self, hand: Hand):
        c = self.config
        thumb = hand.keypoints[HandLandmark.THUMB_TIP]
        return thumb_to_filter_cutoff(thumb.x, c.video_width, c.min_filter, c.max_filter)

    def handle_melody_hand(self, hand: Hand, state: PerformanceState):
        note, freq = self.pitch_of(hand)
        state.active_note = note

        self.audio.set_filter_cutoff(FILTERED_VOICE, self.filter_cutoff_of(hand))

        labels = state.melody_labels
        any_active = False
        for name, (engaged, transition) in state.melody.evaluate(hand).items():
            if transition is Transition.ROSE:
                self.audio.attack(name, freq)
                state.active_synth_name = labels[name]
            elif engaged:
                self.audio.set_pitch(name, freq, self.config.glide_time)
            elif transition is Transition.FELL:
                self.audio.release(name)
            any_active = any_active or engaged

        if not any_active:
            state.active_synth_name = NO_SYNTH_NAME

    def handle_rhythm_hand(self, hand: Hand, state: PerformanceState):
        for name, (engaged, transition) in state.rhythm_locks.evaluate(hand).items():
            # Only the rising edge toggles: a held pinch keeps the lock, and the lock
            # is cleared by the channel itself when the pinch is released.
            if transition is Transition.ROSE:
                state.rhythm[name] = not state.rhythm[name]
                self.audio.set_muted(name, not state.rhythm[name])
                logger.info(
                    "%s %s", state.rhythm_labels[name], 'on' if state.rhythm[name] else 'off'
                )


def tick(
    raw_hands: Sequence[Hand],
    smoother: LandmarkSmoother,
    mapper: ControlMapper,
    state: PerformanceState,
) -> List[Hand]:
    """
    Run one frame: smooth the latest detection, then map every smoothed hand to
    controls. Returns the smoothed hands (for rendering).

    A malformed raw hand is a dropped frame for that hand: it doesn't touch the
    gesture state nor the audio.
    """
    smoothed = smoother.update(raw_hands)
    for raw, hand in zip(raw_hands, smoothed):
        if not (is_valid_hand(raw) and is_valid_hand(hand)):
            logger.debug("Dropping malformed hand: %d keypoints", len(raw.keypoints))
            continue
        mapper.handle_hand(hand, state)
    return smoothed


def make_performance(audio, config: Optional[PinchwaveConfig] = None, **mapper_kwargs):
    """Make the `(smoother, mapper, state)` triple that `tick` works with."""
    config = config or DFLT_CONFIG
    smoother = LandmarkSmoother(config.lerp_factor)
    mapper = ControlMapper(audio, config, **mapper_kwargs)
    state = PerformanceState(config)
    return smoother, mapper, state
