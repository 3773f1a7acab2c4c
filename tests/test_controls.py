"""Tests for the mapping of hands and gestures to musical controls."""

import math

import pytest

from pinchwave.config import PinchwaveConfig
from pinchwave.controls import (
    AudioBackend,
    ControlMapper,
    MAJOR_PENTATONIC,
    PerformanceState,
    PENTATONIC_NOTES,
    PENTATONIC_SCALE,
    NO_SYNTH_NAME,
    make_performance,
    midi_to_frequency,
    midi_to_note_name,
    scale_midi_notes,
    quantize_to_scale,
    scale_index,
    thumb_to_filter_cutoff,
    thumb_to_frequency,
    tick,
)
from pinchwave.smoothing import Hand, Handedness

from conftest import make_hand, THUMB, INDEX, MIDDLE, RING

MELODY, RHYTHM = 'Right', 'Left'  # detector labels (the video is mirrored)


# -------------------------------------------------------------------------------
# Pure mappings


class TestPitch:
    def test_midi_to_frequency(self):
        assert midi_to_frequency(69) == pytest.approx(440.0)
        assert midi_to_frequency(81) == pytest.approx(880.0)
        assert midi_to_frequency(61) == pytest.approx(277.18, abs=0.01)
        assert midi_to_frequency(58) == pytest.approx(233.08, abs=0.01)
        assert midi_to_frequency(69, a4=432) == pytest.approx(432.0)

    def test_pentatonic_from_c5_to_c7(self):
        assert PENTATONIC_SCALE == (
            'C5', 'D5', 'E5', 'G5', 'A5',
            'C6', 'D6', 'E6', 'G6', 'A6',
            'C7',
        )
        assert midi_to_frequency(PENTATONIC_NOTES[0]) == pytest.approx(523.25, abs=0.01)
        assert midi_to_frequency(PENTATONIC_NOTES[-1]) == pytest.approx(2093.0, abs=0.01)

    def test_scale_notes_with_another_root(self):
        a_minor = scale_midi_notes((0, 3, 5, 7, 10), low=57, high=69, root=9)
        assert [midi_to_note_name(m) for m in a_minor] == [
            'A3', 'C4', 'D4', 'E4', 'G4', 'A4'
        ]
        assert scale_midi_notes(MAJOR_PENTATONIC, low=72, high=71) == []

    def test_thumb_height_is_inverted(self):
        assert thumb_to_frequency(480, 480, 523.25, 2093.0) == pytest.approx(523.25)
        assert thumb_to_frequency(0, 480, 523.25, 2093.0) == pytest.approx(2093.0)
        assert thumb_to_frequency(240, 480, 100, 300) == pytest.approx(200)

    def test_quantization_boundaries(self):
        n = len(PENTATONIC_SCALE)
        assert scale_index(523.25, n, 523.25, 2093.0) == 0
        assert scale_index(2093.0, n, 523.25, 2093.0) == n - 1
        assert quantize_to_scale(2093.0, min_freq=523.25, max_freq=2093.0)[1] == 'C7'

    @pytest.mark.parametrize('freq', [-1000, 0, 100, 523.0, 2093.1, 5000, 1e9])
    def test_out_of_range_frequencies_clamp(self, freq):
        idx = scale_index(freq, len(PENTATONIC_SCALE), 523.25, 2093.0)
        assert 0 <= idx < len(PENTATONIC_SCALE)
        assert idx in (0, len(PENTATONIC_SCALE) - 1)

    def test_quantization_is_floor_of_normalized_position(self):
        # 11 notes: [0, 0.1) -> 0, [0.1, 0.2) -> 1, ... , 1.0 -> 10
        assert scale_index(0.099, 11, 0, 1) == 0
        assert scale_index(0.1, 11, 0, 1) == 1
        assert scale_index(0.55, 11, 0, 1) == 5
        assert scale_index(0.999, 11, 0, 1) == 9


class TestFilter:
    def test_maps_width_to_filter_range(self):
        assert thumb_to_filter_cutoff(0, 640, 100, 5000) == pytest.approx(100)
        assert thumb_to_filter_cutoff(640, 640, 100, 5000) == pytest.approx(5000)

    @pytest.mark.parametrize('x, expected', [(-10, 100), (1000, 5000)])
    def test_clamped(self, x, expected):
        assert thumb_to_filter_cutoff(x, 640, 100, 5000) == expected


# -------------------------------------------------------------------------------
# Melody hand


@pytest.fixture
def performance(audio, config):
    mapper = ControlMapper(audio, config)
    state = PerformanceState(config)
    return mapper, state


def test_sustain_scenario(performance, audio):
    mapper, state = performance
    engaged = []
    for frame, d in enumerate([50, 35, 25, 35, 45], start=1):
        audio.clear()
        mapper.handle_melody_hand(make_hand(MELODY, pinch={INDEX: d}), state)
        engaged.append(state.melody['lead'].engaged)
        if frame == 3:
            assert [c[0] for c in audio.calls_to('attack')] == ['lead']
        elif frame == 4:
            assert [c[0] for c in audio.calls_to('set_pitch')] == ['lead']
        elif frame == 5:
            assert audio.calls_to('release') == [('lead',)]
        if frame != 3:
            assert audio.calls_to('attack') == []
        if frame != 5:
            assert audio.calls_to('release') == []

    assert engaged == [False, False, True, True, False]


def test_attack_uses_quantized_pitch(performance, audio, config):
    mapper, state = performance
    # thumb at the very top of the frame: highest note
    mapper.handle_melody_hand(make_hand(MELODY, thumb=(100, 0), pinch={MIDDLE: 0}), state)
    assert audio.calls_to('attack') == [('chip', pytest.approx(midi_to_frequency(96)))]
    assert state.active_note == 'C7'
    assert state.active_synth_name == '8-bit Chip'


def test_held_note_glides(performance, audio, config):
    mapper, state = performance
    mapper.handle_melody_hand(make_hand(MELODY, thumb=(100, 480), pinch={RING: 0}), state)
    audio.clear()
    mapper.handle_melody_hand(make_hand(MELODY, thumb=(100, 240), pinch={RING: 0}), state)
    ((voice, freq, glide),) = audio.calls_to('set_pitch')
    assert voice == 'bell'
    assert glide == config.glide_time
    assert freq in mapper.scale_freqs
    assert state.active_synth_name == 'FM Bell'


def test_filter_cutoff_is_sent_every_frame(performance, audio):
    mapper, state = performance
    for x in (0, 320, 640):
        mapper.handle_melody_hand(make_hand(MELODY, thumb=(x, 240)), state)
    cutoffs = audio.calls_to('set_filter_cutoff')
    assert [voice for voice, _ in cutoffs] == ['lead'] * 3
    assert [hz for _, hz in cutoffs] == pytest.approx([100, 2550, 5000])


def test_synth_name_resets_when_no_finger_is_pinched(performance):
    mapper, state = performance
    mapper.handle_melody_hand(make_hand(MELODY, pinch={INDEX: 0}), state)
    assert state.active_synth_name == 'Hyperpop Lead'
    mapper.handle_melody_hand(make_hand(MELODY), state)
    assert state.active_synth_name == NO_SYNTH_NAME


def test_fingers_are_independent_channels(performance, audio):
    mapper, state = performance
    mapper.handle_melody_hand(make_hand(MELODY, pinch={INDEX: 0, MIDDLE: 0}), state)
    assert sorted(c[0] for c in audio.calls_to('attack')) == ['chip', 'lead']
    audio.clear()
    mapper.handle_melody_hand(make_hand(MELODY, pinch={INDEX: 0}), state)
    assert audio.calls_to('release') == [('chip',)]
    assert state.melody.engaged() == {'lead': True, 'chip': False, 'bell': False}


# -------------------------------------------------------------------------------
# Rhythm hand


def test_rhythm_toggle_scenario(performance, audio):
    mapper, state = performance
    assert state.rhythm['kick'] is False  # starts muted

    audible, locked = [], []
    for d in [25, 25, 45, 25]:
        mapper.handle_rhythm_hand(make_hand(RHYTHM, pinch={INDEX: d}), state)
        audible.append(state.rhythm['kick'])
        locked.append(state.rhythm_locks['kick'].engaged)

    assert audible == [True, True, True, False]
    assert locked == [True, True, False, True]
    assert audio.calls_to('set_muted') == [('kick', False), ('kick', True)]


@pytest.mark.parametrize('n_frames', [1, 2, 10, 100])
def test_sustained_pinch_toggles_once(performance, audio, n_frames):
    mapper, state = performance
    for _ in range(n_frames):
        mapper.handle_rhythm_hand(make_hand(RHYTHM, pinch={MIDDLE: 5}), state)
    assert audio.calls_to('set_muted') == [('snare', False)]
    assert state.rhythm == {'kick': False, 'snare': True, 'hats': False}


def test_release_keeps_the_audible_flag(performance, audio):
    mapper, state = performance
    mapper.handle_rhythm_hand(make_hand(RHYTHM, pinch={RING: 5}), state)
    mapper.handle_rhythm_hand(make_hand(RHYTHM), state)
    assert state.rhythm['hats'] is True
    assert not state.rhythm_locks['hats'].engaged
    assert len(audio.calls_to('set_muted')) == 1


def test_rhythm_hand_makes_no_melody_calls(performance, audio):
    mapper, state = performance
    mapper.handle_rhythm_hand(make_hand(RHYTHM, pinch={INDEX: 0}), state)
    assert {call[0] for call in audio.calls} == {'set_muted'}


# -------------------------------------------------------------------------------
# Routing and ticks


def test_hands_are_routed_by_handedness(performance, audio):
    mapper, state = performance
    mapper.handle_hand(make_hand(RHYTHM, pinch={INDEX: 0}), state)
    mapper.handle_hand(make_hand(MELODY, pinch={INDEX: 0}), state)
    assert state.rhythm['kick'] is True
    assert state.melody['lead'].engaged


def test_rhythm_handedness_can_be_swapped(audio, config):
    mapper = ControlMapper(audio, config, rhythm_handedness='Right')
    state = PerformanceState(config)
    mapper.handle_hand(make_hand('Right', pinch={INDEX: 0}), state)
    assert state.rhythm['kick'] is True


def test_tick_runs_the_whole_frame(audio):
    config = PinchwaveConfig(lerp_factor=1.0)
    smoother, mapper, state = make_performance(audio, config)
    raw = [make_hand(MELODY, pinch={INDEX: 0}), make_hand(RHYTHM, pinch={RING: 0})]
    smoothed = tick(raw, smoother, mapper, state)
    assert smoothed == raw
    assert state.melody['lead'].engaged
    assert state.rhythm['hats'] is True


def test_tick_reuses_the_previous_detection(audio):
    smoother, mapper, state = make_performance(audio, PinchwaveConfig(lerp_factor=0.5))
    raw = [make_hand(MELODY, thumb=(0, 240))]
    tick(raw, smoother, mapper, state)
    first = smoother.smoothed[0].keypoints[4].x
    # a new detection moves the thumb, then no new detection comes in
    raw = [make_hand(MELODY, thumb=(100, 240))]
    xs = [tick(raw, smoother, mapper, state)[0].keypoints[4].x for _ in range(3)]
    assert first == 0
    assert xs == pytest.approx([50, 75, 87.5])


def test_malformed_hand_is_a_dropped_frame(audio, config):
    smoother, mapper, state = make_performance(audio, config)
    tick([make_hand(RHYTHM, pinch={INDEX: 0})], smoother, mapper, state)
    audio.clear()

    broken = Hand(Handedness.LEFT, make_hand(RHYTHM).keypoints[:12])
    tick([broken], smoother, mapper, state)

    assert audio.calls == []
    assert state.rhythm_locks['kick'].engaged  # previous state kept
    assert state.rhythm['kick'] is True


def test_gestures_recover_after_a_non_finite_detection(audio, config):
    smoother, mapper, state = make_performance(audio, config)
    tick([make_hand(RHYTHM)], smoother, mapper, state)

    glitch = make_hand(RHYTHM)
    glitch.keypoints[THUMB].x = float('nan')
    tick([glitch], smoother, mapper, state)
    assert audio.calls == []

    for _ in range(30):
        smoothed = tick([make_hand(RHYTHM, pinch={INDEX: 0})], smoother, mapper, state)

    assert math.isfinite(smoothed[0].keypoints[THUMB].x)
    assert state.rhythm['kick'] is True
    assert audio.calls_to('set_muted') == [('kick', False)]


def test_no_hands_keeps_state(audio, config):
    smoother, mapper, state = make_performance(audio, config)
    tick([make_hand(MELODY, pinch={INDEX: 0})], smoother, mapper, state)
    audio.clear()
    assert tick([], smoother, mapper, state) == []
    assert audio.calls == []
    assert state.melody['lead'].engaged


def test_display_fields(config):
    state = PerformanceState(config)
    assert state.display_fields() == {
        'note': '-',
        'synth': 'None',
        'rhythm': {'GABBER KICK': False, 'METALLIC SNARE': False, 'TRAP HATS': False},
    }


def test_recording_audio_is_an_audio_backend(audio):
    assert isinstance(audio, AudioBackend)
    assert not isinstance(object(), AudioBackend)


def test_custom_scale(audio, config):
    mapper = ControlMapper(audio, config, scale=[60, 64, 67])
    state = PerformanceState(config)
    mapper.handle_melody_hand(make_hand(MELODY, thumb=(100, 0), pinch={INDEX: 0}), state)
    assert state.active_note == 'G4'
    assert audio.calls_to('attack') == [('lead', pytest.approx(midi_to_frequency(67)))]
