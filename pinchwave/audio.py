"""Audio and synthesizer functions for pinchwave.

The gesture core only ever calls the five primitives of
`pinchwave.controls.AudioBackend`:

* `attack(voice, freq)`, `release(voice)`, `set_pitch(voice, freq, glide_time)` and
  `set_filter_cutoff(voice, hz)` for the melody voices,
* `set_muted(voice, muted)` for the rhythm loops.

`AudioEngine` implements them with small numpy synthesizers, rendered block by block
and streamed to the sound card with `sounddevice`. `NullAudio` implements them by
doing nothing.
"""

import logging
import threading
from functools import partial
from typing import Callable, Dict, Iterable, Optional

import numpy as np
from scipy import signal

from pinchwave.config import DFLT_BPM
from pinchwave.util import return_none

logger = logging.getLogger(__name__)

DFLT_SAMPLE_RATE = 48000
DFLT_BLOCK_SIZE = 256
BEATS_PER_BAR = 4
TWO_PI = 2 * np.pi


class NullAudio:
    """A `pinchwave.controls.AudioBackend` that ignores everything it's told."""

    attack = staticmethod(return_none)
    release = staticmethod(return_none)
    set_pitch = staticmethod(return_none)
    set_filter_cutoff = staticmethod(return_none)
    set_muted = staticmethod(return_none)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


# -------------------------------------------------------------------------------
# Oscillators and effects
# -------------------------------------------------------------------------------
# Oscillators take a phase array (in cycles) and return samples in [-1, 1].


def sine_wave(phase):
    return np.sin(TWO_PI * phase)


def square_wave(phase):
    return np.where((phase % 1.0) < 0.5, 1.0, -1.0)


def sawtooth_wave(phase):
    return 2.0 * (phase % 1.0) - 1.0


def fm_wave(phase, *, harmonicity=3.5, mod_index=3.0):
    """Two-operator frequency modulation: a sine carrier modulated by a sine."""
    modulator = np.sin(TWO_PI * harmonicity * phase)
    return np.sin(TWO_PI * phase + mod_index * modulator)


def distort(x, drive=0.8):
    """Soft clipping waveshaper. `drive` goes from 0 (clean) to 1 (fried)."""
    k = 1 + 20 * drive
    return np.tanh(k * x) / np.tanh(k)


def bit_crush(x, bits=4):
    """Reduce the amplitude resolution of `x` to `bits` bits."""
    levels = 2 ** (bits - 1)
    return np.round(x * levels) / levels


def chebyshev(x, order=50):
    """Chebyshev polynomial waveshaper (adds the `order`-th harmonic)."""
    return np.cos(order * np.arccos(np.clip(x, -1.0, 1.0)))


# -------------------------------------------------------------------------------
# Envelope
# -------------------------------------------------------------------------------


class Envelope:
    """
    A linear ADSR envelope, rendered in blocks.

    Parameters:
    - attack (float): Attack time in seconds.
    - decay (float): Decay time in seconds.
    - sustain (float): Sustain level (0 to 1).
    - release (float): Release time in seconds.
    """

    def __init__(self, attack=0.01, decay=0.1, sustain=0.5, release=0.1, *, sr):
        self.attack = attack
        self.decay = decay
        self.sustain = sustain
        self.release = release
        self.sr = sr
        self.level = 0.0
        self.stage = 'idle'
        self._release_from = 0.0

    @property
    def is_active(self):
        return self.stage != 'idle'

    def trigger_attack(self):
        self.stage = 'attack'

    def trigger_release(self):
        if self.is_active:
            self._release_from = self.level
            self.stage = 'release'

    def _n_samples(self, seconds):
        return max(seconds * self.sr, 1.0)

    def render(self, frames):
        out = np.zeros(frames)
        i = 0
        while i < frames:
            remaining = frames - i
            if self.stage == 'attack':
                step = 1.0 / self._n_samples(self.attack)
                n = min(remaining, max(int(np.ceil((1.0 - self.level) / step)), 1))
                seg = np.minimum(self.level + step * np.arange(1, n + 1), 1.0)
                if seg[-1] >= 1.0:
                    self.stage = 'decay'
            elif self.stage == 'decay':
                step = (1.0 - self.sustain) / self._n_samples(self.decay)
                if step <= 0 or self.level <= self.sustain:
                    self.level = self.sustain
                    self.stage = 'sustain'
                    continue
                n = min(remaining, int(np.ceil((self.level - self.sustain) / step)))
                seg = np.maximum(self.level - step * np.arange(1, n + 1), self.sustain)
                if seg[-1] <= self.sustain:
                    self.stage = 'sustain'
            elif self.stage == 'release':
                step = self._release_from / self._n_samples(self.release)
                if step <= 0 or self.level <= 0:
                    self.level = 0.0
                    self.stage = 'idle'
                    continue
                n = min(remaining, int(np.ceil(self.level / step)))
                seg = np.maximum(self.level - step * np.arange(1, n + 1), 0.0)
                if seg[-1] <= 0:
                    self.stage = 'idle'
            else:
                # sustain holds its level, idle is silent
                level = self.sustain if self.stage == 'sustain' else 0.0
                seg = np.full(remaining, level)
                n = remaining
            out[i : i + n] = seg
            self.level = float(seg[-1])
            i += n
        return out


# -------------------------------------------------------------------------------
# Melody voices
# -------------------------------------------------------------------------------


class MelodyVoice:
    """
    A monophonic voice: an oscillator, an optional low-pass filter, some effects,
    and an envelope. Supports portamento (gliding from a pitch to the next).
    """

    def __init__(
        self,
        name: str,
        oscillator: Callable = sine_wave,
        *,
        envelope: Optional[Envelope] = None,
        cutoff: Optional[float] = None,
        effects: Iterable[Callable] = (),
        gain: float = 0.3,
        sr: int = DFLT_SAMPLE_RATE,
    ):
        self.name = name
        self.oscillator = oscillator
        self.envelope = envelope or Envelope(sr=sr)
        self.effects = tuple(effects)
        self.gain = gain
        self.sr = sr
        self.freq = 440.0
        self.phase = 0.0
        self._target_freq = self.freq
        self._glide_remaining = 0.0
        self.cutoff = cutoff
        self._sos = None
        self._zi = None

    @property
    def is_sounding(self):
        return self.envelope.is_active

    def attack(self, freq):
        self.freq = self._target_freq = float(freq)
        self._glide_remaining = 0.0
        self.envelope.trigger_attack()

    def release(self):
        self.envelope.trigger_release()

    def set_pitch(self, freq, glide_time=0.0):
        self._target_freq = float(freq)
        self._glide_remaining = max(float(glide_time), 0.0)

    def set_filter_cutoff(self, hz):
        if self.cutoff is None:
            logger.debug("%s has no filter: ignoring cutoff %.1f", self.name, hz)
            return
        self.cutoff = float(hz)
        self._sos = None

    def _glide(self, frames):
        start = self.freq
        block_dur = frames / self.sr
        if self._glide_remaining > block_dur:
            end = start + (self._target_freq - start) * block_dur / self._glide_remaining
            self._glide_remaining -= block_dur
        else:
            end = self._target_freq
            self._glide_remaining = 0.0
        self.freq = end
        return np.linspace(start, end, frames + 1)[1:]

    def _filter(self, x):
        if self.cutoff is None:
            return x
        if self._sos is None:
            cutoff = min(self.cutoff, 0.45 * self.sr)
            self._sos = signal.butter(2, cutoff, btype='low', fs=self.sr, output='sos')
            if self._zi is None:
                self._zi = np.zeros((self._sos.shape[0], 2))
        y, self._zi = signal.sosfilt(self._sos, x, zi=self._zi)
        return y

    def render(self, frames):
        if not self.is_sounding:
            return np.zeros(frames)
        freqs = self._glide(frames)
        phase = self.phase + np.cumsum(freqs) / self.sr
        self.phase = float(phase[-1] % 1.0)

        x = self._filter(self.oscillator(phase))
        for effect in self.effects:
            x = effect(x)
        return x * self.envelope.render(frames) * self.gain


def hyperpop_lead(sr=DFLT_SAMPLE_RATE):
    """Sawtooth through a low-pass, a Chebyshev shaper, distortion and a 4-bit crusher."""
    return MelodyVoice(
        'lead',
        sawtooth_wave,
        envelope=Envelope(attack=0.01, decay=0.1, sustain=0.5, release=0.1, sr=sr),
        cutoff=200.0,
        effects=(
            partial(chebyshev, order=50),
            partial(distort, drive=0.8),
            partial(bit_crush, bits=4),
        ),
        gain=0.2,
        sr=sr,
    )


def chip_synth(sr=DFLT_SAMPLE_RATE):
    """Plain square wave with a short, plucky envelope."""
    return MelodyVoice(
        'chip',
        square_wave,
        envelope=Envelope(attack=0.01, decay=0.1, sustain=0.1, release=0.1, sr=sr),
        gain=0.2,
        sr=sr,
    )


def fm_bell(sr=DFLT_SAMPLE_RATE):
    """Frequency modulation bell."""
    return MelodyVoice(
        'bell',
        fm_wave,
        envelope=Envelope(attack=0.01, decay=0.01, sustain=1.0, release=0.5, sr=sr),
        gain=0.25,
        sr=sr,
    )


# -------------------------------------------------------------------------------
# Drum voices
# -------------------------------------------------------------------------------
# Drum hits are rendered once, as one-shot sample arrays.


def _times(duration, sr):
    return np.arange(int(duration * sr)) / sr


def gabber_kick(sr=DFLT_SAMPLE_RATE, *, base_freq=32.7, octaves=10, pitch_decay=0.05):
    """Distorted kick: a sine sweeping down `octaves` octaves onto `base_freq`."""
    t = _times(0.4, sr)
    freq = base_freq * 2 ** (octaves * np.exp(-t / pitch_decay))
    freq = np.minimum(freq, sr / 4)
    x = np.sin(TWO_PI * np.cumsum(freq) / sr) * np.exp(-t / 0.1)
    return distort(x, drive=0.8) * 0.56


def metallic_snare(sr=DFLT_SAMPLE_RATE, *, freq=200.0, harmonicity=5.1):
    """Cluster of inharmonic square waves, high-passed, with a fast decay."""
    t = _times(0.15, sr)
    ratios = (1.0, 1.483, 1.932, 2.546, 2.63, 3.897)
    x = sum(square_wave(freq * harmonicity * r * t) for r in ratios) / len(ratios)
    sos = signal.butter(2, min(4000.0, 0.45 * sr), btype='high', fs=sr, output='sos')
    x = signal.sosfilt(sos, x)
    return x * np.exp(-t / 0.03) * 0.32


def trap_hat(sr=DFLT_SAMPLE_RATE, *, seed=0):
    """Short burst of white noise."""
    t = _times(0.05, sr)
    noise = np.random.default_rng(seed).uniform(-1.0, 1.0, len(t))
    return noise * np.clip(1 - t / 0.05, 0, 1) * 0.25


# Step positions, in beats, within a one bar loop
KICK_STEPS = (0, 0.75, 1, 2, 2.75, 3)
SNARE_STEPS = (1.25, 3)
HAT_STEPS = tuple(i / 4 for i in range(16)) + (1 + 0.33 / 4, 1 + 0.66 / 4)


class DrumVoice:
    """A one-shot sample looped on a one bar step pattern. Starts muted."""

    def __init__(self, name, hit, steps, *, muted=True, loop_beats=BEATS_PER_BAR):
        self.name = name
        self.hit = np.asarray(hit, dtype=float)
        self.steps = tuple(sorted(steps))
        self.muted = muted
        self.loop_beats = loop_beats
        self._playing = []  # read positions in `hit` at the start of the next block

    def set_muted(self, muted):
        self.muted = bool(muted)

    def trigger_offsets(self, block_start, frames, samples_per_beat):
        """Offsets, within the block, of the steps that fall in it."""
        loop_len = self.loop_beats * samples_per_beat
        block_end = block_start + frames
        offsets = []
        for step in self.steps:
            pos = step * samples_per_beat
            n = np.ceil((block_start - pos) / loop_len)
            t = pos + n * loop_len
            while t < block_end:
                offsets.append(int(t - block_start))
                t += loop_len
        return sorted(offsets)

    def render_into(self, out, block_start, samples_per_beat):
        frames = len(out)
        if not self.muted:
            self._playing.extend(
                -offset
                for offset in self.trigger_offsets(block_start, frames, samples_per_beat)
            )
        n_hit = len(self.hit)
        still_playing = []
        for pos in self._playing:
            src_start = max(pos, 0)
            src_stop = min(pos + frames, n_hit)
            if src_stop > src_start:
                dst_start = src_start - pos
                out[dst_start : dst_start + src_stop - src_start] += self.hit[
                    src_start:src_stop
                ]
            if pos + frames < n_hit:
                still_playing.append(pos + frames)
        self._playing = still_playing
        return out


def make_melody_voices(sr=DFLT_SAMPLE_RATE) -> Dict[str, MelodyVoice]:
    return {name: factory(sr) for name, factory in synth_funcs.items()}


def make_drum_voices(sr=DFLT_SAMPLE_RATE) -> Dict[str, DrumVoice]:
    return {
        name: DrumVoice(name, hit_func(sr), drum_steps[name])
        for name, hit_func in drum_funcs.items()
    }


# -------------------------------------------------------------------------------
# Engine
# -------------------------------------------------------------------------------


class AudioEngine:
    """
    Mixes the melody voices and the rhythm loops. Implements
    `pinchwave.controls.AudioBackend`.

    Control calls come from the frame loop, rendering happens in the audio stream's
    thread: the two meet under a lock.

    >>> engine = AudioEngine()
    >>> engine.attack('lead', 440.0)
    >>> block = engine.render(256)
    >>> block.shape, block.dtype
    ((256,), dtype('float32'))
    """

    def __init__(
        self,
        *,
        sr: int = DFLT_SAMPLE_RATE,
        block_size: int = DFLT_BLOCK_SIZE,
        bpm: float = DFLT_BPM,
        melody_voices: Optional[Dict[str, MelodyVoice]] = None,
        drum_voices: Optional[Dict[str, DrumVoice]] = None,
        master_gain: float = 0.8,
    ):
        self.sr = sr
        self.block_size = block_size
        self.bpm = bpm
        self.melody = melody_voices if melody_voices is not None else make_melody_voices(sr)
        self.drums = drum_voices if drum_voices is not None else make_drum_voices(sr)
        self.master_gain = master_gain
        self._clock = 0  # samples rendered so far
        self._lock = threading.Lock()
        self._stream = None

    @property
    def samples_per_beat(self):
        return self.sr * 60.0 / self.bpm

    # Control primitives ---------------------------------------------------------

    def attack(self, voice, freq):
        with self._lock:
            self.melody[voice].attack(freq)

    def release(self, voice):
        with self._lock:
            self.melody[voice].release()

    def set_pitch(self, voice, freq, glide_time=0.0):
        with self._lock:
            self.melody[voice].set_pitch(freq, glide_time)

    def set_filter_cutoff(self, voice, hz):
        with self._lock:
            self.melody[voice].set_filter_cutoff(hz)

    def set_muted(self, voice, muted):
        with self._lock:
            self.drums[voice].set_muted(muted)

    # Rendering ------------------------------------------------------------------

    def render(self, frames):
        out = np.zeros(frames)
        with self._lock:
            for voice in self.melody.values():
                out += voice.render(frames)
            for drum in self.drums.values():
                drum.render_into(out, self._clock, self.samples_per_beat)
            self._clock += frames
        return np.clip(out * self.master_gain, -1.0, 1.0).astype(np.float32)

    def _callback(self, outdata, frames, time_info, status):
        if status:
            logger.debug("Audio stream status: %s", status)
        outdata[:] = self.render(frames).reshape(-1, 1)

    def start(self):
        # Imported here so that the rest of the package works without PortAudio
        import sounddevice as sd

        self._stream = sd.OutputStream(
            samplerate=self.sr,
            blocksize=self.block_size,
            channels=1,
            dtype='float32',
            callback=self._callback,
        )
        self._stream.start()
        logger.info("Audio started: %d Hz, %d frames per block", self.sr, self.block_size)
        return self

    def stop(self):
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            logger.info("Audio stopped")

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc_info):
        self.stop()
        return False


# -------------------------------------------------------------------------------
# Module exports
# -------------------------------------------------------------------------------

# Melody voice factories, keyed by voice name
synth_funcs = {
    'lead': hyperpop_lead,
    'chip': chip_synth,
    'bell': fm_bell,
}

# Drum hit functions and step patterns, keyed by voice name
drum_funcs = {
    'kick': gabber_kick,
    'snare': metallic_snare,
    'hats': trap_hat,
}
drum_steps = {
    'kick': KICK_STEPS,
    'snare': SNARE_STEPS,
    'hats': HAT_STEPS,
}
