#!/usr/bin/env python3
"""
Tone Burst Sequence

Steps through the burst frequencies of a measurement run and implements the
two algorithms shared by the generator and the analyzer: raised-cosine burst
synthesis and single-frequency correlation (matched filter) of a recording.
"""

import cmath
import logging
import math
from collections import namedtuple

import numpy as np

from toneburst.errors import ConfigurationError

SAMPLE_RATE = 44100     # samples per second
INTERVAL = 22050        # sample pairs per burst slot
BURST_LENGTH = 100      # minimum burst length, in samples (2.27 ms)
AMPLITUDE = 12000.0     # nominal +0 dB signal level

SWEEP = "sweep"
POLAR = "polar"

SWEEP_STEPS = 201       # 100 bursts per decade
SWEEP_START = 100.0
SWEEP_STOP = 10000.0
POLAR_STEPS = 72        # one burst per 5 degrees of turntable rotation
POLAR_FREQ = 1000.0

DETAIL_COLUMNS = ("numCyc", "duration", "nomFreq", "actFreq")
RESULT_COLUMNS = ("abs 1", "abs 2", "dB 1", "dB 2", "dB diff",
                  "phase 1", "phase 2", "phase diff", "bkg 1", "bkg 2")


def format_value(value):
    """Format a number the way a default C++ output stream would (6 significant digits)."""
    if isinstance(value, (int, np.integer)):
        return str(value)
    return f"{value:g}"


class BurstResult(namedtuple("BurstResult", [
        "magnitude1", "magnitude2", "db1", "db2", "db_diff",
        "phase1", "phase2", "phase_diff", "background_db1", "background_db2"])):
    """
    Correlator output for one burst, normalized so that a full scale burst
    reads as magnitude 1.0 (0 dB). Phases are in radians, referred to the
    start of the burst.
    """

    __slots__ = ()

    @classmethod
    def from_sums(cls, response1, response2, background1, background2):
        magnitude1 = abs(response1)
        magnitude2 = abs(response2)

        # silent windows correlate to exactly zero, which reports as -inf dB
        with np.errstate(divide="ignore"):
            levels = 20.0 * np.log10([magnitude1, magnitude2, abs(background1), abs(background2)])
        db1, db2, background_db1, background_db2 = (float(level) for level in levels)

        phase1 = cmath.phase(response1)
        phase2 = cmath.phase(response2)

        return cls(
            magnitude1=magnitude1,
            magnitude2=magnitude2,
            db1=db1,
            db2=db2,
            db_diff=db1 - db2,
            phase1=phase1,
            phase2=phase2,
            phase_diff=phase1 - phase2,
            background_db1=background_db1,
            background_db2=background_db2,
        )

    def as_row(self):
        """Values in report column order, see RESULT_COLUMNS."""
        return tuple(self)


class BurstSequence:
    """
    Tone burst sequence for free-field frequency response measurement.

    Each burst occupies ``interval`` sample pairs: a burst of ``duration``
    samples holding a whole number of cycles, followed by silence. Bursts are
    stepped geometrically from ``start_freq`` to 10 kHz (sweep mode) or
    repeated at one frequency while a turntable is rotated (polar mode).

    Usage follows a reset/good/next cycle:

        burst.reset()
        while burst.good():
            ...  # write() or read() the current burst
            burst.next()
    """

    def __init__(self, sample_rate=SAMPLE_RATE, interval=INTERVAL,
                 burst_min=BURST_LENGTH, amplitude=AMPLITUDE):
        if sample_rate <= 0:
            raise ConfigurationError(f"Sample rate must be positive, got {sample_rate}")
        if interval < 1:
            raise ConfigurationError(f"Burst interval must be at least one sample, got {interval}")
        if burst_min < 1:
            raise ConfigurationError(f"Minimum burst length must be at least one sample, got {burst_min}")

        self.sample_rate = sample_rate
        self.interval = interval
        self.burst_min = burst_min
        self.amplitude = amplitude

        self.mode = SWEEP
        self.num_burst = SWEEP_STEPS
        self.burst_count = 0
        self.num_cycle = 1
        self.duration = 0
        self.nominal_freq = SWEEP_START
        self.actual_freq = 0.0
        self.start_freq = SWEEP_START
        self.stop_freq = SWEEP_STOP
        self.freq_incr = 1.0
        self.factor = 0.0

        self.delay = interval   # wait one full interval before the first burst
        self.num_avg = 1

        self._initialized = False
        self._started = False

        # the interval fit is checked once a start frequency is chosen, in reset()
        self.calc(fit=False)

    @property
    def sweep(self):
        return self.mode == SWEEP

    @property
    def frames_per_burst(self):
        """Sample pairs consumed or produced per burst, averaging included."""
        return self.interval * self.num_avg

    def init(self, mode):
        """Choose sweep or polar mode and its defaults. Call at most once, before reset()."""
        if mode not in (SWEEP, POLAR):
            raise ValueError(f"Unknown burst mode: {mode!r}")
        if self._initialized or self._started:
            raise RuntimeError("init() may only be called once, before reset()")
        self._initialized = True

        self.mode = mode
        if mode == SWEEP:
            self.num_burst = SWEEP_STEPS
            self.start_freq = SWEEP_START
            self.stop_freq = SWEEP_STOP
        else:
            self.num_burst = POLAR_STEPS
            self.start_freq = POLAR_FREQ
            self.stop_freq = self.start_freq
            self.interval = 2 * self.interval   # allow time to set the turntable

    def reset(self):
        """Rewind to the first burst. Must be called before stepping."""
        if not (math.isfinite(self.start_freq) and self.start_freq > 0):
            raise ConfigurationError(f"Start frequency must be positive, got {self.start_freq}")

        self._started = True
        self.num_cycle = 1
        self.burst_count = self.num_burst
        self.calc(self.start_freq)

        if self.sweep:
            self.num_burst = SWEEP_STEPS
            self.stop_freq = SWEEP_STOP
            self.freq_incr = math.pow(self.stop_freq / self.start_freq, 1.0 / (self.num_burst - 1))
        else:
            self.num_burst = POLAR_STEPS
            self.stop_freq = self.start_freq
            self.freq_incr = 1.0

    def next(self):
        """Advance to the next burst; returns False once the sequence is exhausted."""
        if self.burst_count > 0:
            if self.sweep:
                self.calc(self.nominal_freq * self.freq_incr)
            self.burst_count -= 1
            return True
        return False

    def good(self):
        return self.burst_count > 0

    def bursts(self):
        """Reset, then yield the 0-based index of each burst while stepping through the sequence."""
        self.reset()
        index = 0
        while self.good():
            yield index
            index += 1
            self.next()

    def calc(self, nominal_freq=None, fit=True):
        """
        Quantize a nominal frequency (the current one by default) to a whole
        number of cycles in whole samples.

        With ``fit``, the burst must also leave room for a background window
        of the same length in its interval. Nothing is updated unless the
        burst is valid.
        """
        if nominal_freq is None:
            nominal_freq = self.nominal_freq
        if not (math.isfinite(nominal_freq) and nominal_freq > 0):
            raise ConfigurationError(f"Burst frequency must be positive, got {nominal_freq}")

        period = self.sample_rate / nominal_freq
        if not math.isfinite(period):
            raise ConfigurationError(f"Burst frequency {nominal_freq:g} Hz is too low to quantize")

        # least number of full cycles whose duration reaches the burst minimum
        num_cycle = self.num_cycle
        while period * num_cycle < self.burst_min:
            num_cycle += 1

        # truncate to whole samples, then find the frequency that exactly fills them
        duration = int(period * num_cycle)
        if fit and 2 * duration > self.interval:
            raise ConfigurationError(
                f"Burst of {duration} samples at {nominal_freq:g} Hz leaves no room "
                f"for a background window in a {self.interval} sample interval")

        self.nominal_freq = nominal_freq
        self.num_cycle = num_cycle
        self.duration = duration
        self.actual_freq = self.sample_rate * num_cycle / duration
        self.factor = 2.0 * math.pi * self.actual_freq / self.sample_rate

    def validate(self):
        """
        Check the run parameters by stepping through the whole sequence once.

        Raises ConfigurationError before any file is touched if averaging or
        delay are out of range, or if any burst is above Nyquist or too long
        for its interval. Leaves the sequence reset to its first burst.
        """
        if self.num_avg < 1:
            raise ConfigurationError(f"Averaging count must be at least 1, got {self.num_avg}")
        if self.delay < 0:
            raise ConfigurationError(f"Delay must not be negative, got {self.delay}")
        if not (math.isfinite(self.start_freq) and self.start_freq > 0):
            raise ConfigurationError(f"Start frequency must be positive, got {self.start_freq}")

        nyquist = self.sample_rate / 2.0
        for _ in self.bursts():
            if self.actual_freq >= nyquist:
                raise ConfigurationError(
                    f"Burst frequency {self.actual_freq:g} Hz is not below Nyquist ({nyquist:g} Hz)")
        self.reset()
        logging.debug(f"Validated {self.num_burst} bursts in {self.mode} mode from {self.start_freq:g} Hz")

    def get_size(self):
        """Byte count of the sample data: 2 bytes x 2 channels x (bursts + delay)."""
        return 2 * 2 * (self.interval * self.num_avg * self.num_burst + self.delay)

    def synthesize(self):
        """
        Synthesize the current burst as int16 frames of shape (frames_per_burst, 2).

        The burst is a raised cosine with an inverted second harmonic, truncated
        to whole samples and written identically to both channels, followed by
        silence to the end of the interval. The interval repeats num_avg times.
        """
        j = np.arange(self.duration)
        shaped = np.zeros(self.interval)
        shaped[:self.duration] = np.cos(self.factor * j) - np.cos(2.0 * self.factor * j)

        # astype truncates toward zero, as a C cast to short does
        samples = (shaped * self.amplitude).astype(np.int16)
        frames = np.repeat(samples[:, np.newaxis], 2, axis=1)
        return np.tile(frames, (self.num_avg, 1))

    def write(self, sink):
        """Pass the current burst's frames to ``sink``."""
        sink(self.synthesize())

    def correlate(self, frames):
        """
        Matched filter analysis of one burst slot.

        This is a single frequency discrete Fourier transform at actual_freq.
        The response window is the first ``duration`` samples of each
        interval; the background window has the same length and ends one
        burst duration before the end of the interval.
        """
        frames = np.asarray(frames, dtype=np.float64)
        if frames.shape != (self.frames_per_burst, 2):
            raise ValueError(
                f"Expected {self.frames_per_burst} sample pairs, got array of shape {frames.shape}")

        # correlation is linear, so sum the averaged intervals first
        stacked = frames.reshape(self.num_avg, self.interval, 2).sum(axis=0)
        kernel = np.exp(1j * self.factor * np.arange(self.interval))

        response = slice(0, self.duration)
        background = slice(self.interval - 2 * self.duration, self.interval - self.duration)

        # factor out sample count and averaging, normalize to +0 dB
        scale = self.duration * self.num_avg * self.amplitude / 2.0
        sum1 = complex(np.dot(stacked[response, 0], kernel[response])) / scale
        sum2 = complex(np.dot(stacked[response, 1], kernel[response])) / scale
        sum3 = complex(np.dot(stacked[background, 0], kernel[background])) / scale
        sum4 = complex(np.dot(stacked[background, 1], kernel[background])) / scale

        return BurstResult.from_sums(sum1, sum2, sum3, sum4)

    def read(self, source):
        """Correlate the frames returned by ``source(count)`` for the current burst."""
        return self.correlate(source(self.frames_per_burst))

    def detail(self):
        """Tab separated cycle count, duration, nominal and actual frequency."""
        return "\t".join(format_value(value) for value in
                         (self.num_cycle, self.duration, self.nominal_freq, self.actual_freq))

    def setup_lines(self):
        return [
            f"      mode:\t{'freq sweep' if self.sweep else 'polar plot'}",
            f"start freq:\t{format_value(self.start_freq)}",
            f"  end freq:\t{format_value(self.stop_freq)}",
            f" num steps:\t{self.num_burst}",
            f" averaging:\t{self.num_avg}",
            f"     delay:\t{self.delay}",
            f"  interval:\t{self.interval}",
        ]
