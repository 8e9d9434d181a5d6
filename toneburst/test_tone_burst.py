#!/usr/bin/env python3
"""Tests for burst stepping, quantization, synthesis and correlation"""

import math
import unittest

import numpy as np

from toneburst.errors import ConfigurationError
from toneburst.tone_burst import (
    AMPLITUDE, POLAR, SWEEP, BurstResult, BurstSequence, format_value,
)


def sweep_frequencies(burst):
    """Nominal frequencies of every burst in the sequence"""
    return [burst.nominal_freq for _ in burst.bursts()]


class TestQuantization(unittest.TestCase):
    def test_100hz_burst_is_one_exact_cycle(self):
        """100Hz at 44.1kHz fits exactly one cycle in 441 samples"""
        burst = BurstSequence()
        burst.reset()

        self.assertEqual(burst.num_cycle, 1)
        self.assertEqual(burst.duration, 441)
        self.assertEqual(burst.actual_freq, 100.0)

    def test_every_burst_fills_whole_cycles(self):
        """Every sweep burst holds the fewest whole cycles reaching the minimum length"""
        burst = BurstSequence()
        for _ in burst.bursts():
            period = burst.sample_rate / burst.nominal_freq
            self.assertGreaterEqual(burst.num_cycle, 1)
            self.assertGreaterEqual(burst.duration, burst.burst_min)
            self.assertLessEqual(2 * burst.duration, burst.interval)
            self.assertEqual(burst.duration, math.floor(period * burst.num_cycle))
            if burst.num_cycle > 1:
                self.assertLess(period * (burst.num_cycle - 1), burst.burst_min)

            cycles = burst.actual_freq * burst.duration / burst.sample_rate
            self.assertAlmostEqual(cycles, round(cycles), places=9)
            self.assertEqual(round(cycles), burst.num_cycle)

    def test_high_frequency_needs_several_cycles(self):
        """10kHz bursts need 23 cycles to reach 100 samples"""
        burst = BurstSequence()
        burst.start_freq = 10000.0
        burst.reset()

        self.assertEqual(burst.num_cycle, 23)
        self.assertEqual(burst.duration, 101)
        self.assertAlmostEqual(burst.actual_freq, 44100 * 23 / 101)

    def test_nonpositive_frequency_rejected(self):
        """Zero, negative and non-finite start frequencies are configuration errors"""
        for start_freq in (0.0, -100.0, float("nan"), float("inf")):
            with self.subTest(start_freq=start_freq):
                burst = BurstSequence()
                burst.start_freq = start_freq
                with self.assertRaises(ConfigurationError):
                    burst.reset()

    def test_subnormal_frequency_rejected(self):
        """A frequency so low that its period overflows cannot be quantized"""
        burst = BurstSequence()
        burst.start_freq = 1e-320
        with self.assertRaises(ConfigurationError):
            burst.reset()

    def test_short_interval_with_high_start(self):
        """A short interval is usable once the start frequency keeps bursts short"""
        burst = BurstSequence(interval=400)
        burst.start_freq = 1000.0
        burst.validate()

        self.assertEqual(burst.duration, 132)
        self.assertEqual(burst.interval, 400)
        with self.assertRaises(ConfigurationError):
            BurstSequence(interval=400).reset()

    def test_burst_longer_than_interval_rejected(self):
        """A 1Hz burst cannot fit with a background window in half a second"""
        burst = BurstSequence()
        burst.start_freq = 1.0
        with self.assertRaises(ConfigurationError):
            burst.reset()


class TestStepping(unittest.TestCase):
    def test_sweep_is_geometric_to_10khz(self):
        """201 sweep bursts step by a constant ratio from 100Hz to 10kHz"""
        burst = BurstSequence()
        freqs = sweep_frequencies(burst)

        self.assertEqual(len(freqs), 201)
        self.assertEqual(freqs[0], 100.0)
        self.assertAlmostEqual(freqs[-1], 10000.0, places=6)

        ratios = np.array(freqs[1:]) / np.array(freqs[:-1])
        np.testing.assert_allclose(ratios, (10000.0 / 100.0) ** (1.0 / 200), rtol=1e-12)

    def test_sweep_from_custom_start(self):
        """The sweep always ends at 10kHz whatever the start frequency"""
        burst = BurstSequence()
        burst.start_freq = 1000.0
        freqs = sweep_frequencies(burst)

        self.assertEqual(len(freqs), 201)
        self.assertAlmostEqual(freqs[-1], 10000.0, places=6)

    def test_polar_frequency_is_constant(self):
        """Polar mode repeats one frequency 72 times with a doubled interval"""
        burst = BurstSequence()
        burst.init(POLAR)
        freqs = sweep_frequencies(burst)

        self.assertEqual(len(freqs), 72)
        self.assertEqual(set(freqs), {1000.0})
        self.assertEqual(burst.interval, 44100)
        self.assertEqual(burst.freq_incr, 1.0)
        self.assertEqual(burst.stop_freq, burst.start_freq)

    def test_sweep_init_restores_defaults(self):
        burst = BurstSequence()
        burst.init(SWEEP)

        self.assertEqual(burst.num_burst, 201)
        self.assertEqual(burst.start_freq, 100.0)
        self.assertEqual(burst.interval, 22050)

    def test_init_only_once(self):
        burst = BurstSequence()
        burst.init(POLAR)
        with self.assertRaises(RuntimeError):
            burst.init(SWEEP)

    def test_init_rejects_unknown_mode(self):
        with self.assertRaises(ValueError):
            BurstSequence().init("spiral")

    def test_next_after_exhaustion(self):
        """good() is False once every burst is used; next() then changes nothing"""
        burst = BurstSequence()
        burst.reset()
        steps = 0
        while burst.good():
            self.assertTrue(burst.next())
            steps += 1

        self.assertEqual(steps, 201)
        self.assertEqual(burst.burst_count, 0)
        frequency = burst.nominal_freq
        duration = burst.duration

        self.assertFalse(burst.next())
        self.assertFalse(burst.good())
        self.assertEqual(burst.nominal_freq, frequency)
        self.assertEqual(burst.duration, duration)

    def test_failed_step_leaves_burst_unchanged(self):
        """A step whose burst no longer fits raises without advancing the sequence"""
        burst = BurstSequence()
        burst.start_freq = 1000.0
        burst.reset()
        burst.interval = 200     # a 132 sample burst needs 264
        before = (burst.nominal_freq, burst.burst_count, burst.num_cycle, burst.duration, burst.actual_freq)

        with self.assertRaises(ConfigurationError):
            burst.next()
        self.assertEqual(
            (burst.nominal_freq, burst.burst_count, burst.num_cycle, burst.duration, burst.actual_freq),
            before)

    def test_data_size(self):
        """Default sweep with one interval of delay needs 17,816,400 bytes"""
        burst = BurstSequence()
        burst.delay = 22050
        burst.num_avg = 1

        self.assertEqual(burst.get_size(), 2 * 2 * (22050 * 1 * 201 + 22050))
        self.assertEqual(burst.get_size(), 17816400)


class TestValidate(unittest.TestCase):
    def test_defaults_are_valid(self):
        burst = BurstSequence()
        burst.validate()

        self.assertEqual(burst.burst_count, 201)
        self.assertEqual(burst.nominal_freq, 100.0)

    def test_rejects_bad_averaging(self):
        burst = BurstSequence()
        burst.num_avg = 0
        with self.assertRaises(ConfigurationError):
            burst.validate()

    def test_rejects_negative_delay(self):
        burst = BurstSequence()
        burst.delay = -1
        with self.assertRaises(ConfigurationError):
            burst.validate()

    def test_rejects_frequency_above_nyquist(self):
        burst = BurstSequence()
        burst.init(POLAR)
        burst.start_freq = 30000.0
        with self.assertRaises(ConfigurationError):
            burst.validate()


class TestSynthesisAndCorrelation(unittest.TestCase):
    def test_synthesized_burst_shape(self):
        """Burst samples are identical on both channels and silent after the burst"""
        burst = BurstSequence()
        burst.num_avg = 2
        burst.reset()
        frames = burst.synthesize()

        self.assertEqual(frames.shape, (2 * 22050, 2))
        self.assertEqual(frames.dtype, np.int16)
        np.testing.assert_array_equal(frames[:, 0], frames[:, 1])
        self.assertTrue(np.all(frames[burst.duration:burst.interval] == 0))
        np.testing.assert_array_equal(frames[:burst.interval], frames[burst.interval:])

        # cos(x) - cos(2x) starts at zero, rises to 9/8 and dips to -2 at mid burst
        self.assertEqual(frames[0, 0], 0)
        self.assertLessEqual(frames.max(), int(1.125 * AMPLITUDE))
        self.assertGreater(frames.max(), int(1.1 * AMPLITUDE))
        self.assertLessEqual(np.abs(frames).max(), int(2 * AMPLITUDE))
        self.assertGreater(np.abs(frames).max(), int(1.99 * AMPLITUDE))
        self.assertIn(int(np.argmin(frames[:burst.interval, 0])), (220, 221))

    def test_write_passes_frames_to_sink(self):
        burst = BurstSequence()
        burst.reset()
        written = []
        burst.write(written.append)

        self.assertEqual(len(written), 1)
        np.testing.assert_array_equal(written[0], burst.synthesize())

    def test_round_trip_sweep_reads_0db(self):
        """Correlating each synthesized burst reads 0dB, zero phase, silent background"""
        burst = BurstSequence()
        for _ in burst.bursts():
            result = burst.correlate(burst.synthesize())

            self.assertAlmostEqual(result.magnitude1, 1.0, delta=1e-3)
            self.assertAlmostEqual(result.magnitude2, 1.0, delta=1e-3)
            self.assertAlmostEqual(result.db1, 0.0, delta=0.01)
            self.assertAlmostEqual(result.db_diff, 0.0, places=9)
            self.assertAlmostEqual(result.phase1, 0.0, delta=1e-2)
            self.assertAlmostEqual(result.phase_diff, 0.0, places=9)
            self.assertLess(result.background_db1, -60.0)
            self.assertLess(result.background_db2, -60.0)

    def test_round_trip_polar_with_averaging(self):
        burst = BurstSequence()
        burst.init(POLAR)
        burst.num_avg = 3
        for _ in burst.bursts():
            result = burst.read(lambda count: burst.synthesize())

            self.assertAlmostEqual(result.db1, 0.0, delta=0.01)
            self.assertAlmostEqual(result.db2, 0.0, delta=0.01)
            self.assertLess(result.background_db1, -60.0)

    def test_channel_level_difference(self):
        """Halving channel 2 shows up as a 6dB channel difference"""
        burst = BurstSequence()
        burst.start_freq = 1000.0
        burst.reset()
        frames = burst.synthesize().astype(np.float64)
        frames[:, 1] *= 0.5

        result = burst.correlate(frames)
        self.assertAlmostEqual(result.magnitude2, 0.5, delta=1e-3)
        self.assertAlmostEqual(result.db_diff, 20 * math.log10(2), delta=0.01)

    def test_phase_follows_signal_delay(self):
        """A quarter cycle lag, sin(x) = cos(x - pi/2), reads as +90 degrees against the e^(+ix) kernel"""
        burst = BurstSequence()
        burst.start_freq = 441.0     # 100 samples per cycle
        burst.reset()
        j = np.arange(burst.interval)
        tone = AMPLITUDE * np.cos(burst.factor * j - math.pi / 2)
        tone[burst.duration:] = 0.0
        frames = np.stack([tone, tone], axis=1)

        result = burst.correlate(frames)
        self.assertAlmostEqual(result.magnitude1, 1.0, places=6)
        self.assertAlmostEqual(result.phase1, math.pi / 2, places=6)

    def test_background_picks_up_noise(self):
        """Noise in the background window raises the background estimate only"""
        burst = BurstSequence()
        burst.start_freq = 1000.0
        burst.reset()
        frames = burst.synthesize().astype(np.float64)
        rng = np.random.default_rng(1)
        start = burst.interval - 2 * burst.duration
        frames[start:start + burst.duration] += rng.normal(0, 0.1 * AMPLITUDE, (burst.duration, 2))

        result = burst.correlate(frames)
        self.assertAlmostEqual(result.db1, 0.0, delta=0.01)
        self.assertGreater(result.background_db1, -60.0)
        self.assertLess(result.background_db1, 0.0)

    def test_correlate_rejects_wrong_length(self):
        burst = BurstSequence()
        burst.reset()
        with self.assertRaises(ValueError):
            burst.correlate(np.zeros((100, 2)))


class TestReporting(unittest.TestCase):
    def test_silent_input_reports_minus_infinity(self):
        result = BurstResult.from_sums(0j, 0j, 0j, 0j)
        self.assertEqual(result.db1, float("-inf"))
        self.assertEqual(result.background_db2, float("-inf"))
        self.assertEqual(len(result.as_row()), 10)

    def test_detail_line(self):
        burst = BurstSequence()
        burst.reset()
        self.assertEqual(burst.detail(), "1\t441\t100\t100")

    def test_format_value(self):
        self.assertEqual(format_value(441), "441")
        self.assertEqual(format_value(1002.2727272), "1002.27")
        self.assertEqual(format_value(float("-inf")), "-inf")


if __name__ == '__main__':
    unittest.main()
