import contextlib
import io
import unittest
from unittest import mock

import numpy as np

import ring_ovm_driver
from ring_ovm import TIME_MULT_FACTOR, initialize
from ring_ovm_driver import (FrameClock, RunResult, SpeedControl, compare_car_counts,
                             run_headless, slow_cars)


class TestFrameClock(unittest.TestCase):
    def test_regular_ticks(self):
        clock = FrameClock(0)
        self.assertAlmostEqual(clock.tick(16), 0.016)
        self.assertAlmostEqual(clock.tick(32), 0.016)

    def test_stall_is_capped(self):
        clock = FrameClock(0)
        self.assertAlmostEqual(clock.tick(5000), 0.05)
        self.assertEqual(clock.last_ms, 5000)
        self.assertAlmostEqual(clock.tick(5010), 0.01)

    def test_backwards_tick_gives_zero(self):
        clock = FrameClock(100)
        self.assertEqual(clock.tick(40), 0.0)
        self.assertAlmostEqual(clock.tick(56), 0.016)


class TestSpeedControl(unittest.TestCase):
    def test_faster_and_slower(self):
        speed = SpeedControl()
        self.assertAlmostEqual(speed.faster(), TIME_MULT_FACTOR)
        self.assertAlmostEqual(speed.slower(), 1.0)
        self.assertAlmostEqual(speed.slower(), 1.0 / TIME_MULT_FACTOR)

    def test_faster_stops_once_past_max(self):
        speed = SpeedControl()
        for _ in range(20):
            speed.faster()
        # 1.5**5 < 10, so one more multiplication is allowed
        self.assertAlmostEqual(speed.time_mult, 1.5 ** 6)

    def test_reset(self):
        speed = SpeedControl(3.0)
        self.assertEqual(speed.reset(), 1.0)


class TestSlowCars(unittest.TestCase):
    def test_counts_cars_below_fraction(self):
        self.assertEqual(slow_cars([1.0, 1.0, 0.1]), 1)

    def test_stationary_traffic(self):
        self.assertEqual(slow_cars(np.zeros(5)), 0)


class TestRunHeadless(unittest.TestCase):
    def test_short_run(self):
        sim = initialize(10)
        result = run_headless(sim, duration=1.0, frame_ms=16, record_every=4)
        self.assertIsInstance(result, RunResult)
        self.assertEqual(result.steps, 62)
        self.assertEqual(sim.steps_taken, 62)
        self.assertEqual(len(result.frames), 16)
        positions, velocities = result.frames[0]
        self.assertEqual(positions.shape, (10,))
        self.assertTrue(np.all(velocities == 0))
        self.assertGreater(result.avg_speed, 0)

    def test_speed_multiplier_scales_time(self):
        slow = initialize(10)
        fast = initialize(10)
        run_headless(slow, duration=1.0, record_every=0)
        speed = SpeedControl()
        speed.faster()
        run_headless(fast, duration=1.0, speed=speed, record_every=0)
        self.assertAlmostEqual(fast.elapsed, TIME_MULT_FACTOR * slow.elapsed)

    def test_compare_car_counts(self):
        results = compare_car_counts((20, 25), duration=2.0, record_every=0)
        self.assertEqual(sorted(results), [20, 25])
        self.assertEqual(results[25].car_count, 25)
        self.assertEqual(results[20].frames, [])


class TestMain(unittest.TestCase):
    def test_main_prints_summary(self):
        out = io.StringIO()
        with mock.patch.object(ring_ovm_driver, "CAR_COUNTS", (3, 4)), \
                mock.patch.object(ring_ovm_driver, "SIM_DURATION", 0.5), \
                contextlib.redirect_stdout(out):
            ring_ovm_driver.main()
        text = out.getvalue()
        self.assertIn("JIT compiling... done!", text)
        self.assertIn("  3 cars | 31 steps", text)
        self.assertIn("  4 cars | 31 steps", text)


if __name__ == '__main__':
    unittest.main()
