"""
Circle Road OVM - headless driver
Feeds the simulation synthetic frame ticks the way a window loop would,
records frames and compares how different car counts settle.
"""
import numpy as np
import time as timer

from ring_ovm import (ACCEL_GAIN, MAX_FRAME_DT, NUM_CARS, RING_CIRCUMFERENCE,
                      TIME_MULT, TIME_MULT_FACTOR, TIME_MULT_MAX, initialize)

# =============================================================================
# CONFIGURATION
# =============================================================================
FRAME_MS = 16  # ~60 fps
SIM_DURATION = 120.0  # seconds of wall-clock time per sample
RECORD_EVERY = 4  # record a frame every 4 steps
CAR_COUNTS = (20, 25)
SLOW_FRACTION = 0.7  # slower than 70% of the mean speed counts as jammed


class FrameClock:
    """Millisecond tick bookkeeping with the MAX_FRAME_DT cap."""

    def __init__(self, start_ms=0):
        self.last_ms = start_ms

    def tick(self, now_ms):
        cap_ms = MAX_FRAME_DT * 1000.0
        if now_ms - self.last_ms > cap_ms:
            self.last_ms = now_ms - cap_ms
        dt = max(now_ms - self.last_ms, 0) / 1000.0
        self.last_ms = now_ms
        return dt


class SpeedControl:
    """Simulation speed multiplier (slow down / speed up / reset keys)."""

    def __init__(self, time_mult=TIME_MULT):
        self.time_mult = time_mult

    def slower(self):
        self.time_mult /= TIME_MULT_FACTOR
        return self.time_mult

    def faster(self):
        """Limit is checked before multiplying, so it can overshoot TIME_MULT_MAX once."""
        if self.time_mult < TIME_MULT_MAX:
            self.time_mult *= TIME_MULT_FACTOR
        return self.time_mult

    def reset(self):
        self.time_mult = TIME_MULT
        return self.time_mult


class RunResult:
    def __init__(self, car_count, frames, avg_speed, slow_count, steps):
        self.car_count = car_count
        self.frames = frames  # list of (wrapped positions, velocities)
        self.avg_speed = avg_speed
        self.slow_count = slow_count
        self.steps = steps


def slow_cars(velocities, fraction=SLOW_FRACTION):
    """Number of cars moving slower than fraction of the mean speed."""
    velocities = np.asarray(velocities)
    mean = np.mean(velocities)
    if mean <= 0:
        return 0
    return int(np.sum(velocities < fraction * mean))


def run_headless(sim, duration=SIM_DURATION, frame_ms=FRAME_MS, accel_gain=ACCEL_GAIN,
                 speed=None, record_every=RECORD_EVERY):
    """Step sim once per synthetic frame for duration seconds of wall-clock time."""
    if speed is None:
        speed = SpeedControl()
    clock = FrameClock(0)
    frames = []
    steps = int(duration * 1000 / frame_ms)

    for step in range(steps):
        if record_every and step % record_every == 0:
            frames.append((sim.wrapped_positions(), sim.velocities()))
        dt = clock.tick((step + 1) * frame_ms)
        sim.step(dt, accel_gain, speed.time_mult)

    velocities = sim.velocities()
    return RunResult(sim.car_count, frames, sim.average_speed(),
                     slow_cars(velocities), steps)


def compare_car_counts(car_counts=CAR_COUNTS, duration=SIM_DURATION, frame_ms=FRAME_MS,
                       accel_gain=ACCEL_GAIN, time_mult=TIME_MULT, record_every=RECORD_EVERY):
    """One headless sample per car count, keyed by count."""
    results = {}
    for n in car_counts:
        sim = initialize(n, RING_CIRCUMFERENCE)
        results[n] = run_headless(sim, duration, frame_ms, accel_gain,
                                  SpeedControl(time_mult), record_every)
    return results


# =============================================================================
# MAIN
# =============================================================================

def main():
    print("\n" + "=" * 60)
    print("  CIRCLE ROAD - OPTIMUM VELOCITY MODEL")
    print("=" * 60)
    print(f"  Car counts: {', '.join(str(n) for n in CAR_COUNTS)} (default {NUM_CARS})")
    print(f"  Accel gain: {ACCEL_GAIN} | Time mult: {TIME_MULT}")
    print(f"  Duration: {SIM_DURATION}s | Frame: {FRAME_MS}ms")
    print("=" * 60)

    # Warm up JIT
    print("  JIT compiling...", end=" ", flush=True)
    initialize(2).step(0.0)
    print("done!")
    print("=" * 60 + "\n")

    t0 = timer.time()
    results = compare_car_counts(CAR_COUNTS, SIM_DURATION, FRAME_MS)
    elapsed = timer.time() - t0

    for n, result in results.items():
        print(f"  {n:3d} cars | {result.steps} steps | Avg speed: {result.avg_speed:.3f} rad/s"
              f" | Slow: {result.slow_count:2d} | Frames: {len(result.frames)}")

    print("\n" + "=" * 60)
    print(f"  Done in {elapsed:.1f}s")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
