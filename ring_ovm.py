"""
Optimum Velocity Model on a Circle Road
Cars follow each other around a closed ring. Each car relaxes its speed toward
an optimum velocity set by the gap (headway) to the car in front:

    dtheta_i/dt = v_i
    dv_i/dt     = a * (V(theta_{i+1} - theta_i) - v_i)
    V(h)        = tanh(10*h - 2) + tanh(2)

Integrated with explicit Euler. Bando et al., Phys. Rev. E 51, 1035 (1995).
"""
import operator

import numpy as np
from numba import njit

# =============================================================================
# CONFIGURATION
# =============================================================================
RING_CIRCUMFERENCE = 2 * np.pi  # radians
NUM_CARS = 25  # 20 vs 25 cars behave very differently
ACCEL_GAIN = 10.0  # a
TIME_MULT = 1.0  # simulation speed, owned by the driver
TIME_MULT_FACTOR = 1.5
TIME_MULT_MAX = 10.0
MAX_FRAME_DT = 0.05  # seconds, cap on a single wall-clock delta
TIME_SCALE = 0.5  # arbitrary, just makes it look nicer

# Optimum velocity calibration
OV_SCALE = 10.0
OV_OFFSET = 2.0


# =============================================================================
# ERRORS
# =============================================================================

class RingSimulationError(Exception):
    pass


class InvalidConfiguration(RingSimulationError, ValueError):
    pass


class NotInitialized(RingSimulationError, RuntimeError):
    pass


# =============================================================================
# NUMBA JIT-COMPILED SIMULATION CORE
# =============================================================================

@njit(cache=True)
def optimum_velocity(headway):
    """Target velocity for a given headway: tanh(10*h - 2) + tanh(2)."""
    return np.tanh(OV_SCALE * headway - OV_OFFSET) + np.tanh(OV_OFFSET)


@njit(cache=True)
def ovm_step(theta, dtheta, h, a, circumference):
    """Advance all cars by one Euler step of size h (in place).

    Velocities are computed from the positions at the start of the step,
    then every position moves with its new velocity.
    """
    n = theta.shape[0]

    # === VELOCITIES ===
    for i in range(n):
        # Car in front
        j = i + 1
        if j == n:
            j = 0
        headway = theta[j] - theta[i]
        # Periodicity in the angle
        if j == 0:
            headway += circumference
        dtheta[i] += h * a * (optimum_velocity(headway) - dtheta[i])

    # === POSITIONS ===
    for i in range(n):
        theta[i] += h * dtheta[i]


# =============================================================================
# RING SIMULATION
# =============================================================================

class RingSimulation:
    """Cars on a ring of fixed circumference, ordered by index.

    Car i follows car i+1; the last car follows car 0 across the seam.
    A fresh instance is uninitialized until `initialize` seeds the cars.
    """

    def __init__(self):
        self.theta = None
        self.dtheta = None
        self.circumference = RING_CIRCUMFERENCE
        self.steps_taken = 0
        self.elapsed = 0.0

    @classmethod
    def from_state(cls, positions, velocities=None, circumference=RING_CIRCUMFERENCE):
        """Running simulation from explicit positions (ring order as given)."""
        theta = np.array(positions, dtype=np.float64)
        if theta.ndim != 1:
            raise InvalidConfiguration(f"positions must be 1-D, got shape {theta.shape}")
        if velocities is None:
            dtheta = np.zeros_like(theta)
        else:
            dtheta = np.array(velocities, dtype=np.float64)
        if theta.shape[0] < 2:
            raise InvalidConfiguration(f"need at least 2 cars, got {theta.shape[0]}")
        if dtheta.shape != theta.shape:
            raise InvalidConfiguration(
                f"{theta.shape[0]} positions but {dtheta.shape[0]} velocities")
        _check_circumference(circumference)

        sim = cls()
        sim.theta = theta
        sim.dtheta = dtheta
        sim.circumference = float(circumference)
        return sim

    def initialize(self, car_count=NUM_CARS, circumference=RING_CIRCUMFERENCE):
        """Place car_count cars at circumference*i/(car_count+1), at rest.

        The N+1 divisor leaves one gap larger than the others.
        """
        try:
            n = operator.index(car_count)
        except TypeError:
            raise InvalidConfiguration(f"car count must be an integer, got {car_count!r}") from None
        if n < 2:
            raise InvalidConfiguration(f"need at least 2 cars, got {n}")
        _check_circumference(circumference)

        circumference = float(circumference)
        theta = circumference * np.arange(n, dtype=np.float64) / (n + 1)
        dtheta = np.zeros(n, dtype=np.float64)

        self.circumference = circumference
        self.theta = theta
        self.dtheta = dtheta
        self.steps_taken = 0
        self.elapsed = 0.0
        return self

    @property
    def is_running(self):
        return self.theta is not None

    @property
    def car_count(self):
        return 0 if self.theta is None else self.theta.shape[0]

    def _require_running(self):
        if self.theta is None:
            raise NotInitialized("simulation has no cars, call initialize() first")

    def step(self, dt, accel_gain=ACCEL_GAIN, time_mult=TIME_MULT):
        """Advance by one frame of dt seconds of wall-clock time.

        dt is capped at MAX_FRAME_DT so a stall does not produce one huge,
        unstable step. A negative or NaN dt advances nothing.
        The integration step is TIME_SCALE * time_mult * dt.
        """
        self._require_running()
        dt = float(dt)
        if not dt > 0.0:
            dt = 0.0
        dt = min(dt, MAX_FRAME_DT)
        h = TIME_SCALE * float(time_mult) * dt
        ovm_step(self.theta, self.dtheta, h, float(accel_gain), self.circumference)
        self.steps_taken += 1
        self.elapsed += h

    def positions(self):
        self._require_running()
        return _frozen(self.theta)

    def velocities(self):
        self._require_running()
        return _frozen(self.dtheta)

    def wrapped_positions(self):
        """Positions reduced into [0, circumference), for display."""
        self._require_running()
        if self.circumference == 0.0:
            return _frozen(np.zeros_like(self.theta))
        return _frozen(np.mod(self.theta, self.circumference))

    def headways(self):
        """Gap from each car to the one in front, as used by step()."""
        self._require_running()
        gaps = np.roll(self.theta, -1) - self.theta
        gaps[-1] += self.circumference
        return _frozen(gaps)

    def average_speed(self):
        self._require_running()
        return float(np.mean(self.dtheta))

    def __repr__(self):
        if not self.is_running:
            return "RingSimulation(uninitialized)"
        return (f"RingSimulation(cars={self.car_count}, steps={self.steps_taken}, "
                f"avg_speed={self.average_speed():.3f})")


def initialize(car_count=NUM_CARS, circumference=RING_CIRCUMFERENCE):
    """Create a running simulation with car_count cars."""
    return RingSimulation().initialize(car_count, circumference)


def _check_circumference(circumference):
    if not np.isfinite(circumference) or circumference < 0:
        raise InvalidConfiguration(f"circumference must be finite and non-negative, got {circumference}")


def _frozen(arr):
    out = arr.copy()
    out.flags.writeable = False
    return out
