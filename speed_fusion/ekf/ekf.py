"""
Extended Kalman Filter for body-frame vehicle velocity.
"""

import logging
import math
import time
import numpy as np
from dataclasses import dataclass
from typing import Optional, Dict, Any

from .state import VelocityState
from .models import MotionModel, MeasurementModel, Measurement
from ..math import linalg3
from ..math.constants import (
    Q_VELOCITY, R_BUS_SPEED, GATE_SIGMA, MIN_INNOVATION_VARIANCE,
    ZERO_INNOVATION, INITIAL_VELOCITY_VARIANCE
)
from ..sensors.vision import VisualOdometryEstimator, VisionResult

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class UpdateResult:
    """Outcome of a single scalar correction."""
    applied: bool
    innovation: float = 0.0
    gated: bool = False

SKIPPED = UpdateResult(applied=False)

class VelocityEKF:
    """
    3-state Extended Kalman Filter fusing wheel, GPS and visual speed.

    State: [vx, vy, vz] in the body frame. Every correction is scalar, so the
    gain never needs a matrix inverse.
    """

    def __init__(self, initial_state: Optional[VelocityState] = None,
                 process_noise: float = Q_VELOCITY,
                 bus_speed_noise: float = R_BUS_SPEED,
                 vision: Optional[VisualOdometryEstimator] = None):
        """
        Initialize the filter.

        Args:
            initial_state: Initial velocity (defaults to standstill)
            process_noise: Per-axis velocity variance added by each prediction
            bus_speed_noise: Measurement variance for diagnostic bus speed
            vision: Visual odometry producer used by fuse_vision_speed
        """
        initial_state = initial_state or VelocityState()
        self.x = initial_state.state_vector
        self.P = self._initialize_covariance()

        self.motion_model = MotionModel()
        self.measurement_model = MeasurementModel()
        self.Q = self.motion_model.process_noise_matrix(process_noise)
        self.r_bus = bus_speed_noise

        self.vision = vision or VisualOdometryEstimator()

        self._reset_statistics()

    def _initialize_covariance(self) -> np.ndarray:
        """Initialize state covariance matrix."""
        return np.eye(3) * INITIAL_VELOCITY_VARIANCE

    def _reset_statistics(self):
        self.prediction_count = 0
        self.bus_update_count = 0
        self.gps_update_count = 0
        self.vision_update_count = 0
        self.vision_lost_count = 0
        self.gated_count = 0
        self.skipped_count = 0

    def predict(self, accel, gyro, dt: float):
        """
        Prediction step of the Kalman filter.

        Integrates dv/dt = a - w x v and propagates P = F P F^T + Q.

        Args:
            accel: Body-frame acceleration [ax, ay, az] (m/s²)
            gyro: Body-frame angular rate [p, q, r] (rad/s)
            dt: Time step in seconds
        """
        accel = np.asarray(accel, dtype=float)
        gyro = np.asarray(gyro, dtype=float)

        if not (dt > 0 and math.isfinite(dt)
                and np.all(np.isfinite(accel)) and np.all(np.isfinite(gyro))):
            logger.debug("Skipping prediction with invalid input dt=%s", dt)
            self.skipped_count += 1
            return

        x_new = self.motion_model.predict_state(self.x, accel, gyro, dt)
        F = self.motion_model.jacobian_F(gyro, dt)
        P_new = linalg3.mat_add(
            linalg3.mat_mul(linalg3.mat_mul(F, self.P), linalg3.transpose(F)),
            self.Q
        )

        self.x = x_new
        self.P = P_new
        self.prediction_count += 1

    def update(self, z: float, h_x: float, H, R: float) -> UpdateResult:
        """
        Generic scalar EKF correction with innovation gating.

        Args:
            z: Measured value
            h_x: Predicted measurement
            H: 3-element Jacobian row
            R: Measurement noise variance, must be positive

        Returns:
            UpdateResult describing whether and how the state changed
        """
        if not R > 0:
            raise ValueError(f"Measurement variance must be positive, got {R}")

        H = np.asarray(H, dtype=float)
        y = z - h_x
        if not (math.isfinite(y) and math.isfinite(R) and np.all(np.isfinite(H))):
            logger.debug("Skipping update with non-finite measurement z=%s", z)
            self.skipped_count += 1
            return SKIPPED

        if abs(y) <= ZERO_INNOVATION:
            return UpdateResult(applied=True, innovation=0.0)

        PHt = linalg3.mat_vec(self.P, H)
        S = linalg3.dot(H, PHt) + R
        if not S > MIN_INNOVATION_VARIANCE:
            logger.debug("Skipping update with degenerate innovation variance S=%s", S)
            self.skipped_count += 1
            return SKIPPED

        K = linalg3.vec_scale(PHt, 1.0 / S)

        # Clamp implausible innovations to the gate instead of dropping them
        bound = GATE_SIGMA * math.sqrt(S)
        gated = abs(y) > bound
        if gated:
            y = math.copysign(bound, y)
            self.gated_count += 1

        x_new = linalg3.vec_add(self.x, linalg3.vec_scale(K, y))
        P_new = linalg3.mat_mul(linalg3.IDENTITY3 - linalg3.outer(K, H), self.P)

        self.x = x_new
        self.P = P_new
        return UpdateResult(applied=True, innovation=y, gated=gated)

    def _apply(self, measurement: Measurement) -> UpdateResult:
        return self.update(measurement.z, measurement.h_x, measurement.H, measurement.R)

    def fuse_bus_speed(self, speed: float) -> UpdateResult:
        """
        Update step with diagnostic bus (wheel) speed.

        Args:
            speed: Wheel speed in m/s

        Returns:
            UpdateResult
        """
        result = self._apply(self.measurement_model.bus_speed(self.x, speed, self.r_bus))
        if result.applied:
            self.bus_update_count += 1
        return result

    def fuse_satellite_speed(self, speed: float, accuracy: float) -> UpdateResult:
        """
        Update step with GPS ground speed.

        Args:
            speed: GPS speed in m/s
            accuracy: Reported position accuracy in meters

        Returns:
            UpdateResult
        """
        result = self._apply(self.measurement_model.satellite_speed(self.x, speed, accuracy))
        if result.applied:
            self.gps_update_count += 1
        return result

    def fuse_vision_speed(self, nominal_speed: float, dt: float,
                          lighting: float = 0.95) -> VisionResult:
        """
        Update step with visual odometry.

        Skipped entirely when the producer reports that tracking is lost.

        Args:
            nominal_speed: Reference speed handed to the producer (m/s)
            dt: Time since the previous frame
            lighting: Scene brightness from 0.0 to 1.0

        Returns:
            The producer's VisionResult
        """
        vo = self.vision.estimate(nominal_speed, dt, lighting)
        if not vo.is_tracking:
            self.vision_lost_count += 1
            return vo

        result = self._apply(self.measurement_model.vision_speed(self.x, vo.speed, vo.confidence))
        if result.applied:
            self.vision_update_count += 1
        return vo

    def estimated_speed(self) -> float:
        """Euclidean norm of the velocity estimate in m/s."""
        return linalg3.norm(self.x)

    def uncertainty(self) -> float:
        """Trace of the error covariance."""
        return linalg3.trace(self.P)

    @property
    def velocity(self) -> np.ndarray:
        """Copy of the velocity state."""
        return self.x.copy()

    @property
    def covariance(self) -> np.ndarray:
        """Copy of the error covariance."""
        return self.P.copy()

    def get_current_state(self) -> VelocityState:
        """Get current estimated state."""
        current_state = VelocityState()
        current_state.state_vector = self.x
        current_state.timestamp = time.time()
        return current_state

    def reset(self, new_state: Optional[VelocityState] = None):
        """Reset filter to a new state with the initial covariance."""
        new_state = new_state or VelocityState()
        self.x = new_state.state_vector
        self.P = self._initialize_covariance()
        self._reset_statistics()

    def get_statistics(self) -> Dict[str, Any]:
        """Get filter statistics."""
        return {
            'predictions': self.prediction_count,
            'bus_updates': self.bus_update_count,
            'gps_updates': self.gps_update_count,
            'vision_updates': self.vision_update_count,
            'vision_lost': self.vision_lost_count,
            'gated_innovations': self.gated_count,
            'skipped_updates': self.skipped_count,
            'estimated_speed': self.estimated_speed(),
            'uncertainty': self.uncertainty(),
            'velocity': self.x.tolist()
        }
