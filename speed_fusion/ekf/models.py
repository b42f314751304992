"""
Motion and measurement models for the velocity EKF.
"""

import numpy as np
from dataclasses import dataclass

from ..math import linalg3
from ..math.constants import (
    Q_VELOCITY, R_BUS_SPEED, R_GPS_SPEED_MIN, R_GPS_ACCURACY_SCALE,
    R_VISION_BASE, VISION_CONFIDENCE_FLOOR, SPEED_EPSILON
)

@dataclass(frozen=True)
class Measurement:
    """
    Scalar measurement descriptor built for a single correction.

    z: measured value
    h_x: measurement predicted from the current state
    H: 3-element Jacobian row
    R: measurement noise variance
    """
    z: float
    h_x: float
    H: np.ndarray
    R: float

class MotionModel:
    """
    Rigid-body velocity kinematics in the vehicle frame.

    dv/dt = a - w x v, with w = [p, q, r] the roll, pitch and yaw rates.
    """

    @staticmethod
    def predict_state(state: np.ndarray, accel: np.ndarray, gyro: np.ndarray,
                      dt: float) -> np.ndarray:
        """
        Integrate the velocity over dt with an explicit Euler step.

        Args:
            state: Current velocity [vx, vy, vz]
            accel: Body-frame acceleration [ax, ay, az] (m/s²)
            gyro: Body-frame angular rate [p, q, r] (rad/s)
            dt: Time step in seconds

        Returns:
            Predicted velocity vector
        """
        coriolis = linalg3.mat_vec(linalg3.skew(gyro), state)
        return linalg3.vec_add(state, linalg3.vec_scale(np.asarray(accel) - coriolis, dt))

    @staticmethod
    def jacobian_F(gyro: np.ndarray, dt: float) -> np.ndarray:
        """
        State transition Jacobian F = I + dt * skew(-w).

        Args:
            gyro: Body-frame angular rate [p, q, r]
            dt: Time step

        Returns:
            3x3 Jacobian matrix F
        """
        omega = linalg3.skew(-np.asarray(gyro, dtype=float))
        return linalg3.mat_add(linalg3.IDENTITY3, omega * dt)

    @staticmethod
    def process_noise_matrix(q_velocity: float = Q_VELOCITY) -> np.ndarray:
        """Constant diagonal process noise Q."""
        return np.diag([q_velocity, q_velocity, q_velocity])

class MeasurementModel:
    """
    Measurement models for the three speed sources.
    """

    LONGITUDINAL = np.array([1.0, 0.0, 0.0])

    @staticmethod
    def bus_speed(state: np.ndarray, speed: float, r_bus: float = R_BUS_SPEED) -> Measurement:
        """
        Wheel speed from the diagnostic bus observes the longitudinal axis only.

        Args:
            state: Current velocity
            speed: Measured wheel speed in m/s
            r_bus: Measurement variance

        Returns:
            Measurement descriptor
        """
        return Measurement(z=speed, h_x=float(state[0]),
                           H=MeasurementModel.LONGITUDINAL.copy(), R=r_bus)

    @staticmethod
    def satellite_speed(state: np.ndarray, speed: float, accuracy: float) -> Measurement:
        """
        GPS speed observes the magnitude of the full velocity vector.

        h(x) = |x| and the Jacobian is the unit vector x/|x|. Near standstill
        the magnitude is replaced by a small epsilon.

        Args:
            state: Current velocity
            speed: GPS ground speed in m/s
            accuracy: Reported position accuracy in meters

        Returns:
            Measurement descriptor
        """
        magnitude = linalg3.norm(state)
        if magnitude < SPEED_EPSILON:
            magnitude = SPEED_EPSILON

        H = linalg3.vec_scale(state, 1.0 / magnitude)
        R = max(R_GPS_SPEED_MIN, accuracy * R_GPS_ACCURACY_SCALE)
        return Measurement(z=speed, h_x=magnitude, H=H, R=R)

    @staticmethod
    def vision_speed(state: np.ndarray, speed: float, confidence: float) -> Measurement:
        """
        Visual odometry observes longitudinal speed, trusted by its confidence.

        Args:
            state: Current velocity
            speed: Visual speed estimate in m/s
            confidence: Tracking confidence in [0, 1]

        Returns:
            Measurement descriptor
        """
        R = R_VISION_BASE / max(VISION_CONFIDENCE_FLOOR, confidence)
        return Measurement(z=speed, h_x=float(state[0]),
                           H=MeasurementModel.LONGITUDINAL.copy(), R=R)
