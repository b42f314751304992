"""
Visual odometry speed producer.

Stands in for a camera feature-tracking pipeline. Downstream code depends
only on the result contract: confidence drops and noise grows as conditions
degrade, and below a hard quality threshold tracking is reported as lost.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass, field
from typing import Optional

from ..math.constants import KPH_TO_MPS
from ..math.utils import clamp

@dataclass(frozen=True)
class VisionResult:
    """Visual speed estimate.

    speed: Estimated speed in m/s (0 when not tracking)
    confidence: 0.0 to 1.0, feature tracking quality
    is_tracking: False when visual features were lost
    """
    speed: float
    confidence: float
    is_tracking: bool

TRACKING_LOST = VisionResult(speed=0.0, confidence=0.0, is_tracking=False)

@dataclass
class VisualOdometryEstimator:
    """Simulated visual odometry with lighting and motion-blur degradation.

    Parameters:
        motion_blur_speed (float): Speed above which blur degrades tracking (m/s).
        motion_blur_penalty (float): Quality multiplier applied above that speed.
        feature_noise (float): Full width of the uniform quality perturbation.
        optical_noise (float): Full width of the uniform speed noise at full
            quality (m/s), divided by the tracking quality for each frame.
        tracking_threshold (float): Quality below which tracking is lost.
        random_state (Optional[np.random.Generator]): Random number generator for
            reproducibility. If None, a new default generator is created.
    """
    motion_blur_speed: float = 220.0 * KPH_TO_MPS
    motion_blur_penalty: float = 0.7
    feature_noise: float = 0.15
    optical_noise: float = 1.2 * KPH_TO_MPS
    tracking_threshold: float = 0.3
    random_state: Optional[np.random.Generator] = field(default=None)

    def __post_init__(self):
        if self.random_state is None:
            self.rng = np.random.default_rng()
        else:
            self.rng = self.random_state

        self.frames_processed = 0
        self.frames_lost = 0
        self.last_confidence = 0.0

    def tracking_quality(self, nominal_speed: float, lighting: float) -> float:
        """Quality score before the tracking-loss threshold is applied."""
        quality = lighting
        if nominal_speed > self.motion_blur_speed:
            quality *= self.motion_blur_penalty

        quality += (self.rng.random() - 0.5) * self.feature_noise
        return clamp(quality, 0.0, 1.0)

    def estimate(self, nominal_speed: float, dt: float, lighting: float = 0.95) -> VisionResult:
        """
        Produce a speed estimate for the next frame.

        Args:
            nominal_speed: Reference speed the camera would observe (m/s)
            dt: Time since the previous frame in seconds
            lighting: 0.0 (dark) to 1.0 (bright)

        Returns:
            VisionResult; is_tracking is False when the caller must skip fusion
        """
        self.frames_processed += 1
        quality = self.tracking_quality(nominal_speed, lighting)

        if quality < self.tracking_threshold:
            self.frames_lost += 1
            self.last_confidence = 0.0
            return TRACKING_LOST

        # Noise width grows as tracking quality falls
        width = self.optical_noise / max(quality, self.tracking_threshold)
        noise = (self.rng.random() - 0.5) * width
        self.last_confidence = quality
        return VisionResult(
            speed=max(0.0, nominal_speed + noise),
            confidence=quality,
            is_tracking=True
        )

    def get_statistics(self) -> dict:
        """Get producer statistics."""
        return {
            'frames_processed': self.frames_processed,
            'frames_lost': self.frames_lost,
            'loss_rate': self.frames_lost / max(1, self.frames_processed),
            'last_confidence': self.last_confidence
        }
