"""
Physical constants and filter tuning defaults for velocity fusion.
"""

import math

# Earth parameters
EARTH_RADIUS_M = 6371000.0  # Earth radius in meters
GRAVITY_MS2 = 9.80665       # Standard gravity in m/s²

# Conversion factors
DEG_TO_RAD = math.pi / 180.0
KPH_TO_MPS = 1.0 / 3.6
MPS_TO_KPH = 3.6
KNOTS_TO_MPS = 0.514444

# Loop rates
TICK_RATE_HZ = 20.0         # Orchestrator rate (50 ms)
TICK_PERIOD_S = 1.0 / TICK_RATE_HZ

# Process noise (per-axis velocity variance added each prediction)
Q_VELOCITY = 0.05

# Measurement noise
R_BUS_SPEED = 2.0           # Wheel speed, moderate trust (wheel slip)
R_GPS_SPEED_MIN = 0.5       # Floor for GPS speed variance
R_GPS_ACCURACY_SCALE = 0.5  # Variance per meter of reported accuracy
R_VISION_BASE = 0.5         # Divided by vision confidence
VISION_CONFIDENCE_FLOOR = 0.1

# Innovation gate (in standard deviations)
GATE_SIGMA = 3.0

# Numerical guards
SPEED_EPSILON = 1e-3        # Substituted for |v| in the GPS Jacobian
MIN_INNOVATION_VARIANCE = 1e-12
ZERO_INNOVATION = 1e-12
SINGULAR_DETERMINANT = 1e-12

# Initial uncertainty (velocity variance, (m/s)^2)
INITIAL_VELOCITY_VARIANCE = 1.0
