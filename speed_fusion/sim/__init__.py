"""
Synthetic vehicle input used when live diagnostics are stale.
"""

from .fallback import PhysicsFallback, FallbackSample, DriveMode

__all__ = ["PhysicsFallback", "FallbackSample", "DriveMode"]
