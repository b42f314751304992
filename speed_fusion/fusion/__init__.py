"""
Tick orchestration of the velocity estimator.
"""

from .orchestrator import FusionOrchestrator, FusedState, SOURCE_LIVE, SOURCE_FALLBACK

__all__ = ["FusionOrchestrator", "FusedState", "SOURCE_LIVE", "SOURCE_FALLBACK"]
