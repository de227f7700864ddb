"""
Rotation
========
Scheduled, zero-downtime replacement of the header secret.
"""

from .generator import generate_secret
from .coordinator import Invalidator, RotationCoordinator, RotationResult
from .scheduler import RotationScheduler
from .steps import RotationStep, RotationStepHandler

__all__ = [
    "generate_secret",
    "Invalidator",
    "RotationCoordinator",
    "RotationResult",
    "RotationScheduler",
    "RotationStep",
    "RotationStepHandler",
]
