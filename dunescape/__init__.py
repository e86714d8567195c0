"""Procedural desert terrain generation package."""

from .config import DEFAULT_ITERATIONS, DEFAULT_SIZE, ErosionConfig, GeneratorConfig
from .erosion import ErosionEngine, ErosionPreconditionError

__all__ = [
    "DEFAULT_SIZE",
    "DEFAULT_ITERATIONS",
    "ErosionConfig",
    "ErosionEngine",
    "ErosionPreconditionError",
    "GeneratorConfig",
]
