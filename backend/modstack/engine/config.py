"""Engine configuration: algorithm tunables for the modifier stack."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from modstack.config import Settings


@dataclass
class EngineConfig:
    """Knobs the processors and the composer read at run time."""

    # Reference size for shapes without w/h props
    default_shape_size: float = 100.0
    # Zero/negative sizes clamp to this
    min_reference_size: float = 1.0

    # Polygon extraction
    ellipse_segments: int = 32
    path_samples_per_segment: int = 12
    min_path_samples: int = 16
    max_path_samples: int = 512

    # Error recovery (name of a RecoveryStrategy member)
    recovery_strategy: str = "SKIP_MODIFIER"

    # Performance monitor
    slow_modifier_ms: float = 100.0
    max_timing_samples: int = 100

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineConfig:
        return cls(
            default_shape_size=settings.default_shape_size,
            recovery_strategy=settings.recovery_strategy,
            slow_modifier_ms=settings.slow_modifier_ms,
        )
