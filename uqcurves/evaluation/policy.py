"""Named edge-case policies for the robust-curve engine.

Three edge cases of the counting and interpolation code are settings
rather than hard-coded behaviour, each with one default:

  saturation       value of (precision, fnr) when no resampled sample
                   clears the quality threshold: "unit" -> (1, 1),
                   "zero" -> (0, 0)
  exclude_perfect  drop samples with y == 1.0 from the confusion counts
  boundary         out-of-range FNR queries: "clamp", "nan" or "anchor"
  ties             duplicate FNR knots: "collapse" or "strict"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from uqcurves.errors import ConfigurationError

SATURATION_POLICIES: dict[str, tuple[float, float]] = {
    "unit": (1.0, 1.0),
    "zero": (0.0, 0.0),
}
BOUNDARY_POLICIES = ("clamp", "nan", "anchor")
TIE_POLICIES = ("collapse", "strict")


@dataclass(frozen=True)
class EnginePolicy:
    saturation: str = "unit"
    exclude_perfect: bool = False
    boundary: str = "clamp"
    ties: str = "collapse"

    def __post_init__(self) -> None:
        if self.saturation not in SATURATION_POLICIES:
            raise ConfigurationError(
                f"Unknown saturation policy '{self.saturation}'. "
                f"Expected one of: {sorted(SATURATION_POLICIES)}"
            )
        if self.boundary not in BOUNDARY_POLICIES:
            raise ConfigurationError(
                f"Unknown boundary policy '{self.boundary}'. "
                f"Expected one of: {list(BOUNDARY_POLICIES)}"
            )
        if self.ties not in TIE_POLICIES:
            raise ConfigurationError(
                f"Unknown tie policy '{self.ties}'. "
                f"Expected one of: {list(TIE_POLICIES)}"
            )

    @property
    def saturation_values(self) -> tuple[float, float]:
        """(precision, fnr) used when the quality-positive count is zero."""
        return SATURATION_POLICIES[self.saturation]

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "EnginePolicy":
        """Build from the ``engine`` section of a project config."""
        section = cfg.get("engine", {}) or {}
        return cls(
            saturation=str(section.get("saturation", "unit")),
            exclude_perfect=bool(section.get("exclude_perfect", False)),
            boundary=str(section.get("boundary", "clamp")),
            ties=str(section.get("ties", "collapse")),
        )


DEFAULT_POLICY = EnginePolicy()
