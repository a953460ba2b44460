"""
difficulty.py

Difficulty scaling F(delta) -> Theta.

Theta = <num_constraints, redundancy_ratio, max_depth, power_map_ratio>

  num_constraints   grows linearly (1k per level)
  redundancy_ratio  starts at 50% and drops to a 5% floor (harder to optimize)
  power_map_ratio   starts at 5% and caps at 30% (more x^5 S-boxes)
  max_depth         grows linearly (10 per level)
"""

from __future__ import annotations
from dataclasses import dataclass

from .errors import ConfigurationError


MAX_DIFFICULTY = 100
MAX_CONSTRAINTS = 1_000_000


def _is_count(x) -> bool:
    return isinstance(x, int) and not isinstance(x, bool)


# -----------------------------
# Configuration vector
# -----------------------------

@dataclass(frozen=True)
class CircuitConfig:
    num_constraints: int     # K_target
    redundancy_ratio: float  # rho
    max_depth: int           # D
    power_map_ratio: float   # probability of an x^5 S-box

    def __post_init__(self):
        if not _is_count(self.num_constraints) or self.num_constraints < 0:
            raise ConfigurationError(f"num_constraints must be a non-negative integer, got {self.num_constraints!r}")
        if self.num_constraints > MAX_CONSTRAINTS:
            raise ConfigurationError(f"num_constraints {self.num_constraints} exceeds the limit of {MAX_CONSTRAINTS}")
        if not _is_count(self.max_depth) or self.max_depth < 1:
            raise ConfigurationError(f"max_depth must be a positive integer, got {self.max_depth!r}")
        for name in ("redundancy_ratio", "power_map_ratio"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must lie in [0, 1], got {value!r}")


@dataclass(frozen=True)
class ScalingConstants:
    constraints_per_level: int = 1000
    redundancy_start: float = 0.5
    redundancy_step: float = 0.05
    redundancy_floor: float = 0.05
    power_map_start: float = 0.05
    power_map_step: float = 0.05
    power_map_cap: float = 0.30
    depth_base: int = 10
    depth_step: int = 10

    def __post_init__(self):
        # Size and depth must strictly grow; the ratios must move monotonically.
        if self.constraints_per_level <= 0 or self.depth_step <= 0 or self.depth_base < 1:
            raise ConfigurationError("constraint and depth scaling must be strictly increasing")
        if self.redundancy_step < 0 or self.power_map_step < 0:
            raise ConfigurationError("ratio steps must be non-negative")
        if not 0.0 <= self.redundancy_floor <= self.redundancy_start <= 1.0:
            raise ConfigurationError("expected 0 <= redundancy_floor <= redundancy_start <= 1")
        if not 0.0 <= self.power_map_start <= self.power_map_cap <= 1.0:
            raise ConfigurationError("expected 0 <= power_map_start <= power_map_cap <= 1")


DEFAULT_SCALING = ScalingConstants()


# -----------------------------
# F(delta)
# -----------------------------

def difficulty_to_config(delta: int, constants: ScalingConstants = DEFAULT_SCALING,
                         power_maps: bool = True) -> CircuitConfig:
    """
    Map a difficulty tier to its generation configuration.

    power_maps=False selects the redundancy-only generator mode (no S-boxes).
    """
    if not _is_count(delta) or delta < 0:
        raise ConfigurationError(f"difficulty must be a non-negative integer, got {delta!r}")
    if delta > MAX_DIFFICULTY:
        raise ConfigurationError(f"difficulty {delta} exceeds the maximum tier {MAX_DIFFICULTY}")

    c = constants
    num_constraints = delta * c.constraints_per_level
    redundancy_ratio = max(c.redundancy_floor, c.redundancy_start - delta * c.redundancy_step)
    power_map_ratio = min(c.power_map_cap, c.power_map_start + delta * c.power_map_step)
    max_depth = c.depth_base + delta * c.depth_step

    return CircuitConfig(
        num_constraints=num_constraints,
        redundancy_ratio=redundancy_ratio,
        max_depth=max_depth,
        power_map_ratio=power_map_ratio if power_maps else 0.0,
    )
