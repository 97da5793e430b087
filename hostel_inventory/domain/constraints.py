"""Domain-level validation rules for hold configuration and transitions."""

from __future__ import annotations

from dataclasses import dataclass

from hostel_inventory.domain.models import HoldStatus, ResolutionStrategy


_ALLOWED_TRANSITIONS: dict[HoldStatus, frozenset[HoldStatus]] = {
    HoldStatus.ACTIVE: frozenset(
        {HoldStatus.CONFIRMED, HoldStatus.RELEASED, HoldStatus.EXPIRED}
    ),
    HoldStatus.CONFIRMED: frozenset(),
    HoldStatus.RELEASED: frozenset(),
    HoldStatus.EXPIRED: frozenset(),
}


@dataclass(frozen=True)
class HoldConfig:
    ttl_minutes: int
    retention_seconds: int
    sweep_interval_seconds: int
    cache_seconds: int
    conflict_strategy: str


def can_transition(current: HoldStatus, target: HoldStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS[current]


def validate_hold_config(config: HoldConfig) -> None:
    if config.ttl_minutes <= 0:
        raise ValueError("ttl_minutes must be > 0")
    if config.retention_seconds < 0:
        raise ValueError("retention_seconds must be >= 0")
    if config.sweep_interval_seconds <= 0:
        raise ValueError("sweep_interval_seconds must be > 0")
    if config.cache_seconds < 0:
        raise ValueError("cache_seconds must be >= 0")
    try:
        ResolutionStrategy(config.conflict_strategy)
    except ValueError as exc:
        raise ValueError(f"unknown conflict_strategy {config.conflict_strategy!r}") from exc
