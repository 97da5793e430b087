"""Environment-driven application settings."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from hostel_inventory.domain.models import Room, RoomCategory


DEFAULT_PLATFORM_PRIORITIES: dict[str, int] = {
    "direct": 100,
    "airbnb": 80,
    "booking": 80,
    "expedia": 70,
    "vrbo": 70,
    "hostelworld": 60,
    "internal": 50,
    "unknown": 10,
}

DEFAULT_ROOMS: tuple[Room, ...] = (
    Room(room_id="1", name="Mixto 12A", capacity=12, category=RoomCategory.MIXED),
    Room(room_id="3", name="Mixto 12B", capacity=12, category=RoomCategory.MIXED),
    Room(room_id="5", name="Mixto 7", capacity=7, category=RoomCategory.MIXED),
    Room(
        room_id="6",
        name="Flexible 7",
        capacity=7,
        category=RoomCategory.FLEXIBLE,
        auto_convert_hours=48,
    ),
)


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value.strip() if value and value.strip() else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_json(name: str) -> Any:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{name} must be valid JSON") from exc


def _rooms_from_env() -> tuple[Room, ...]:
    """Parse HOSTEL_ROOMS, e.g. ``[{"id": "1", "capacity": 12, "category": "mixed"}]``."""
    payload = _env_json("HOSTEL_ROOMS")
    if payload is None:
        return DEFAULT_ROOMS
    if not isinstance(payload, list) or not payload:
        raise ValueError("HOSTEL_ROOMS must be a non-empty JSON list")
    rooms = []
    for item in payload:
        room_id = str(item["id"])
        rooms.append(
            Room(
                room_id=room_id,
                name=str(item.get("name", f"Room {room_id}")),
                capacity=int(item["capacity"]),
                category=RoomCategory(str(item.get("category", "mixed")).lower()),
                auto_convert_hours=item.get("auto_convert_hours"),
            )
        )
    return tuple(rooms)


def _priorities_from_env() -> dict[str, int]:
    payload = _env_json("PLATFORM_PRIORITIES")
    if payload is None:
        return dict(DEFAULT_PLATFORM_PRIORITIES)
    if not isinstance(payload, dict):
        raise ValueError("PLATFORM_PRIORITIES must be a JSON object")
    priorities = {str(key).lower(): int(value) for key, value in payload.items()}
    priorities.setdefault("unknown", DEFAULT_PLATFORM_PRIORITIES["unknown"])
    return priorities


@dataclass(frozen=True)
class Settings:
    app_name: str = "Hostel Inventory Engine"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    database_path: Path = Path("data/bookings.db")

    hold_ttl_minutes: int = 10
    hold_retention_seconds: int = 3600
    hold_sweep_interval_seconds: int = 60
    hold_strict_admission: bool = True

    availability_cache_seconds: int = 30

    conflict_strategy: str = "platform_priority"
    platform_priorities: Mapping[str, int] = field(
        default_factory=lambda: dict(DEFAULT_PLATFORM_PRIORITIES)
    )

    rooms: tuple[Room, ...] = DEFAULT_ROOMS

    block_max_past_days: int = 365
    block_max_future_days: int = 730


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process; call ``cache_clear`` to reload."""
    return Settings(
        app_name=_env_str("APP_NAME", Settings.app_name),
        app_version=_env_str("APP_VERSION", Settings.app_version),
        log_level=_env_str("LOG_LEVEL", Settings.log_level),
        database_path=Path(_env_str("DATABASE_PATH", str(Settings.database_path))),
        hold_ttl_minutes=_env_int("HOLD_TTL_MINUTES", Settings.hold_ttl_minutes),
        hold_retention_seconds=_env_int(
            "HOLD_RETENTION_SECONDS", Settings.hold_retention_seconds
        ),
        hold_sweep_interval_seconds=_env_int(
            "HOLD_SWEEP_INTERVAL_SECONDS", Settings.hold_sweep_interval_seconds
        ),
        hold_strict_admission=_env_bool(
            "HOLD_STRICT_ADMISSION", Settings.hold_strict_admission
        ),
        availability_cache_seconds=_env_int(
            "AVAILABILITY_CACHE_SECONDS", Settings.availability_cache_seconds
        ),
        conflict_strategy=_env_str("CONFLICT_STRATEGY", Settings.conflict_strategy),
        platform_priorities=_priorities_from_env(),
        rooms=_rooms_from_env(),
        block_max_past_days=_env_int("BLOCK_MAX_PAST_DAYS", Settings.block_max_past_days),
        block_max_future_days=_env_int(
            "BLOCK_MAX_FUTURE_DAYS", Settings.block_max_future_days
        ),
    )
