#!/usr/bin/env python3
"""Validate local hold engine environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date, timedelta
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from hostel_inventory.domain.models import BookingStatus
from hostel_inventory.repository.booking_repository import SqliteBookingRepository
from hostel_inventory.services.availability_service import AvailabilityService
from hostel_inventory.services.hold_manager import HoldManager, HoldRequest
from hostel_inventory.services.hold_store import HoldStore
from hostel_inventory.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="hold-engine-env-")

    # CHECK 1 - Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2 - Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "hold_engine_validation.db",
        )
        repository = SqliteBookingRepository(validation_settings)

        # CHECK 3 - Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4 - Hold lifecycle against the fresh store
        store = HoldStore()
        availability = AvailabilityService(
            repository=repository,
            hold_store=store,
            settings=validation_settings,
        )
        manager = HoldManager(
            store=store,
            availability=availability,
            repository=repository,
            settings=validation_settings,
        )
        try:
            check_in = date.today() + timedelta(days=30)
            hold = manager.create_hold(
                HoldRequest(
                    check_in=check_in.isoformat(),
                    check_out=(check_in + timedelta(days=2)).isoformat(),
                    beds_count=2,
                )
            )
            result = manager.confirm_hold(hold.hold_id)
            if not result.booking_recorded:
                raise RuntimeError("confirmation did not record a booking")
            confirmed = repository.count_bookings(BookingStatus.CONFIRMED)
            if confirmed < 1:
                raise RuntimeError(f"expected confirmed bookings, got {confirmed}")
            ok, line = _print_result(
                "Hold lifecycle",
                True,
                f": {hold.hold_id} -> {result.hold.status.value}",
            )
        except Exception as exc:
            ok, line = _print_result("Hold lifecycle", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5 - Availability reflects the confirmed booking
        try:
            snapshot = availability.compute_occupancy(
                None, check_in, check_in + timedelta(days=2), fresh=True
            )
            if snapshot.total_available != availability.inventory.total_capacity - 2:
                raise RuntimeError(
                    f"expected {availability.inventory.total_capacity - 2} free beds, "
                    f"got {snapshot.total_available}"
                )
            ok, line = _print_result(
                "Availability computation",
                True,
                f": {snapshot.total_available} beds free",
            )
        except Exception as exc:
            ok, line = _print_result("Availability computation", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Hold Engine Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
