from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone

from fastapi.testclient import TestClient

from app import create_app
from hostel_inventory.domain.models import BookingStatus, NewBooking
from hostel_inventory.repository.booking_repository import (
    BookingRepositoryError,
    SqliteBookingRepository,
)
from hostel_inventory.utils.clock import ManualClock
from hostel_inventory.utils.config import get_settings


NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
STAY = {"checkIn": "2025-03-10", "checkOut": "2025-03-12"}


class _UnreachableRepository(SqliteBookingRepository):
    def find_overlapping(self, *args, **kwargs):
        raise BookingRepositoryError("database disk image is malformed")


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    return replace(get_settings(), database_path=tmp_path / filename, hold_ttl_minutes=10)


def _build_client(tmp_path, filename: str, repository_cls=None):
    settings = _build_test_settings(tmp_path, filename)
    clock = ManualClock(NOW)
    repository = repository_cls(settings, clock=clock) if repository_cls else None
    app = create_app(settings=settings, repository=repository, clock=clock)
    return TestClient(app), app, clock


def _error(response) -> str:
    return response.json()["detail"]["error"]


def test_hold_lifecycle_end_to_end(tmp_path) -> None:
    client, app, _ = _build_client(tmp_path, "lifecycle.db")
    with client:
        started = client.post("/holds/start", json={**STAY, "bedsCount": 4, "total": 80})
        assert started.status_code == 200, started.text
        body = started.json()
        assert body["ok"] is True
        assert body["rooms"] == {"5": 4}
        assert "expiresAt" in body
        hold_id = body["holdId"]

        availability = client.get("/availability", params={"from": "2025-03-10", "to": "2025-03-12"})
        assert availability.status_code == 200
        payload = availability.json()
        assert payload["from"] == "2025-03-10"
        assert payload["occupied"]["5"] == 4
        assert payload["available"]["5"] == 3
        room_five = next(room for room in payload["rooms"] if room["roomId"] == "5")
        assert room_five["held"] == 4

        listing = client.get("/holds/list").json()
        assert [hold["holdId"] for hold in listing["holds"]] == [hold_id]
        assert listing["stats"]["activeHolds"] == 1
        assert listing["stats"]["heldBeds"] == 4

        detail = client.get(f"/holds/{hold_id}").json()
        assert detail["hold"]["status"] == "ACTIVE"
        assert detail["hold"]["bedsCount"] == 4

        confirmed = client.post("/holds/confirm", json={"holdId": hold_id, "status": "paid"})
        assert confirmed.status_code == 200, confirmed.text
        assert confirmed.json()["bookingRecorded"] is True
        assert confirmed.json()["status"] == "paid"
        assert len(confirmed.json()["bookingIds"]) == 1

        assert _error(client.post("/holds/release", json={"holdId": hold_id})) == "hold_not_found"
        assert _error(client.post("/holds/confirm", json={"holdId": hold_id})) == "hold_not_found"

        after = client.get("/availability", params={"from": "2025-03-10", "to": "2025-03-12"})
        room_five = next(room for room in after.json()["rooms"] if room["roomId"] == "5")
        assert (room_five["booked"], room_five["held"]) == (4, 0)

        assert client.get("/health").json() == {"ok": True, "activeHolds": 0}

    assert not app.state.sweeper.running


def test_hold_start_validation_and_admission_errors(tmp_path) -> None:
    client, _, _ = _build_client(tmp_path, "start_errors.db")
    with client:
        backwards = client.post(
            "/holds/start",
            json={"checkIn": "2025-03-12", "checkOut": "2025-03-10", "bedsCount": 2},
        )
        assert backwards.status_code == 400
        assert _error(backwards) == "invalid_hold_data"

        not_a_number = client.post("/holds/start", json={**STAY, "bedsCount": "abc"})
        assert not_a_number.status_code == 400
        assert _error(not_a_number) == "invalid_hold_data"

        superscript = client.post("/holds/start", json={**STAY, "bedsCount": "\u00b2"})
        assert superscript.status_code == 400
        assert _error(superscript) == "invalid_hold_data"

        huge_total = client.post(
            "/holds/start", json={**STAY, "bedsCount": 2, "total": 10**400}
        )
        assert huge_total.status_code == 400
        assert _error(huge_total) == "invalid_hold_data"

        not_an_object = client.post("/holds/start", json=[STAY])
        assert not_an_object.status_code == 400

        too_many = client.post("/holds/start", json={**STAY, "bedsCount": 39})
        assert too_many.status_code == 409
        assert _error(too_many) == "insufficient_availability"

        first = client.post("/holds/start", json={**STAY, "bedsCount": 1, "holdId": "H-1"})
        assert first.status_code == 200
        duplicate = client.post("/holds/start", json={**STAY, "bedsCount": 1, "holdId": "H-1"})
        assert duplicate.status_code == 409
        assert _error(duplicate) == "hold_exists"

        missing = client.post("/holds/confirm", json={})
        assert missing.status_code == 400
        assert client.get("/holds/H-404").status_code == 404


def test_release_is_idempotent_over_http(tmp_path) -> None:
    client, _, _ = _build_client(tmp_path, "release.db")
    with client:
        hold_id = client.post("/holds/start", json={**STAY, "bedsCount": 2}).json()["holdId"]

        first = client.post("/holds/release", json={"holdId": hold_id})
        second = client.post("/holds/release", json={"holdId": hold_id})

        assert first.status_code == second.status_code == 200
        assert second.json() == {
            "ok": True,
            "released": True,
            "holdId": hold_id,
            "status": "RELEASED",
        }
        assert _error(client.post("/holds/release", json={"holdId": "nope"})) == "hold_not_found"


def test_admin_cleanup_expires_overdue_holds(tmp_path) -> None:
    client, _, clock = _build_client(tmp_path, "cleanup.db")
    with client:
        hold_id = client.post("/holds/start", json={**STAY, "bedsCount": 2}).json()["holdId"]
        clock.advance(minutes=10)

        cleaned = client.delete("/admin/holds/cleanup")

        assert cleaned.json() == {"ok": True, "holdsCleanedUp": 1}
        assert client.get(f"/holds/{hold_id}").json()["hold"]["status"] == "EXPIRED"
        assert client.delete("/admin/holds/cleanup").json()["holdsCleanedUp"] == 0


def test_availability_query_errors(tmp_path) -> None:
    client, _, _ = _build_client(tmp_path, "availability_errors.db")
    with client:
        missing = client.get("/availability", params={"to": "2025-03-12"})
        assert missing.status_code == 400
        assert _error(missing) == "invalid_request"

        backwards = client.get("/availability", params={"from": "2025-03-12", "to": "2025-03-10"})
        assert backwards.status_code == 400

        malformed = client.get("/availability", params={"from": "12/03/2025", "to": "2025-03-14"})
        assert malformed.status_code == 400

        trailing = client.get(
            "/availability", params={"from": "2025-03-10junk", "to": "2025-03-14"}
        )
        assert trailing.status_code == 400
        assert _error(trailing) == "invalid_request"

        unknown = client.get(
            "/availability",
            params={"from": "2025-03-10", "to": "2025-03-12", "roomId": "99"},
        )
        assert unknown.status_code == 404
        assert _error(unknown) == "room_not_found"


def test_repository_outage_is_reported_not_hidden(tmp_path) -> None:
    client, _, _ = _build_client(
        tmp_path, "outage.db", repository_cls=_UnreachableRepository
    )
    with client:
        availability = client.get(
            "/availability", params={"from": "2025-03-10", "to": "2025-03-12"}
        )
        started = client.post("/holds/start", json={**STAY, "bedsCount": 2})

        assert availability.status_code == 500
        assert _error(availability) == "upstream_unavailable"
        assert started.status_code == 500
        assert _error(started) == "upstream_unavailable"


def test_block_dates_flow(tmp_path) -> None:
    client, app, _ = _build_client(tmp_path, "blocks.db")
    with client:
        app.state.repository.create_booking(
            NewBooking(
                room_id="1",
                check_in=date(2025, 3, 11),
                check_out=date(2025, 3, 13),
                beds_count=2,
                status=BookingStatus.CONFIRMED,
                guest_name="Ana Ruiz",
            )
        )

        rejected = client.post(
            "/admin/block-dates",
            json={"roomId": "1", "start": "2025-03-10", "end": "2025-03-12"},
        )
        assert rejected.status_code == 409
        assert _error(rejected) == "block_conflict"

        malformed = client.post(
            "/admin/block-dates",
            json={"roomId": "6", "start": "2025-13-01", "end": "2025-03-12"},
        )
        assert malformed.status_code == 400
        assert _error(malformed) == "invalid_request"

        created = client.post(
            "/admin/block-dates",
            json={
                "roomId": "6",
                "start": "2025-03-10",
                "end": "2025-03-12",
                "reason": "Painting",
                "blockType": "maintenance",
            },
        )
        assert created.status_code == 201, created.text
        booking_id = created.json()["bookingId"]

        availability = client.get(
            "/availability",
            params={"from": "2025-03-10", "to": "2025-03-12", "roomId": "6"},
        )
        assert availability.json()["available"] == {"6": 0}

        listed = client.get("/admin/block-dates", params={"roomId": "6"}).json()
        assert [block["bookingId"] for block in listed["blocked"]] == [booking_id]
        assert listed["blocked"][0]["blockType"] == "maintenance"
        assert listed["blocked"][0]["reason"] == "Painting"

        half_range = client.get(
            "/admin/block-dates", params={"roomId": "6", "from": "2025-03-10"}
        )
        assert half_range.status_code == 400
        assert _error(half_range) == "invalid_request"

        assert client.delete(f"/admin/block-dates/{booking_id}").json() == {
            "ok": True,
            "removed": 1,
        }
        assert client.delete(f"/admin/block-dates/{booking_id}").status_code == 404

        client.post(
            "/admin/block-dates",
            json={"roomId": "6", "start": "2025-04-01", "end": "2025-04-03"},
        )
        removed = client.delete(
            "/admin/block-dates",
            params={"roomId": "6", "from": "2025-04-01", "to": "2025-04-30"},
        )
        assert removed.json()["removed"] == 1


def test_channel_import_over_http(tmp_path) -> None:
    client, app, _ = _build_client(tmp_path, "channel.db")
    with client:
        response = client.post(
            "/admin/channel-import",
            json={
                "roomId": "3",
                "platform": "Hostelworld",
                "bookings": [
                    {
                        "externalId": "HW-1",
                        "checkIn": "2025-03-10",
                        "checkOut": "2025-03-12",
                        "bedsCount": 3,
                    },
                    {
                        "externalId": "HW-2",
                        "checkIn": "2025-03-15",
                        "checkOut": "2025-03-16",
                        "status": "blocked",
                    },
                ],
            },
        )

        assert response.status_code == 200, response.text
        assert response.json() == {
            "ok": True,
            "roomId": "3",
            "platform": "hostelworld",
            "imported": 1,
            "updated": 0,
            "skipped": 0,
            "blockedDates": 1,
            "conflictsResolved": 0,
        }
        availability = client.get(
            "/availability",
            params={"from": "2025-03-10", "to": "2025-03-12", "roomId": "3"},
        )
        assert availability.json()["occupied"] == {"3": 3}

        unknown = client.post(
            "/admin/channel-import",
            json={"roomId": "77", "platform": "airbnb", "bookings": []},
        )
        assert unknown.status_code == 404
