"""
Tests for the public tracking endpoints.
"""

from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.adapters.sqlite_db import SQLitePropertyRepo, SQLiteSessionRepo
from src.domain.entities import Property
from tests.support import FixedClock


def track_url(prop: Property) -> str:
    return f"/api/properties/{prop.id}/track-time"


class TestViews:
    def test_record_view(
        self, client: TestClient, listing: Property, property_repo: SQLitePropertyRepo
    ) -> None:
        response = client.post(
            f"/api/properties/{listing.id}/views", headers={"x-real-ip": "192.0.2.7"}
        )

        assert response.status_code == 201
        assert response.json()["success"] is True
        assert property_repo.get_by_id(listing.id).views_count == 1

    def test_inactive_property(
        self, client: TestClient, property_repo: SQLitePropertyRepo
    ) -> None:
        sold = property_repo.save(Property(title="Sold", agent_id=uuid4(), is_active=False))
        response = client.post(f"/api/properties/{sold.id}/views")
        assert response.status_code == 404


class TestSessionLifecycle:
    def test_start_heartbeat_end(
        self,
        client: TestClient,
        listing: Property,
        session_repo: SQLiteSessionRepo,
        clock: FixedClock,
    ) -> None:
        start = client.post(
            track_url(listing),
            json={"sessionId": "sess-1"},
            headers={"user-agent": "pytest-browser", "cf-connecting-ip": "203.0.113.5"},
        )
        assert start.status_code == 200
        assert start.json()["started"] is True

        clock.advance(30)
        beat = client.put(
            track_url(listing),
            json={
                "sessionId": "sess-1",
                "activeTime": 25,
                "scrollDepth": 60,
                "events": [{"type": "click_photo", "timestamp": 1718452800000}],
            },
        )
        assert beat.status_code == 200
        assert beat.json()["updated"] is True

        clock.advance(10)
        end = client.delete(
            track_url(listing),
            params={"sessionId": "sess-1", "timeSpent": 40, "activeTime": 28, "scrollDepth": 75},
        )
        assert end.status_code == 200
        assert end.json() == {
            "success": True,
            "session_id": "sess-1",
            "ended": True,
            "total_time": 40,
            "already_ended": False,
        }

        row = session_repo.get_by_session_id("sess-1")
        assert row.viewer_ip == "203.0.113.5"
        assert row.user_agent == "pytest-browser"
        assert (row.time_spent, row.active_time, row.scroll_depth) == (40, 28, 75)
        assert [e.type for e in row.events] == ["click_photo"]

    def test_end_twice_is_write_once(
        self, client: TestClient, listing: Property, session_repo: SQLiteSessionRepo
    ) -> None:
        client.post(track_url(listing), json={"sessionId": "s"})
        client.delete(track_url(listing), params={"sessionId": "s", "timeSpent": 50})

        again = client.delete(track_url(listing), params={"sessionId": "s", "timeSpent": 500})

        assert again.status_code == 200
        assert again.json()["already_ended"] is True
        assert again.json()["total_time"] == 50
        assert session_repo.get_by_session_id("s").time_spent == 50

    def test_zero_time_inferred(
        self, client: TestClient, listing: Property, clock: FixedClock
    ) -> None:
        client.post(track_url(listing), json={"session_id": "z"})
        clock.advance(42)
        client.put(track_url(listing), json={"session_id": "z"})
        clock.advance(100)

        end = client.delete(track_url(listing), params={"sessionId": "z", "timeSpent": 0})

        assert end.json()["total_time"] == 42

    def test_missing_session_id(self, client: TestClient, listing: Property) -> None:
        response = client.post(track_url(listing), json={})
        assert response.status_code == 400
        assert response.json()["detail"][0]["code"] == "INVALID_SESSION_ID"

    def test_bad_scroll_depth(self, client: TestClient, listing: Property) -> None:
        client.post(track_url(listing), json={"sessionId": "s"})
        response = client.put(track_url(listing), json={"sessionId": "s", "scrollDepth": 150})
        assert response.status_code == 400
        assert response.json()["detail"][0]["field"] == "scroll_depth"

    def test_negative_time(self, client: TestClient, listing: Property) -> None:
        client.post(track_url(listing), json={"sessionId": "s"})
        response = client.delete(track_url(listing), params={"sessionId": "s", "timeSpent": -3})
        assert response.status_code == 400

    @pytest.mark.parametrize("value", ["inf", "-inf", "nan"])
    def test_non_finite_end_time(self, client: TestClient, listing: Property, value: str) -> None:
        client.post(track_url(listing), json={"sessionId": "s"})
        response = client.delete(track_url(listing), params={"sessionId": "s", "timeSpent": value})
        assert response.status_code == 400
        assert response.json()["detail"][0]["code"] == "INVALID_TIME"

    def test_overflowing_heartbeat_time(self, client: TestClient, listing: Property) -> None:
        client.post(track_url(listing), json={"sessionId": "s"})
        response = client.put(
            track_url(listing),
            content='{"sessionId": "s", "activeTime": 1e400}',
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["detail"][0]["field"] == "active_time"

    def test_unknown_session(self, client: TestClient, listing: Property) -> None:
        response = client.put(track_url(listing), json={"sessionId": "ghost"})
        assert response.status_code == 404

    def test_unknown_property(self, client: TestClient) -> None:
        response = client.post(f"/api/properties/{uuid4()}/track-time", json={"sessionId": "s"})
        assert response.status_code == 404
