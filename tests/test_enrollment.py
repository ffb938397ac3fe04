"""Tests for identity, enrollment and the re-enrollment schedule."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from volumio_bridge.lib.enrollment import (
    EnrollmentManager,
    host_from_system_info,
    parse_schedule,
    seconds_until,
)
from volumio_bridge.lib.errors import TransportError, ValidationError


@pytest.fixture
def manager(client):
    return EnrollmentManager(client, 39501, callback_host="10.0.0.2")


class TestParseSchedule:
    @pytest.mark.parametrize("value,hour", [
        ("12 AM", 0),
        ("1 AM", 1),
        ("3 AM", 3),
        ("11 AM", 11),
        ("12 PM", 12),
        ("2 PM", 14),
        ("11 PM", 23),
    ])
    def test_twelve_hour_to_hour_of_day(self, value, hour):
        assert parse_schedule(value) == hour

    def test_no_means_off(self):
        assert parse_schedule("No") is None

    @pytest.mark.parametrize("value", ["13 AM", "0 PM", "3AM", "3 am", "noon", "", "3 AM PM"])
    def test_invalid_values_rejected(self, value):
        with pytest.raises(ValidationError):
            parse_schedule(value)


class TestSecondsUntil:
    def test_later_today(self):
        now = datetime(2026, 10, 16, 4, 30)
        assert seconds_until(5, now) == 1800

    def test_rolls_over_to_tomorrow(self):
        now = datetime(2026, 10, 16, 4, 30)
        assert seconds_until(4, now) == 23.5 * 3600

    def test_exactly_on_the_hour_waits_a_day(self):
        now = datetime(2026, 10, 16, 5, 0)
        assert seconds_until(5, now) == 24 * 3600


class TestSchedule:
    @pytest.mark.asyncio
    async def test_no_cancels_existing_trigger(self, manager):
        manager.schedule("3 AM")
        assert manager.schedule_active
        task = manager._schedule_task

        manager.schedule("No")
        await asyncio.sleep(0)

        assert not manager.schedule_active
        assert manager.scheduled_hour is None
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_new_schedule_replaces_previous(self, manager):
        manager.schedule("2 PM")
        first = manager._schedule_task

        manager.schedule("5 AM")
        await asyncio.sleep(0)

        assert first.cancelled()
        assert manager.schedule_active
        assert manager.scheduled_hour == 5
        manager.cancel_schedule()

    @pytest.mark.asyncio
    async def test_invalid_value_keeps_current_trigger(self, manager):
        manager.schedule("3 AM")

        with pytest.raises(ValidationError):
            manager.schedule("25 o'clock")

        assert manager.schedule_active
        assert manager.scheduled_hour == 3
        manager.cancel_schedule()

    @pytest.mark.asyncio
    async def test_trigger_runs_enrollment(self, client):
        on_trigger = AsyncMock()
        manager = EnrollmentManager(client, 39501, "10.0.0.2", on_trigger=on_trigger)

        with patch("volumio_bridge.lib.enrollment.seconds_until", return_value=0):
            manager.schedule("4 AM")
            for _ in range(5):
                await asyncio.sleep(0)
            manager.cancel_schedule()

        on_trigger.assert_awaited()

    @pytest.mark.asyncio
    async def test_trigger_failure_keeps_schedule_alive(self, client):
        on_trigger = AsyncMock(side_effect=TransportError("offline"))
        manager = EnrollmentManager(client, 39501, "10.0.0.2", on_trigger=on_trigger)

        with patch("volumio_bridge.lib.enrollment.seconds_until", return_value=0):
            manager.schedule("4 AM")
            for _ in range(5):
                await asyncio.sleep(0)
            assert manager.schedule_active
            manager.cancel_schedule()

        assert on_trigger.await_count >= 2


class TestIdentity:
    def test_host_extracted_from_system_info(self):
        assert host_from_system_info({"host": "http://192.168.1.20"}) == "192.168.1.20"
        assert host_from_system_info({"host": "http://volumio.local:3000/"}) == "volumio.local"

    def test_missing_host_is_transport_error(self):
        with pytest.raises(TransportError):
            host_from_system_info({"name": "volumio"})

    @pytest.mark.asyncio
    async def test_identity_set_once(self, manager, client):
        client.api_get.return_value = {"host": "http://192.168.1.20"}

        with patch("volumio_bridge.lib.enrollment.get_mac_address",
                   return_value="B8:27:EB:12:34:56") as get_mac:
            assert await manager.set_identity() is True
            assert await manager.set_identity() is False

        assert manager.identity == "b8:27:eb:12:34:56"
        client.api_get.assert_awaited_with("getSystemInfo")
        get_mac.assert_called_with(ip="192.168.1.20")

    @pytest.mark.asyncio
    async def test_identity_follows_changed_mac(self, manager, client):
        client.api_get.return_value = {"host": "http://192.168.1.20"}

        with patch("volumio_bridge.lib.enrollment.get_mac_address",
                   side_effect=["aa:aa:aa:aa:aa:aa", "bb:bb:bb:bb:bb:bb"]):
            await manager.set_identity()
            assert await manager.set_identity() is True

        assert manager.identity == "bb:bb:bb:bb:bb:bb"

    @pytest.mark.asyncio
    async def test_hostname_resolved_by_name(self, manager, client):
        client.api_get.return_value = {"host": "http://volumio.local"}

        with patch("volumio_bridge.lib.enrollment.get_mac_address",
                   return_value="aa:bb:cc:dd:ee:ff") as get_mac:
            await manager.set_identity()

        get_mac.assert_called_once_with(hostname="volumio.local")

    @pytest.mark.asyncio
    async def test_unresolved_mac_leaves_identity_alone(self, manager, client):
        client.api_get.return_value = {"host": "http://192.168.1.20"}

        with patch("volumio_bridge.lib.enrollment.get_mac_address", return_value=None):
            with pytest.raises(TransportError):
                await manager.set_identity()

        assert manager.identity is None


class TestEnroll:
    @pytest.mark.asyncio
    async def test_posts_callback_url(self, manager, client):
        assert await manager.enroll() is True

        client.post.assert_awaited_once_with(
            "/api/v1/pushNotificationUrls", {"url": "http://10.0.0.2:39501"})

    @pytest.mark.asyncio
    async def test_callback_host_detected_when_unset(self, client):
        manager = EnrollmentManager(client, 40000)

        with patch("volumio_bridge.lib.enrollment.local_address_towards",
                   return_value="10.0.0.9") as detect:
            await manager.enroll()

        detect.assert_called_once_with("volumio.local")
        client.post.assert_awaited_once_with(
            "/api/v1/pushNotificationUrls", {"url": "http://10.0.0.9:40000"})

    @pytest.mark.asyncio
    async def test_failure_logged_not_retried(self, manager, client, caplog):
        client.post.side_effect = TransportError("connection refused")

        assert await manager.enroll() is False

        assert client.post.await_count == 1
        assert "enrollment failed" in caplog.text


class TestListPlaylists:
    @pytest.mark.asyncio
    async def test_returns_names(self, manager, client):
        client.api_get.return_value = ["Rock", "Jazz"]

        assert await manager.list_playlists() == ["Rock", "Jazz"]
        client.api_get.assert_awaited_once_with("listplaylists")

    @pytest.mark.asyncio
    async def test_non_list_reply_is_transport_error(self, manager, client):
        client.api_get.return_value = {"error": "no playlists"}

        with pytest.raises(TransportError):
            await manager.list_playlists()
