"""
Unit Tests for Expo Push Notifier
"""
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from callqueue.infrastructure.notifications.expo_push import EXPO_PUSH_URL, ExpoPushNotifier


def _supabase(tokens):
    supabase = MagicMock()
    supabase.table.return_value.select.return_value.execute.return_value.data = [
        {"push_token": token} for token in tokens
    ]
    return supabase


def _http(status_code=200):
    http = AsyncMock()
    http.post.return_value = MagicMock(status_code=status_code, text="response body")
    return http


class TestExpoPushNotifier:
    """Tests for ExpoPushNotifier.notify_missed_call"""

    @pytest.mark.asyncio
    async def test_sends_to_every_device(self):
        supabase = _supabase(["ExponentPushToken[a]", "ExponentPushToken[b]", None])
        http = _http()
        notifier = ExpoPushNotifier(supabase, http_client=http)

        result = await notifier.notify_missed_call("Jan Kowalski", "123456789", client_id="c1", record_id="r1")

        assert result.success
        assert result.sent == 2
        supabase.table.assert_called_with("devices")
        http.post.assert_awaited_once()
        args, kwargs = http.post.call_args
        assert args[0] == EXPO_PUSH_URL
        messages = kwargs["json"]
        assert [m["to"] for m in messages] == ["ExponentPushToken[a]", "ExponentPushToken[b]"]
        assert messages[0]["title"] == "Missed call"
        assert messages[0]["body"] == "From: Jan Kowalski"
        assert messages[0]["data"] == {
            "type": "missed_call",
            "clientId": "c1",
            "callLogId": "r1",
            "phone": "123456789",
        }

    @pytest.mark.asyncio
    async def test_unknown_caller_shows_phone(self):
        http = _http()
        notifier = ExpoPushNotifier(_supabase(["t"]), http_client=http)

        await notifier.notify_missed_call(None, "123456789")

        assert http.post.call_args.kwargs["json"][0]["body"] == "From: 123456789"

    @pytest.mark.asyncio
    async def test_no_devices(self):
        http = _http()
        notifier = ExpoPushNotifier(_supabase([]), http_client=http)

        result = await notifier.notify_missed_call("Jan", "123456789")

        assert result.success
        assert result.sent == 0
        http.post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled(self):
        supabase = _supabase(["t"])
        notifier = ExpoPushNotifier(supabase, http_client=_http(), enabled=False)

        result = await notifier.notify_missed_call("Jan", "123456789")

        assert result.success
        supabase.table.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_by_push_service(self):
        notifier = ExpoPushNotifier(_supabase(["t"]), http_client=_http(status_code=500))

        result = await notifier.notify_missed_call("Jan", "123456789")

        assert not result.success
        assert result.error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        http = AsyncMock()
        http.post.side_effect = httpx.ConnectError("connection refused")
        notifier = ExpoPushNotifier(_supabase(["t"]), http_client=http)

        result = await notifier.notify_missed_call("Jan", "123456789")

        assert not result.success
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_device_read_failure(self):
        supabase = MagicMock()
        supabase.table.return_value.select.return_value.execute.side_effect = Exception("db down")
        notifier = ExpoPushNotifier(supabase, http_client=_http())

        result = await notifier.notify_missed_call("Jan", "123456789")

        assert not result.success
        assert result.error == "db down"
