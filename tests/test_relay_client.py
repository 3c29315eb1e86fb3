"""
Tests for the operator CLI client
"""
import sys
import os
from unittest.mock import Mock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from relay_client import KickRelayClient


def fake_response(status_code, payload):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


class TestKickRelayClient:

    @patch("relay_client.requests.post")
    def test_start_posts_camel_case_body(self, mock_post):
        mock_post.return_value = fake_response(200, {"success": True, "message": "Stream started"})
        client = KickRelayClient("http://relay.local:3000")

        code, result = client.start("shroud", "sk_abc", "720p")

        assert code == 200
        assert result["message"] == "Stream started"
        mock_post.assert_called_once_with(
            "http://relay.local:3000/api/stream",
            json={"twitchUsername": "shroud", "kickStreamKey": "sk_abc", "quality": "720p"},
        )

    @patch("relay_client.requests.delete")
    def test_stop_returns_error_detail(self, mock_delete):
        mock_delete.return_value = fake_response(404, {"detail": "No active stream found"})

        code, result = KickRelayClient().stop()

        assert code == 404
        assert result["detail"] == "No active stream found"

    def test_format_uptime(self):
        client = KickRelayClient()
        assert client.format_uptime(0) == "00:00:00"
        assert client.format_uptime(3725.9) == "01:02:05"
        assert client.format_uptime(None) == "00:00:00"

    @patch("relay_client.requests.get")
    def test_print_status_active(self, mock_get, capsys):
        mock_get.return_value = fake_response(200, {
            "active": True,
            "sessionInfo": {
                "channel": "shroud",
                "quality": "720p60",
                "startedAt": "2024-01-01T00:00:00+00:00",
                "uptimeSeconds": 65,
            },
            "latestMetrics": {"fps": "60", "bitrate": "6000kbits/s", "speed": "1x", "time": "00:01:05.00"},
            "recentLogs": ["Starting stream for shroud...", "Source: https://example.net/a.m3u8"],
        })

        KickRelayClient().print_status()
        out = capsys.readouterr().out

        assert "Channel: shroud (720p60)" in out
        assert "Uptime: 00:01:05" in out
        assert "Bitrate: 6000kbits/s" in out
        assert "Starting stream for shroud..." in out

    @patch("relay_client.requests.get")
    def test_print_status_inactive(self, mock_get, capsys):
        mock_get.return_value = fake_response(200, {
            "active": False, "sessionInfo": None, "latestMetrics": None, "recentLogs": []})

        KickRelayClient().print_status()

        assert "Relay: inactive" in capsys.readouterr().out
