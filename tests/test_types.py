"""Tests for configuration types."""

import pytest

from pme_notify.types import ResumeMode, SessionConfig


class TestSessionConfig:
    def test_default_url(self):
        assert SessionConfig().url == "ws://localhost:8080/ws/notifications"

    def test_secure_url(self):
        config = SessionConfig(host="pme.example.com", secure=True)
        assert config.url == "wss://pme.example.com/ws/notifications"

    @pytest.mark.parametrize(
        "page,expected",
        [
            ("http://pme.local:8080/index.html", "ws://pme.local:8080/ws/notifications"),
            ("https://pme.example.com/", "wss://pme.example.com/ws/notifications"),
        ],
    )
    def test_from_page_url(self, page, expected):
        assert SessionConfig.from_page_url(page).url == expected

    def test_from_page_url_forwards_options(self):
        config = SessionConfig.from_page_url(
            "https://pme.example.com/", resume_mode=ResumeMode.FROM_CURSOR
        )
        assert config.resume_mode == ResumeMode.FROM_CURSOR

    def test_from_page_url_requires_host(self):
        with pytest.raises(ValueError):
            SessionConfig.from_page_url("notifications")

    def test_defaults(self):
        config = SessionConfig()
        assert config.resume_mode == ResumeMode.REPLAY_ALL
        assert config.deduplicate is False
        assert config.storage_key == "ws_last_seq"
        assert config.reconnect.initial_delay == 1.0
        assert config.reconnect.max_delay == 30.0
