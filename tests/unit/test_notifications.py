"""Unit tests for the Telegram notifier."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from flashlever.config import TelegramConfig
from flashlever.notifications.telegram import (
    MAX_MESSAGE_LENGTH,
    TRUNCATION_MARKER,
    TelegramNotifier,
    render_message,
)


@pytest.fixture()
def telegram_notifier() -> TelegramNotifier:
    return TelegramNotifier(
        TelegramConfig(
            enabled=True,
            alert_bot_token="alert-tok",
            log_bot_token="log-tok",
            chat_id="12345",
        )
    )


@pytest.fixture()
def telegram_notifier_unconfigured() -> TelegramNotifier:
    return TelegramNotifier(
        TelegramConfig(enabled=True, alert_bot_token="", log_bot_token="", chat_id="")
    )


def _mock_session(status: int) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_send_alert_success(self, telegram_notifier: TelegramNotifier) -> None:
        mock_session = _mock_session(200)

        with patch("flashlever.notifications.telegram.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashlever.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_alert("leverage 4.2x", subject="Above <max>")

        assert result is True
        url = mock_session.post.call_args[0][0]
        payload = mock_session.post.call_args.kwargs["json"]
        assert "botalert-tok" in url
        assert payload["text"].startswith("<b>Above &lt;max&gt;</b>")
        assert payload["disable_notification"] is False

    @pytest.mark.asyncio
    async def test_send_alert_failure(self, telegram_notifier: TelegramNotifier) -> None:
        mock_session = _mock_session(403)

        with patch("flashlever.notifications.telegram.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashlever.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_alert("test alert")

        assert result is False

    @pytest.mark.asyncio
    async def test_send_log_uses_log_bot(self, telegram_notifier: TelegramNotifier) -> None:
        mock_session = _mock_session(200)

        with patch("flashlever.notifications.telegram.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashlever.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_log("tended")

        assert result is True
        assert "botlog-tok" in mock_session.post.call_args[0][0]
        assert mock_session.post.call_args.kwargs["json"]["disable_notification"] is True

    @pytest.mark.asyncio
    async def test_unconfigured_returns_false(
        self, telegram_notifier_unconfigured: TelegramNotifier
    ) -> None:
        assert await telegram_notifier_unconfigured.send_alert("x") is False
        assert await telegram_notifier_unconfigured.send_log("x") is False

    @pytest.mark.asyncio
    async def test_exception_text_is_escaped(self, telegram_notifier: TelegramNotifier) -> None:
        mock_session = _mock_session(200)

        with patch("flashlever.notifications.telegram.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashlever.notifications.telegram.aiohttp.TCPConnector"):
                await telegram_notifier.send_log("Tend failed: out < min & retry")

        text = mock_session.post.call_args.kwargs["json"]["text"]
        assert text == "Tend failed: out &lt; min &amp; retry"


class TestRenderMessage:
    def test_plain_body(self) -> None:
        assert render_message("Leverage: 3.00x") == "Leverage: 3.00x"

    def test_subject_heading(self) -> None:
        assert render_message("body", subject="📋 Position report") == (
            "<b>📋 Position report</b>\n\nbody"
        )

    def test_long_body_is_truncated(self) -> None:
        text = render_message("a" * 5000, subject="report")
        assert len(text) == MAX_MESSAGE_LENGTH
        assert text.startswith("<b>report</b>")
        assert text.endswith(TRUNCATION_MARKER)

    def test_truncation_keeps_entities_whole(self) -> None:
        text = render_message("&" * 2000)
        assert len(text) <= MAX_MESSAGE_LENGTH
        assert text.endswith("&amp;" + TRUNCATION_MARKER)
