"""Tests for Telegram message delivery."""

from unittest.mock import AsyncMock

import pytest
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

from cursor_bot.bot import delivery
from cursor_bot.bot.delivery import (
    build_keyboard,
    markdown_to_html,
    safe_send_message,
    split_message,
)
from cursor_bot.services.tools.message_tools import Button

PARSE_ERROR = "Can't parse entities: can't find end of the entity starting at byte offset 3"


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(delivery, "RETRY_BACKOFF", 0)


async def test_sends_markdown_first():
    bot = AsyncMock()
    await safe_send_message(bot, 1, "*hi*")

    bot.send_message.assert_awaited_once_with(chat_id=1, text="*hi*", parse_mode=ParseMode.MARKDOWN, reply_markup=None)


async def test_falls_back_to_html():
    bot = AsyncMock()
    bot.send_message.side_effect = [BadRequest(PARSE_ERROR), None]

    await safe_send_message(bot, 1, "**bold** <tag>")

    assert bot.send_message.await_count == 2
    second = bot.send_message.await_args_list[1].kwargs
    assert second["parse_mode"] == ParseMode.HTML
    assert second["text"] == "<b>bold</b> &lt;tag&gt;"


async def test_falls_back_to_plain_text():
    bot = AsyncMock()
    bot.send_message.side_effect = [BadRequest(PARSE_ERROR), BadRequest(PARSE_ERROR), None]

    await safe_send_message(bot, 1, "*broken")

    assert bot.send_message.await_count == 3
    last = bot.send_message.await_args_list[2].kwargs
    assert "parse_mode" not in last
    assert last["text"] == "*broken"


async def test_retries_then_raises():
    bot = AsyncMock()
    bot.send_message.side_effect = TelegramError("network down")

    with pytest.raises(TelegramError):
        await safe_send_message(bot, 1, "hello", max_retries=3)

    assert bot.send_message.await_count == 3


async def test_retry_recovers():
    bot = AsyncMock()
    bot.send_message.side_effect = [TelegramError("flaky"), None]

    await safe_send_message(bot, 1, "hello")
    assert bot.send_message.await_count == 2


async def test_long_text_split_keyboard_on_last_chunk():
    bot = AsyncMock()
    markup = build_keyboard([Button(text="Open", url="https://x.test")])

    await safe_send_message(bot, 1, "a" * 5000, reply_markup=markup)

    calls = bot.send_message.await_args_list
    assert len(calls) == 2
    assert calls[0].kwargs["reply_markup"] is None
    assert calls[1].kwargs["reply_markup"] is markup


def test_build_keyboard_filters_non_http():
    markup = build_keyboard([
        Button(text="Web", url="https://cursor.com/agents?selectedBcId=bc-1"),
        Button(text="Deeplink", url="cursor://open"),
    ])
    row = markup.inline_keyboard[0]
    assert [b.text for b in row] == ["Web"]


def test_build_keyboard_empty():
    assert build_keyboard([Button(text="x", url="ftp://nope")]) is None
    assert build_keyboard([]) is None


def test_markdown_to_html():
    assert markdown_to_html("*a* _b_ `c<d>`") == "<b>a</b> <i>b</i> <code>c&lt;d&gt;</code>"


def test_split_message_prefers_newlines():
    text = "x" * 3000 + "\n" + "y" * 3000
    chunks = split_message(text)
    assert chunks == ["x" * 3000, "y" * 3000]


async def test_final_failure_is_the_plain_text_error():
    bot = AsyncMock()
    plain_error = TelegramError("plain text rejected")
    bot.send_message.side_effect = [BadRequest(PARSE_ERROR), BadRequest(PARSE_ERROR), plain_error]

    with pytest.raises(TelegramError) as exc_info:
        await safe_send_message(bot, 1, "*broken", max_retries=1)

    assert exc_info.value is plain_error
