"""Tests for the Telegram message router."""

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image
from telegram.ext import ApplicationHandlerStop

from cursor_bot.bot import handlers
from cursor_bot.bot.handlers import ACCESS_DENIED, CursorBot
from cursor_bot.core.config import Settings
from cursor_bot.services.tools.message_tools import Button, ButtonMessage

BOT_ID = 999


def _png_bytes(width=4, height=3) -> bytearray:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), "red").save(buf, format="PNG")
    return bytearray(buf.getvalue())


def _update(user_id=1, chat_id=1, chat_type="private", text=None, caption=None):
    update = MagicMock()
    update.effective_user.id = user_id
    update.effective_user.username = "alice"
    update.effective_user.first_name = "Alice"
    update.effective_chat.id = chat_id
    update.effective_chat.type = chat_type
    update.effective_chat.title = None
    update.effective_chat.first_name = "Alice"
    message = update.effective_message
    message.text = text
    message.caption = caption
    message.reply_to_message = None
    message.reply_text = AsyncMock()
    return update


def _context():
    context = MagicMock()
    context.bot = AsyncMock()
    context.bot.id = BOT_ID
    context.bot.username = "cursor_task_bot"
    return context


@pytest.fixture
def sent(monkeypatch):
    """Capture safe_send_message calls made by the handlers."""
    send = AsyncMock()
    monkeypatch.setattr(handlers, "safe_send_message", send)
    return send


def _bot(store, cursor, image_cache, **overrides):
    return CursorBot(
        store=store,
        cursor=cursor,
        image_cache=image_cache,
        provider=MagicMock(),
        stt=overrides.pop("stt", None),
        settings=Settings(_env_file=None, **overrides),
    )


async def test_gate_rejects_unknown_user(store, cursor, image_cache):
    bot = _bot(store, cursor, image_cache, allowed_users="42")
    update = _update(user_id=1, chat_id=1)

    with pytest.raises(ApplicationHandlerStop):
        await bot.gate(update, _context())
    update.effective_message.reply_text.assert_awaited_once_with(ACCESS_DENIED)


async def test_gate_allows_listed_chat_and_saves_identity(store, cursor, image_cache):
    bot = _bot(store, cursor, image_cache, allowed_users="42, -100")
    await bot.gate(_update(user_id=1, chat_id=-100, chat_type="group"), _context())


async def test_gate_open_without_allow_list(store, cursor, image_cache):
    bot = _bot(store, cursor, image_cache)
    assert bot.is_allowed(123, 456)


async def test_gate_drops_updates_without_user(store, cursor, image_cache):
    bot = _bot(store, cursor, image_cache)
    update = _update()
    update.effective_user = None
    with pytest.raises(ApplicationHandlerStop):
        await bot.gate(update, _context())


def test_mention_only_in_groups(store, cursor, image_cache):
    bot = _bot(store, cursor, image_cache, mention_only=True)
    context = _context()

    assert bot.should_respond(_update(chat_type="private"), context, "hello")
    assert not bot.should_respond(_update(chat_type="group"), context, "hello")
    assert bot.should_respond(_update(chat_type="group"), context, "@Cursor_Task_Bot hello")

    reply = _update(chat_type="supergroup")
    reply.effective_message.reply_to_message = MagicMock()
    reply.effective_message.reply_to_message.from_user.id = BOT_ID
    assert bot.should_respond(reply, context, "hello")


def test_strip_mention(store, cursor, image_cache):
    bot = _bot(store, cursor, image_cache)
    assert bot.strip_mention("@cursor_task_bot start a task", "cursor_task_bot") == "start a task"
    assert bot.strip_mention("start a task", "cursor_task_bot") == "start a task"


async def test_text_runs_agent_and_logs(store, cursor, image_cache, sent):
    bot = _bot(store, cursor, image_cache)
    agent = MagicMock()
    agent.process_message = AsyncMock(return_value="✅ Done")
    bot.make_agent = MagicMock(return_value=agent)

    await bot.on_text(_update(text="list models"), _context())

    agent.process_message.assert_awaited_once_with("list models")
    assert sent.await_args.args[1:] == (1, "✅ Done")


async def test_text_button_reply_gets_keyboard(store, cursor, image_cache, sent):
    bot = _bot(store, cursor, image_cache)
    agent = MagicMock()
    agent.process_message = AsyncMock(return_value=ButtonMessage(
        text="Task started", buttons=[Button(text="Open", url="https://cursor.com/agents?selectedBcId=bc-1")],
    ))
    bot.make_agent = MagicMock(return_value=agent)

    await bot.on_text(_update(text="start"), _context())

    markup = sent.await_args.kwargs["reply_markup"]
    assert markup.inline_keyboard[0][0].text == "Open"


async def test_group_text_without_mention_is_ignored(store, cursor, image_cache, sent):
    bot = _bot(store, cursor, image_cache, mention_only=True)
    bot.make_agent = MagicMock()

    await bot.on_text(_update(chat_type="group", text="chatter"), _context())

    bot.make_agent.assert_not_called()
    sent.assert_not_awaited()


async def test_photo_without_caption_is_cached(store, cursor, image_cache, sent):
    bot = _bot(store, cursor, image_cache)
    bot.make_agent = MagicMock()
    update = _update(user_id=5, chat_id=6)
    largest = MagicMock()
    largest.get_file = AsyncMock(return_value=MagicMock(download_as_bytearray=AsyncMock(return_value=_png_bytes(8, 6))))
    update.effective_message.photo = [MagicMock(), largest]

    await bot.on_photo(update, _context())

    images = image_cache.read(5, 6)
    assert [(i.width, i.height) for i in images] == [(8, 6)]
    reply = update.effective_message.reply_text.await_args.args[0]
    assert reply.startswith("📸 Image received (1 cached)")
    bot.make_agent.assert_not_called()
    assert store.get_active_tasks() == []


async def test_photo_with_caption_processes_caption(store, cursor, image_cache, sent):
    bot = _bot(store, cursor, image_cache)
    agent = MagicMock()
    agent.process_message = AsyncMock(return_value="ok")
    bot.make_agent = MagicMock(return_value=agent)
    update = _update(caption="make the button blue")
    update.effective_message.photo = [MagicMock(get_file=AsyncMock(return_value=MagicMock(
        download_as_bytearray=AsyncMock(return_value=_png_bytes()),
    )))]

    await bot.on_photo(update, _context())

    assert len(image_cache.read(1, 1)) == 1
    agent.process_message.assert_awaited_once_with("make the button blue")


async def test_voice_without_provider(store, cursor, image_cache):
    bot = _bot(store, cursor, image_cache)
    update = _update()

    await bot.on_voice(update, _context())

    assert "not available" in update.effective_message.reply_text.await_args.args[0]


async def test_voice_transcribes_then_processes(store, cursor, image_cache, sent):
    from cursor_bot.services.voice.base import Transcription

    stt = MagicMock()
    stt.transcribe = AsyncMock(return_value=Transcription(text="stop task bc-1", tldr="Stop bc-1"))
    bot = _bot(store, cursor, image_cache, stt=stt)
    agent = MagicMock()
    agent.process_message = AsyncMock(return_value="Stopped")
    bot.make_agent = MagicMock(return_value=agent)

    update = _update()
    update.effective_message.voice.mime_type = "audio/ogg"
    update.effective_message.voice.get_file = AsyncMock(return_value=MagicMock(
        download_as_bytearray=AsyncMock(return_value=bytearray(b"OggS")),
    ))

    await bot.on_voice(update, _context())

    stt.transcribe.assert_awaited_once_with(b"OggS", "audio/ogg")
    agent.process_message.assert_awaited_once_with("stop task bc-1")
    transcript_reply = sent.await_args_list[0].args[2]
    assert "stop task bc-1" in transcript_reply
    assert "Stop bc-1" in transcript_reply


async def test_tasks_command_lists_active(store, cursor, image_cache, sent):
    store.create_task(1, 1, "bc-1", "https://github.com/a/b", "add tests", "RUNNING")
    store.create_task(1, 1, "bc-2", "https://github.com/a/b", "old", "FINISHED")
    bot = _bot(store, cursor, image_cache)

    await bot.cmd_tasks(_update(), _context())

    text = sent.await_args.args[2]
    assert "bc-1" in text
    assert "bc-2" not in text


async def test_clear_command(store, cursor, image_cache):
    store.save_message(1, 1, "hi", "hello")
    bot = _bot(store, cursor, image_cache)
    update = _update()

    await bot.cmd_clear(update, _context())

    update.effective_message.reply_text.assert_awaited_once_with("History cleared successfully")


async def test_models_command(store, cursor, image_cache, sent):
    bot = _bot(store, cursor, image_cache)
    await bot.cmd_models(_update(), _context())
    assert "gpt-5" in sent.await_args.args[2]


async def test_notify_requires_application(store, cursor, image_cache):
    bot = _bot(store, cursor, image_cache)
    with pytest.raises(RuntimeError):
        await bot.notify(1, "x", [])


def test_build_application_registers_handlers(store, cursor, image_cache):
    bot = _bot(store, cursor, image_cache, bot_token="123456:ABCDEF")
    app = bot.build_application()
    assert bot.application is app
    assert -1 in app.handlers
    assert len(app.handlers[0]) == 8
