"""Message delivery with formatting fallback and retry."""

import asyncio
import html
import logging
import re

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

from cursor_bot.services.tools.message_tools import Button

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
RETRY_BACKOFF = 1.0  # seconds, multiplied by the attempt number

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*|\*(.+?)\*", re.DOTALL)
_ITALIC_RE = re.compile(r"(?<!\w)_(.+?)_(?!\w)", re.DOTALL)
_CODE_RE = re.compile(r"`([^`]+)`")


def markdown_to_html(text: str) -> str:
    """Convert the basic Markdown the model writes into Telegram HTML."""
    out = html.escape(text, quote=False)
    out = _CODE_RE.sub(r"<code>\1</code>", out)
    out = _BOLD_RE.sub(lambda m: f"<b>{m.group(1) or m.group(2)}</b>", out)
    out = _ITALIC_RE.sub(r"<i>\1</i>", out)
    return out


def split_message(text: str, max_len: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split text into chunks that fit Telegram's message size limit."""
    if len(text) <= max_len:
        return [text]
    chunks = []
    while text:
        if len(text) <= max_len:
            chunks.append(text)
            break
        split_at = text.rfind("\n", 0, max_len)
        if split_at < max_len // 2:
            split_at = max_len
        chunks.append(text[:split_at])
        text = text[split_at:].lstrip("\n")
    return chunks


def build_keyboard(buttons: list[Button]) -> InlineKeyboardMarkup | None:
    """One row of URL buttons. Telegram only accepts http(s) links."""
    row = [
        InlineKeyboardButton(b.text, url=b.url)
        for b in buttons
        if b.url.startswith(("http://", "https://"))
    ]
    if not row:
        return None
    return InlineKeyboardMarkup([row])


def _is_parse_error(error: TelegramError) -> bool:
    return isinstance(error, BadRequest) and "can't parse entities" in error.message.lower()


async def _send_chunk(
    bot: Bot,
    chat_id: int,
    text: str,
    reply_markup: InlineKeyboardMarkup | None,
    parse_mode: str | None,
    max_retries: int,
) -> None:
    for attempt in range(1, max_retries + 1):
        try:
            await bot.send_message(chat_id=chat_id, text=text, parse_mode=parse_mode, reply_markup=reply_markup)
            return
        except TelegramError as e:
            last_error = e
            logger.error(f"Send attempt {attempt}/{max_retries} to chat {chat_id} failed: {e}")

            if _is_parse_error(e):
                if parse_mode in (ParseMode.MARKDOWN, ParseMode.MARKDOWN_V2):
                    logger.info("Markdown parsing failed, trying HTML")
                    try:
                        await bot.send_message(
                            chat_id=chat_id, text=markdown_to_html(text),
                            parse_mode=ParseMode.HTML, reply_markup=reply_markup,
                        )
                        return
                    except TelegramError as html_error:
                        last_error = html_error
                        logger.error(f"HTML also failed: {html_error}")

                logger.info("Trying plain text")
                try:
                    await bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup)
                    return
                except TelegramError as plain_error:
                    last_error = plain_error
                    logger.error(f"Plain text also failed: {plain_error}")

            if attempt == max_retries:
                if last_error is e:
                    raise
                raise last_error from e

            await asyncio.sleep(RETRY_BACKOFF * attempt)


async def safe_send_message(
    bot: Bot,
    chat_id: int,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
    parse_mode: str | None = ParseMode.MARKDOWN,
    max_retries: int = 3,
) -> None:
    """Send text, degrading Markdown -> HTML -> plain text on parse errors.

    Other failures are retried with a linear backoff; the last error is raised.
    Long texts are split and the keyboard is attached to the final chunk.
    """
    chunks = split_message(text)
    for i, chunk in enumerate(chunks):
        markup = reply_markup if i == len(chunks) - 1 else None
        await _send_chunk(bot, chat_id, chunk, markup, parse_mode, max_retries)
