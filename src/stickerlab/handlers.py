"""Chat command handlers: the glue between the dispatcher, encoder and transport.

Commands (first word of the message text, case-insensitive):

- ``/sticker`` or ``/s``: convert the attached or quoted image/GIF/video or
  existing sticker into a sticker and send it back as a sticker message.
- ``/toimg``: convert the attached or quoted sticker into a PNG image.
- ``/stats``: reply with the processed-message count and uptime.
- ``/help``: list the commands.

Anything else is ignored.
"""

from __future__ import annotations

import logging

from .config import DEFAULT_STICKER_CONFIG, DispatcherConfig, EngineConfig, StickerConfig
from .dispatcher import BotStats, Dispatcher
from .encoder import StickerEncoder
from .error_handling import (
    GENERIC_USER_MESSAGE,
    DownloadError,
    SendError,
    StickerLabError,
    UploadError,
    error_context,
    log_warning_with_context,
    user_message_for,
)
from .formats import MediaBlob
from .messaging import (
    ChatEvent,
    MediaCategory,
    MediaReference,
    MessagingClient,
    media_reply,
    text_reply,
)
from .models import ConversionRequest, ConversionResult, TargetKind

logger = logging.getLogger(__name__)

STICKER_COMMANDS = frozenset({"/sticker", "/s"})
TO_IMAGE_COMMAND = "/toimg"
STATS_COMMAND = "/stats"
HELP_COMMAND = "/help"

MISSING_IMAGE_REPLY = "Reply to an image first."
MISSING_STICKER_REPLY = "Reply to a sticker first."
TO_IMAGE_CAPTION = "Converted from sticker"
HELP_TEXT = (
    "Commands:\n"
    "/sticker or /s - image, GIF or video to sticker\n"
    "/toimg - sticker to image\n"
    "/stats - bot statistics\n"
    "/help - this menu"
)

_STICKER_SOURCES = (
    MediaCategory.IMAGE,
    MediaCategory.VIDEO,
    MediaCategory.DOCUMENT,
    MediaCategory.STICKER,
)
_IMAGE_SOURCES = (MediaCategory.STICKER,)


def parse_command(text: str) -> str | None:
    """Return the lower-cased command word of *text*, or None if it is not a command."""
    words = text.strip().split()
    if not words or not words[0].startswith("/"):
        return None
    return words[0].lower()


def select_media(
    event: ChatEvent, categories: tuple[MediaCategory, ...]
) -> MediaReference | None:
    """Media attached to the message itself wins over media in the quoted message."""
    for ref in (event.media, event.quoted_media):
        if ref is not None and ref.kind in categories:
            return ref
    return None


def format_uptime(seconds: float) -> str:
    total = int(seconds)
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h {minutes:02d}m {secs:02d}s"
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    return f"{minutes}m {secs:02d}s"


class StickerBot:
    """Handler invoked by the dispatcher for every accepted chat event."""

    def __init__(
        self,
        client: MessagingClient,
        encoder: StickerEncoder | None = None,
        stats: BotStats | None = None,
        config: StickerConfig | None = None,
    ):
        self.client = client
        self.config = config or DEFAULT_STICKER_CONFIG
        self.encoder = encoder or StickerEncoder(config=self.config)
        self.stats = stats or BotStats()

    def __call__(self, event: ChatEvent) -> None:
        self.handle(event)

    def handle(self, event: ChatEvent) -> None:
        command = parse_command(event.text)
        if command is None:
            return

        logger.info(
            f"💬 {command} from {event.sender} ({'group' if event.is_group else 'DM'})"
        )
        if command in STICKER_COMMANDS:
            self._run_conversion(event, TargetKind.ANIMATED_STICKER)
        elif command == TO_IMAGE_COMMAND:
            self._run_conversion(event, TargetKind.IMAGE)
        elif command == STATS_COMMAND:
            self._reply(event, self.stats_text())
        elif command == HELP_COMMAND:
            self._reply(event, HELP_TEXT)

    def stats_text(self) -> str:
        snapshot = self.stats.snapshot()
        return (
            "Bot stats\n"
            f"Processed messages: {snapshot.processed_messages}\n"
            f"Uptime: {format_uptime(snapshot.uptime_seconds)}"
        )

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def _run_conversion(self, event: ChatEvent, target: TargetKind) -> None:
        if target is TargetKind.IMAGE:
            ref = select_media(event, _IMAGE_SOURCES)
            missing_reply = MISSING_STICKER_REPLY
        else:
            ref = select_media(event, _STICKER_SOURCES)
            missing_reply = MISSING_IMAGE_REPLY

        if ref is None:
            self._reply(event, missing_reply)
            return

        context = {"chat": event.chat_id, "message": event.message_id, "target": target.value}
        try:
            with error_context("download media", DownloadError, context=context, logger=logger):
                data = self.client.download(ref)

            source = MediaBlob.from_bytes(data, ref.mimetype)
            request = ConversionRequest(
                source=source, target=target, constraints=self.config.constraints()
            )
            result = self.encoder.convert(request)
            self._send_result(event, result, target)
        except StickerLabError as e:
            log_warning_with_context(
                f"{target.value} conversion failed: {e}", context, logger=logger
            )
            self._reply(event, user_message_for(e))
        except Exception:
            logger.exception(f"❌ Unexpected failure converting {event.message_id}")
            self._reply(event, GENERIC_USER_MESSAGE)

    def _send_result(self, event: ChatEvent, result: ConversionResult, target: TargetKind) -> None:
        if target.is_sticker:
            category, caption = MediaCategory.STICKER, None
        else:
            category, caption = MediaCategory.IMAGE, TO_IMAGE_CAPTION

        context = {"chat": event.chat_id, "bytes": result.size, "tool": result.tool}
        with error_context(f"upload {category.value}", UploadError, context=context, logger=logger):
            handle = self.client.upload(result.data, category)

        message = media_reply(
            event.chat_id,
            handle,
            category,
            result.mimetype,
            caption=caption,
            width=result.width,
            height=result.height,
            is_animated=result.is_animated,
            reply_to=event.reply_context,
        )
        with error_context(f"send {category.value}", SendError, context=context, logger=logger):
            self.client.send(message)
        logger.info(f"✅ Sent {category.value} ({result.size} bytes via {result.tool}) to {event.chat_id}")

    def _reply(self, event: ChatEvent, text: str) -> None:
        try:
            self.client.send(text_reply(event.chat_id, text, reply_to=event.reply_context))
        except Exception as e:
            log_warning_with_context(
                f"Failed to send reply: {e}", {"chat": event.chat_id}, logger=logger
            )


def build_bot(
    client: MessagingClient,
    encoder: StickerEncoder | None = None,
    sticker_config: StickerConfig | None = None,
    dispatcher_config: DispatcherConfig | None = None,
    engine_config: EngineConfig | None = None,
) -> Dispatcher:
    """Wire a ``StickerBot`` into a ``Dispatcher`` sharing one ``BotStats``.

    Without an explicit *encoder* one is built from *sticker_config* and
    *engine_config*.
    """
    stats = BotStats()
    if encoder is None:
        encoder = StickerEncoder(config=sticker_config, engine_config=engine_config)
    bot = StickerBot(client, encoder=encoder, stats=stats, config=sticker_config)
    return Dispatcher(bot, client=client, config=dispatcher_config, stats=stats)
