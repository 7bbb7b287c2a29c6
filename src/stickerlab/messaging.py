"""Boundary types for the chat platform client.

StickerLab never talks to a chat network itself.  A ``MessagingClient``
implementation (the transport) delivers ``ChatEvent`` objects to the
dispatcher and performs downloads, uploads and sends on its behalf; it must
be safe to call from several worker threads at once.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class MediaCategory(Enum):
    """Upload/download category; decides how the platform encrypts and files media."""

    IMAGE = "image"
    VIDEO = "video"
    STICKER = "sticker"
    DOCUMENT = "document"


@dataclass(frozen=True)
class MediaReference:
    """Pointer to media attached to an inbound message."""

    kind: MediaCategory
    mimetype: str
    direct_path: str
    file_length: int | None = None


@dataclass(frozen=True)
class UploadHandle:
    """What the platform returns for an upload; echoed back in the outgoing message."""

    url: str
    direct_path: str
    media_key: bytes = b""
    file_sha256: bytes = b""
    file_enc_sha256: bytes = b""
    file_length: int = 0


@dataclass(frozen=True)
class ReplyContext:
    """Quote information so the reply threads under the triggering message."""

    message_id: str
    participant: str | None = None


@dataclass(frozen=True)
class OutgoingMessage:
    """A text or media message to send to a chat."""

    chat_id: str
    text: str | None = None
    media: UploadHandle | None = None
    category: MediaCategory | None = None
    mimetype: str | None = None
    caption: str | None = None
    width: int | None = None
    height: int | None = None
    is_animated: bool = False
    reply_to: ReplyContext | None = None
    mentions: tuple[str, ...] = ()


def text_reply(
    chat_id: str, text: str, reply_to: ReplyContext | None = None, mentions: tuple[str, ...] = ()
) -> OutgoingMessage:
    return OutgoingMessage(chat_id=chat_id, text=text, reply_to=reply_to, mentions=mentions)


def media_reply(
    chat_id: str,
    handle: UploadHandle,
    category: MediaCategory,
    mimetype: str,
    *,
    caption: str | None = None,
    width: int | None = None,
    height: int | None = None,
    is_animated: bool = False,
    reply_to: ReplyContext | None = None,
) -> OutgoingMessage:
    return OutgoingMessage(
        chat_id=chat_id,
        media=handle,
        category=category,
        mimetype=mimetype,
        caption=caption,
        width=width,
        height=height,
        is_animated=is_animated,
        reply_to=reply_to,
    )


@dataclass(frozen=True)
class ChatEvent:
    """One inbound message as seen by the dispatcher."""

    chat_id: str
    message_id: str
    sender: str
    text: str = ""
    is_from_me: bool = False
    is_group: bool = False
    media: MediaReference | None = None
    quoted_media: MediaReference | None = None

    @property
    def reply_context(self) -> ReplyContext:
        return ReplyContext(
            message_id=self.message_id, participant=self.sender if self.is_group else None
        )


@runtime_checkable
class MessagingClient(Protocol):
    """Transport operations the bot needs.

    Implementations raise :class:`~stickerlab.error_handling.DownloadError`,
    :class:`~stickerlab.error_handling.UploadError` or
    :class:`~stickerlab.error_handling.SendError` on failure; other exceptions
    are wrapped by the handlers.
    """

    def download(self, media: MediaReference) -> bytes: ...

    def upload(self, data: bytes, category: MediaCategory) -> UploadHandle: ...

    def send(self, message: OutgoingMessage) -> str: ...

    def disconnect(self) -> None: ...
