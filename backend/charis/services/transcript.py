"""ChatTranscriptStore: user-visible conversation for a session.

One user row is written when a run starts, and one assistant row is created
empty with ``is_streaming=True``. The assistant row is rewritten as content
streams in (at ``flush_chars`` boundaries, not per token) and closed exactly
once by ``AssistantMessageWriter.finalize``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from charis.db.models.chat_message import ChatMessage

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger(__name__)


class AssistantMessageWriter:
    def __init__(
        self,
        store: ChatTranscriptStore,
        session_id: str,
        message_id: str | None,
        flush_chars: int,
    ) -> None:
        self._store = store
        self.session_id = session_id
        self.message_id = message_id
        self._flush_chars = max(flush_chars, 1)
        self._content = ""
        self._flushed_len = 0
        self._finalized = False

    @property
    def content(self) -> str:
        return self._content

    @property
    def finalized(self) -> bool:
        return self._finalized

    async def append(self, token: str) -> None:
        if self._finalized or not token:
            return
        self._content += token
        if len(self._content) // self._flush_chars > self._flushed_len // self._flush_chars:
            self._flushed_len = len(self._content)
            await self._store._write(self.message_id, self.session_id, self._content, is_streaming=True)

    async def finalize(self, fallback: str) -> str:
        """Write the final content (or *fallback* when nothing streamed) and stop streaming."""
        if self._finalized:
            return self._content or fallback
        self._finalized = True
        final = self._content or fallback
        await self._store._write(self.message_id, self.session_id, final, is_streaming=False)
        return final


class ChatTranscriptStore:
    """Non-fatal writes for ``agent_chat_messages``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], flush_chars: int = 100) -> None:
        self._session_factory = session_factory
        self._flush_chars = flush_chars

    async def add_user_message(
        self,
        session_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        return await self._insert(session_id, "user", content, is_streaming=False, metadata=metadata)

    async def open_assistant_message(self, session_id: str) -> AssistantMessageWriter:
        message_id = await self._insert(session_id, "assistant", "", is_streaming=True)
        return AssistantMessageWriter(self, session_id, message_id, self._flush_chars)

    async def list_for_session(self, session_id: str) -> list[dict[str, Any]]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.created_at.asc())
            )
            return [row.to_dict() for row in result.scalars().all()]

    async def _insert(
        self,
        session_id: str,
        role: str,
        content: str,
        is_streaming: bool,
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        try:
            async with self._session_factory() as db:
                message = ChatMessage(
                    session_id=session_id,
                    role=role,
                    content=content,
                    is_streaming=is_streaming,
                    metadata_=metadata or {},
                )
                db.add(message)
                await db.commit()
                return message.id
        except Exception as exc:
            logger.warning(
                "chat_message_insert_failed",
                session_id=session_id,
                role=role,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

    async def _write(self, message_id: str | None, session_id: str, content: str, is_streaming: bool) -> None:
        if message_id is None:
            return
        try:
            async with self._session_factory() as db:
                message = await db.get(ChatMessage, message_id)
                if message is None:
                    logger.warning("chat_message_missing", session_id=session_id, message_id=message_id)
                    return
                message.content = content
                message.is_streaming = is_streaming
                await db.commit()
        except Exception as exc:
            logger.warning(
                "chat_message_update_failed",
                session_id=session_id,
                message_id=message_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
