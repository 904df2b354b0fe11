"""
Conversation Sync Store for host/guest messaging.

Keeps "my conversations" and "messages of the active conversation" consistent
with the change feed. Change notifications trigger a refetch of the enriched
list rather than patching raw rows in, so participant names, experience titles
and previews are always derived the same way.
"""

import asyncio
from datetime import UTC, datetime

from livelocal.infrastructure.observability.logging import get_logger
from livelocal.models.domain.conversation_domain import (
    FALLBACK_GUEST_NAME,
    FALLBACK_HOST_NAME,
    Conversation,
    Message,
    format_display_name,
)
from livelocal.models.domain.session_domain import AuthUser
from livelocal.services.remote.contract import (
    ChangeEvent,
    NoRowsError,
    RemoteServiceError,
    Subscription,
    UniqueViolationError,
    decode_rows,
)
from livelocal.services.remote.filters import Order, any_of, eq, in_, is_null, neq
from livelocal.services.store_base import UserScopedStore

logger = get_logger(__name__)

CONVERSATIONS_TABLE = "chat_conversations"
MESSAGES_TABLE = "chat_messages"
PROFILES_TABLE = "profiles"
EXPERIENCES_TABLE = "experiences"

PREVIEW_LENGTH = 80


class ConversationSyncStore(UserScopedStore):
    name = "conversations"

    def _reset_state(self) -> None:
        self.conversations: list[Conversation] = []
        self.messages: list[Message] = []
        self.active_conversation_id: str | None = None

    def _participant_filter(self, user_id: str):
        return any_of(eq("guest_id", user_id), eq("host_id", user_id))

    def _open_subscriptions(self, user: AuthUser) -> list[Subscription]:
        return [
            self._remote.subscribe(
                CONVERSATIONS_TABLE,
                [self._participant_filter(user.id)],
                self._on_conversation_change,
                on_resync=self._resync,
            ),
            self._remote.subscribe(
                MESSAGES_TABLE,
                [],
                self._on_message_change,
                events=("INSERT",),
            ),
        ]

    async def _load(self) -> None:
        await self.list_conversations()

    # =================================================================
    # CONVERSATIONS
    # =================================================================

    async def list_conversations(self, surface_errors: bool = True) -> list[Conversation]:
        """
        Fetch the user's conversations, newest activity first, and enrich them.

        Args:
            surface_errors: Show an error notice on failure (False for
                change-feed driven refreshes, which only log)

        Returns:
            The refreshed list, or the previous list if the fetch failed
        """
        user = self._user
        if user is None:
            return []
        generation = self._generation

        try:
            rows = await self._remote.select(
                CONVERSATIONS_TABLE,
                [self._participant_filter(user.id)],
                order=Order("updated_at", ascending=False),
            )
            conversations = decode_rows(Conversation, rows, CONVERSATIONS_TABLE)
        except NoRowsError:
            conversations = []
        except RemoteServiceError as e:
            logger.error("Error fetching conversations", error=str(e))
            if surface_errors and self._is_current(generation):
                self._notices.error("Error", "Failed to load conversations")
            return self.conversations

        enriched = await asyncio.gather(*(self._enrich(c, user.id) for c in conversations))

        if not self._is_current(generation):
            return list(enriched)
        self.conversations = list(enriched)
        return self.conversations

    async def _enrich(self, conversation: Conversation, user_id: str) -> Conversation:
        """Resolve display fields; each lookup falls back on its own."""
        names, title, preview, unread = await asyncio.gather(
            self._lookup_names(conversation),
            self._lookup_title(conversation),
            self._lookup_preview(conversation),
            self._lookup_unread(conversation, user_id),
            return_exceptions=True,
        )
        update = {}
        if isinstance(names, dict):
            update["host_name"] = format_display_name(
                names.get(conversation.host_id), FALLBACK_HOST_NAME
            )
            update["guest_name"] = format_display_name(
                names.get(conversation.guest_id), FALLBACK_GUEST_NAME
            )
        if isinstance(title, str):
            update["experience_title"] = title
        if isinstance(preview, str):
            update["last_message_preview"] = preview
        if isinstance(unread, int):
            update["unread_count"] = unread

        failed = [
            field
            for field, result in (
                ("names", names),
                ("title", title),
                ("preview", preview),
                ("unread", unread),
            )
            if isinstance(result, BaseException)
        ]
        if failed:
            logger.warning(
                "Conversation enrichment degraded",
                conversation_id=conversation.id,
                failed=failed,
            )
        return conversation.model_copy(update=update)

    async def _lookup_names(self, conversation: Conversation) -> dict[str, dict]:
        rows = await self._remote.select(
            PROFILES_TABLE,
            [in_("id", [conversation.host_id, conversation.guest_id])],
            columns="id,first_name,last_name",
        )
        return {row["id"]: row for row in rows if "id" in row}

    async def _lookup_title(self, conversation: Conversation) -> str | None:
        if not conversation.experience_id:
            return None
        rows = await self._remote.select(
            EXPERIENCES_TABLE,
            [eq("id", conversation.experience_id)],
            columns="id,title",
            limit=1,
        )
        return rows[0].get("title") if rows else None

    async def _lookup_preview(self, conversation: Conversation) -> str | None:
        rows = await self._remote.select(
            MESSAGES_TABLE,
            [eq("conversation_id", conversation.id)],
            columns="content,created_at",
            order=Order("created_at", ascending=False),
            limit=1,
        )
        if not rows or not rows[0].get("content"):
            return None
        content = rows[0]["content"].strip()
        if len(content) > PREVIEW_LENGTH:
            return content[: PREVIEW_LENGTH - 1].rstrip() + "…"
        return content

    async def _lookup_unread(self, conversation: Conversation, user_id: str) -> int:
        rows = await self._remote.select(
            MESSAGES_TABLE,
            [
                eq("conversation_id", conversation.id),
                neq("sender_id", user_id),
                is_null("read_at"),
            ],
            columns="id",
        )
        return len(rows)

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return next((c for c in self.conversations if c.id == conversation_id), None)

    async def create_conversation(
        self, host_id: str, guest_id: str, experience_id: str | None = None
    ) -> str | None:
        """
        Start (or reopen) the conversation between a host and a guest.

        An existing conversation with the same participants and experience is
        reused, so repeated calls never produce a second conversation.

        Returns:
            The conversation id, or None on failure
        """
        try:
            conversation_id = await self._find_conversation(host_id, guest_id, experience_id)
            if conversation_id is None:
                try:
                    row = await self._remote.insert(
                        CONVERSATIONS_TABLE,
                        {"host_id": host_id, "guest_id": guest_id, "experience_id": experience_id},
                    )
                    conversation_id = row["id"]
                except UniqueViolationError:
                    # Created concurrently by the other participant
                    conversation_id = await self._find_conversation(
                        host_id, guest_id, experience_id
                    )
                    if conversation_id is None:
                        raise
        except (RemoteServiceError, KeyError) as e:
            logger.error("Error creating conversation", error=str(e))
            self._notices.error("Error", "Failed to create conversation")
            return None

        await self.list_conversations(surface_errors=False)
        self._notices.show("Conversation ready", "You can now send messages")
        return conversation_id

    async def _find_conversation(
        self, host_id: str, guest_id: str, experience_id: str | None
    ) -> str | None:
        experience_filter = (
            eq("experience_id", experience_id) if experience_id else is_null("experience_id")
        )
        rows = await self._remote.select(
            CONVERSATIONS_TABLE,
            [eq("host_id", host_id), eq("guest_id", guest_id), experience_filter],
            columns="id",
            order=Order("created_at", ascending=True),
            limit=1,
        )
        return rows[0]["id"] if rows else None

    # =================================================================
    # MESSAGES
    # =================================================================

    async def set_active_conversation(self, conversation_id: str | None) -> None:
        """Switch the viewed conversation: load its messages and mark them read."""
        self.active_conversation_id = conversation_id
        self.messages = []
        if conversation_id is None or self._user is None:
            return
        await self.fetch_messages(conversation_id)
        await self.mark_as_read(conversation_id)

    async def fetch_messages(
        self, conversation_id: str, surface_errors: bool = True
    ) -> list[Message]:
        generation = self._generation
        try:
            rows = await self._remote.select(
                MESSAGES_TABLE,
                [eq("conversation_id", conversation_id)],
                order=Order("created_at", ascending=True),
            )
            messages = decode_rows(Message, rows, MESSAGES_TABLE)
        except NoRowsError:
            messages = []
        except RemoteServiceError as e:
            logger.error("Error fetching messages", conversation_id=conversation_id, error=str(e))
            if surface_errors and self._is_current(generation):
                self._notices.error("Error", "Failed to load messages")
            return self.messages

        conversation = self.get_conversation(conversation_id)
        if conversation is not None:
            messages = [
                m.model_copy(update={"sender_name": conversation.name_for(m.sender_id)})
                for m in messages
            ]

        # The user may have switched conversations (or accounts) meanwhile
        if self._is_current(generation) and self.active_conversation_id == conversation_id:
            self.messages = messages
        return messages

    async def send_message(self, conversation_id: str, content: str) -> bool:
        """
        Insert a message. It is not rendered locally: the change feed echo
        triggers the refetch that displays it.
        """
        user = self._user
        text = (content or "").strip()
        if user is None or not text:
            return False

        try:
            await self._remote.insert(
                MESSAGES_TABLE,
                {"conversation_id": conversation_id, "sender_id": user.id, "content": text},
            )
        except RemoteServiceError as e:
            logger.error("Error sending message", conversation_id=conversation_id, error=str(e))
            self._notices.error("Error", "Failed to send message")
            return False

        self._notices.show("Message sent")
        return True

    async def mark_as_read(self, conversation_id: str) -> bool:
        """Best-effort read receipts for messages addressed to the user."""
        user = self._user
        if user is None:
            return False

        generation = self._generation
        read_at = datetime.now(UTC)
        try:
            await self._remote.update(
                MESSAGES_TABLE,
                [
                    eq("conversation_id", conversation_id),
                    neq("sender_id", user.id),
                    is_null("read_at"),
                ],
                {"read_at": read_at.isoformat()},
            )
        except RemoteServiceError as e:
            logger.warning(
                "Error marking messages as read", conversation_id=conversation_id, error=str(e)
            )
            return False

        if not self._is_current(generation):
            return True
        if conversation_id == self.active_conversation_id:
            self.messages = [
                m.model_copy(update={"read_at": read_at})
                if m.sender_id != user.id and m.read_at is None
                else m
                for m in self.messages
            ]
        self.conversations = [
            c.model_copy(update={"unread_count": 0}) if c.id == conversation_id else c
            for c in self.conversations
        ]
        return True

    # =================================================================
    # CHANGE FEED
    # =================================================================

    async def _on_conversation_change(self, event: ChangeEvent) -> None:
        await self.list_conversations(surface_errors=False)

    async def _on_message_change(self, event: ChangeEvent) -> None:
        if event.event_type != "INSERT":
            return
        conversation_id = event.new.get("conversation_id")
        active_id = self.active_conversation_id
        if active_id is not None and conversation_id == active_id:
            await self.fetch_messages(active_id, surface_errors=False)
            if self._user is not None and event.new.get("sender_id") != self._user.id:
                await self.mark_as_read(active_id)
        # Previews and ordering change with every new message
        await self.list_conversations(surface_errors=False)

    async def _resync(self) -> None:
        await self.list_conversations(surface_errors=False)
        if self.active_conversation_id is not None:
            await self.fetch_messages(self.active_conversation_id, surface_errors=False)
