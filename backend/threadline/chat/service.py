"""Use cases shared by the WebSocket handlers and the REST routes.

``send_user_message`` is the single path by which a user message enters a
thread, whichever surface it arrives on:

1. validate content and attachment (no write on failure)
2. persist through the MessageGateway (ownership checked)
3. name the thread after its first message
4. broadcast the message to the thread room
5. start the deferred AI reply
"""
import logging
from typing import Optional

from threadline.errors import EmptyContent, FileNotFound
from threadline.files.service import FileRegistry, file_registry

from .broadcaster import Broadcaster, broadcaster
from .gateway import MessageGateway, gateway
from .scheduler import ReplyScheduler, scheduler
from .schemas import AIFeatureRequestPayload, Message, ServerEvent, User

logger = logging.getLogger(__name__)


class ChatService:
    """Accepts user messages and feature requests from either surface.

    Validation happens before any write; the AI reply is handed to the
    ReplyScheduler once the message is persisted and broadcast.
    """

    def __init__(
        self,
        gateway: MessageGateway,
        broadcaster: Broadcaster,
        scheduler: ReplyScheduler,
        files: FileRegistry,
    ) -> None:
        self.gateway = gateway
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.files = files

    async def send_user_message(
        self,
        user: User,
        thread_id: int,
        content: str,
        file_id: Optional[int] = None,
    ) -> Message:
        """Accept a user message into an owned thread.

        Returns:
            The persisted user message. The AI reply arrives later as its
            own ``message_received`` event.

        Raises:
            EmptyContent: Content is blank.
            FileNotFound: ``file_id`` names no file.
            ThreadNotFound: Thread missing or owned by someone else.
            PersistenceError: The database failed.
        """
        if not (content or "").strip():
            raise EmptyContent()
        if file_id is not None and not self.files.exists(file_id):
            raise FileNotFound()

        message = self.gateway.append_message(
            thread_id, user.id, content, is_user_authored=True, attached_file_id=file_id
        )

        title = self.gateway.autotitle_thread(thread_id, message.content)
        if title is not None:
            logger.info(f"Thread {thread_id} titled '{title}'")

        await self.broadcaster.to_thread(thread_id, ServerEvent.MESSAGE_RECEIVED, message.to_payload())
        await self.scheduler.submit_reply(message)
        return message

    async def request_feature(self, connection_id: str, request: AIFeatureRequestPayload) -> None:
        """Start a feature job answered to ``connection_id`` only."""
        logger.info(f"Feature '{request.type}' requested by {connection_id}")
        await self.scheduler.submit_feature(connection_id, request)


# Global instance shared by both surfaces
chat_service = ChatService(gateway, broadcaster, scheduler, file_registry)
