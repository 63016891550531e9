"""Deferred AI reply and feature scheduling.

Every accepted user message starts one reply job. The job announces typing
to the thread room, waits an injected latency, generates a reply, persists
it through the MessageGateway and only then broadcasts it.

Reply lifecycle (per job)::

    Received -> TypingAnnounced -> Generating -> Persisted -> TypingCleared -> Idle
                                        \\-> Failed -> TypingCleared -> Idle

Guarantees:
    - ai_typing(false) is always broadcast before the reply itself, and also
      after a failure, so clients never see a stuck indicator.
    - The reply is persisted before it is broadcast.
    - Jobs are independent: two messages in the same thread produce two
      jobs racing each other; replies land in whatever order they finish.
    - A job never touches the SessionStore except through Broadcaster
      snapshots. If everyone left the room, the reply is still persisted
      and delivered to nobody.

Feature requests follow the same pattern but are connection-scoped and
never persisted.
"""
import asyncio
import itertools
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set

from threadline.agent.base import ReplyGenerator
from threadline.agent.mock_agent import mock_agent
from threadline.agent.schemas import FeatureType
from threadline.config import get_config
from threadline.errors import GenerationError

from .broadcaster import Broadcaster, broadcaster
from .gateway import MessageGateway, gateway
from .schemas import AIFeatureRequestPayload, Message, ServerEvent

logger = logging.getLogger(__name__)

REPLY_FAILED = "Failed to generate AI response"
FEATURE_FAILED = "Failed to process AI feature request"

# Returns the number of seconds to wait before generating
Latency = Callable[[], float]


class RandomDelay:
    """Uniformly distributed latency between two bounds (seconds)."""

    def __init__(self, min_seconds: float, max_seconds: float,
                 rng: Optional[random.Random] = None) -> None:
        if min_seconds < 0 or max_seconds < min_seconds:
            raise ValueError(f"Invalid delay bounds: {min_seconds}..{max_seconds}")
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self._rng = rng or random.Random()

    def __call__(self) -> float:
        return self._rng.uniform(self.min_seconds, self.max_seconds)

    def __repr__(self) -> str:
        return f"RandomDelay({self.min_seconds}, {self.max_seconds})"


class ReplyState(str, Enum):
    IDLE = "idle"
    RECEIVED = "received"
    TYPING_ANNOUNCED = "typing_announced"
    GENERATING = "generating"
    PERSISTED = "persisted"
    TYPING_CLEARED = "typing_cleared"
    FAILED = "failed"


@dataclass
class ReplyJob:
    """One pending AI reply for one accepted user message."""
    job_id: int
    thread_id: int
    prompt: str
    state: ReplyState = ReplyState.RECEIVED
    reply: Optional[Message] = None
    error: Optional[str] = None

    def advance(self, state: ReplyState) -> None:
        logger.debug(f"[Scheduler] Job {self.job_id} (thread {self.thread_id}): "
                     f"{self.state.value} -> {state.value}")
        self.state = state


class ReplyScheduler:
    """Runs reply and feature jobs as background asyncio tasks.

    Latencies default to the ``ai`` section of the configuration and are
    resolved on first use; tests replace them with ``lambda: 0``.
    """

    def __init__(
        self,
        gateway: MessageGateway,
        broadcaster: Broadcaster,
        generator: ReplyGenerator,
        reply_delay: Optional[Latency] = None,
        feature_delay: Optional[Latency] = None,
    ) -> None:
        self.gateway = gateway
        self.broadcaster = broadcaster
        self.generator = generator
        self._reply_delay = reply_delay
        self._feature_delay = feature_delay

        self._ids = itertools.count(1)
        self._jobs: Dict[int, ReplyJob] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def reply_delay(self) -> Latency:
        if self._reply_delay is None:
            ai = get_config().ai
            self._reply_delay = RandomDelay(ai.reply_delay_min, ai.reply_delay_max)
        return self._reply_delay

    @reply_delay.setter
    def reply_delay(self, value: Optional[Latency]) -> None:
        self._reply_delay = value

    @property
    def feature_delay(self) -> Latency:
        if self._feature_delay is None:
            ai = get_config().ai
            self._feature_delay = RandomDelay(ai.feature_delay_min, ai.feature_delay_max)
        return self._feature_delay

    @feature_delay.setter
    def feature_delay(self, value: Optional[Latency]) -> None:
        self._feature_delay = value

    # =========================================================================
    # Replies
    # =========================================================================

    async def submit_reply(self, message: Message) -> ReplyJob:
        """Start the AI reply job for an accepted user message.

        Announces typing to the thread room before returning; the rest of the
        job runs in the background.
        """
        job = ReplyJob(job_id=next(self._ids), thread_id=message.threadId, prompt=message.content)
        self._jobs[job.job_id] = job

        await self._set_typing(job.thread_id, True)
        job.advance(ReplyState.TYPING_ANNOUNCED)

        self._spawn(self._run_reply(job), job)
        return job

    async def _run_reply(self, job: ReplyJob) -> None:
        await asyncio.sleep(self.reply_delay())
        job.advance(ReplyState.GENERATING)

        try:
            content = self.generator.generate_reply(job.prompt)
            if not content or not content.strip():
                raise GenerationError("Generator returned an empty reply")
            reply = self.gateway.append_message(
                job.thread_id, None, content, is_user_authored=False
            )
        except Exception as e:
            logger.exception(f"[Scheduler] Reply job {job.job_id} failed for thread {job.thread_id}")
            job.error = str(e)
            job.advance(ReplyState.FAILED)
            await self._set_typing(job.thread_id, False)
            job.advance(ReplyState.TYPING_CLEARED)
            await self.broadcaster.to_thread(job.thread_id, ServerEvent.ERROR, {"message": REPLY_FAILED})
            job.advance(ReplyState.IDLE)
            return

        job.reply = reply
        job.advance(ReplyState.PERSISTED)

        await self._set_typing(job.thread_id, False)
        job.advance(ReplyState.TYPING_CLEARED)

        delivered = await self.broadcaster.to_thread(
            job.thread_id, ServerEvent.MESSAGE_RECEIVED, reply.to_payload()
        )
        job.advance(ReplyState.IDLE)
        logger.info(f"[Scheduler] Reply {reply.id} for thread {job.thread_id} "
                    f"delivered to {delivered} connection(s)")

    async def _set_typing(self, thread_id: int, is_typing: bool) -> None:
        await self.broadcaster.to_thread(
            thread_id, ServerEvent.AI_TYPING, {"threadId": thread_id, "isTyping": is_typing}
        )

    # =========================================================================
    # Feature requests
    # =========================================================================

    async def submit_feature(self, connection_id: str, request: AIFeatureRequestPayload) -> None:
        """Start a feature job whose events go to ``connection_id`` only."""
        await self._set_processing(connection_id, request.type, True)
        self._spawn(self._run_feature(connection_id, request))

    async def _run_feature(self, connection_id: str, request: AIFeatureRequestPayload) -> None:
        await asyncio.sleep(self.feature_delay())

        try:
            result = self.generator.generate_feature(FeatureType.parse(request.type), request.content)
        except Exception:
            logger.exception(f"[Scheduler] Feature '{request.type}' failed for {connection_id}")
            await self._set_processing(connection_id, request.type, False)
            await self.broadcaster.to_connection(connection_id, ServerEvent.ERROR, {"message": FEATURE_FAILED})
            return

        await self._set_processing(connection_id, request.type, False)
        await self.broadcaster.to_connection(connection_id, ServerEvent.AI_FEATURE_RESULT, {
            "type": request.type,
            "content": request.content,
            "result": result.to_payload(),
            "threadId": request.threadId,
        })

    async def _set_processing(self, connection_id: str, feature_type: str, is_processing: bool) -> None:
        await self.broadcaster.to_connection(
            connection_id, ServerEvent.AI_PROCESSING,
            {"type": feature_type, "isProcessing": is_processing},
        )

    # =========================================================================
    # Task bookkeeping
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, None], job: Optional[ReplyJob] = None) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tasks.discard(finished)
            if job is not None:
                self._jobs.pop(job.job_id, None)

        task.add_done_callback(_done)

    def in_flight(self, thread_id: Optional[int] = None) -> List[ReplyJob]:
        """Reply jobs not yet finished, optionally for one thread."""
        return [
            job for job in self._jobs.values()
            if thread_id is None or job.thread_id == thread_id
        ]

    async def drain(self) -> None:
        """Wait until every scheduled job has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# Global instance wired to the mock generator
scheduler = ReplyScheduler(gateway, broadcaster, mock_agent)
