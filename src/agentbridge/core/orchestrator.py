"""Task orchestration: one agent task per conversation.

The orchestrator accepts inbound messages, runs at most one backend task
per conversation, folds the task's event stream into a display snapshot,
pushes coalesced card updates to the chat surface and drives the
turn-limit continuation handshake.
"""

import asyncio
import contextlib
import logging
import re
from dataclasses import replace
from datetime import timedelta
from enum import Enum
from pathlib import Path

import aiofiles.os

from agentbridge.adapters.base import Card, ChatSurface, ExecutionBackend, ExecutionRequest
from agentbridge.config import Settings, settings
from agentbridge.core.aggregator import StreamAggregator
from agentbridge.core.cancellation import (
    CancelReason,
    TimeoutBudget,
    iterate_until_cancelled,
)
from agentbridge.core.commands import CommandHandler
from agentbridge.core.exceptions import (
    BridgeError,
    TaskBusyError,
    TaskTimeoutError,
    TransportError,
)
from agentbridge.core.scheduler import CoalescingScheduler
from agentbridge.core.sessions import ConversationSession, SessionStore
from agentbridge.core.tasks import (
    ContinuationReply,
    PendingContinuation,
    RunningTask,
    TaskRegistry,
    classify_reply,
)
from agentbridge.models.session import InboundMessage
from agentbridge.models.snapshot import SnapshotStatus
from agentbridge.utils.cards import CardBuilder, CardConfig

logger = logging.getLogger(__name__)


class MessageOutcome(str, Enum):
    """What the orchestrator did with an inbound message."""

    STARTED = "started"
    BUSY = "busy"
    COMMAND = "command"
    CONTINUE_ACCEPTED = "continue_accepted"
    CONTINUE_DECLINED = "continue_declined"
    CONTINUE_INVALID = "continue_invalid"
    NO_WORKING_DIRECTORY = "no_working_directory"
    IGNORED = "ignored"


class TaskOrchestrator:
    """Owns the task slots and session table for every conversation."""

    def __init__(
        self,
        backend: ExecutionBackend,
        surface: ChatSurface,
        sessions: SessionStore | None = None,
        tasks: TaskRegistry | None = None,
        config: Settings | None = None,
    ):
        self.config = config or settings
        self.backend = backend
        self.surface = surface
        self.sessions = sessions or SessionStore(
            default_working_directory=self.config.default_working_directory,
            ttl=timedelta(hours=self.config.session_ttl_hours),
            sweep_interval=self.config.session_sweep_interval_seconds,
        )
        self.tasks = tasks or TaskRegistry()
        self.cards = CardBuilder(
            CardConfig(
                max_content_length=self.config.max_content_length,
                max_visible_tool_calls=self.config.max_visible_tool_calls,
            )
        )
        self.commands = CommandHandler(self)

    async def start(self) -> None:
        """Start background housekeeping."""
        self.config.ensure_directories()
        await self.sessions.start()
        logger.info("TaskOrchestrator started")

    async def shutdown(self) -> None:
        """Cancel every task, wait briefly for them to finish and release all slots."""
        cancelled = self.tasks.cancel_all(CancelReason.SHUTDOWN)
        runners = [t.runner for t in cancelled if t.runner is not None and not t.runner.done()]
        if runners:
            logger.info(f"Waiting for {len(runners)} task(s) to finish")
            _, pending = await asyncio.wait(runners, timeout=self.config.shutdown_grace_seconds)
            for runner in pending:
                runner.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        for task in cancelled:
            logger.info(f"Aborted task for {task.conversation_id} during shutdown")
        self.tasks.clear()
        await self.sessions.stop()
        logger.info("TaskOrchestrator stopped")

    @property
    def active_count(self) -> int:
        """Number of occupied task slots."""
        return len(self.tasks)

    # Inbound messages

    async def handle_message(self, msg: InboundMessage) -> MessageOutcome:
        """Route one inbound message."""
        cid = msg.conversation_id
        text = msg.text.strip()

        if text.startswith("/"):
            await self.commands.handle(msg)
            return MessageOutcome.COMMAND

        task = self.tasks.get(cid)
        if task is not None and task.pending is not None:
            return await self._answer_continuation(task, text)

        if not text and not msg.image_key:
            return MessageOutcome.IGNORED

        session = self.sessions.get_or_create(cid)
        if not session.has_working_directory:
            await self.send_card(
                cid,
                self.cards.build_text_card(
                    "⚠️ Working Directory Not Set",
                    "Please set a working directory first:\n`/cd /path/to/your/project`",
                    "orange",
                ),
            )
            return MessageOutcome.NO_WORKING_DIRECTORY

        try:
            self.start_task(msg)
        except TaskBusyError:
            await self.send_card(
                cid,
                self.cards.build_text_card(
                    "⏳ Task In Progress",
                    "You have a running task. Use `/stop` to abort it, or wait for it to finish.",
                    "orange",
                ),
            )
            return MessageOutcome.BUSY
        return MessageOutcome.STARTED

    def start_task(self, msg: InboundMessage) -> RunningTask:
        """Claim the conversation's slot and run the task in the background.

        The working directory, overrides and resumption token are read from
        the session once, here, and stay fixed for every continuation round.

        Raises:
            TaskBusyError: If the conversation already has a task
            ValueError: For commands, or if no working directory is set
        """
        if msg.text.strip().startswith("/"):
            raise ValueError("Commands must not be sent to the agent backend")
        session = self.sessions.get_or_create(msg.conversation_id)
        if not session.working_directory:
            raise ValueError(f"Conversation {msg.conversation_id} has no working directory")
        task = self.tasks.claim(msg.conversation_id)
        request = ExecutionRequest(
            prompt="",
            cwd=session.working_directory,
            resumption_token=session.resumption_token,
            system_prompt=self.effective_system_prompt(session),
            model=session.model or self.config.default_model,
            max_turns=self.config.max_turns,
        )
        task.runner = asyncio.create_task(
            self._run_task(task, msg, request),
            name=f"agent-task-{msg.conversation_id}",
        )
        return task

    def stop_task(self, conversation_id: str) -> bool:
        """Cancel the conversation's task.

        Returns:
            True if a task was cancelled
        """
        task = self.tasks.get(conversation_id)
        if task is None:
            return False
        task.token.cancel(CancelReason.STOPPED)
        logger.info(f"Conversation {conversation_id}: task stop requested")
        return True

    async def wait_for_task(self, conversation_id: str) -> None:
        """Wait until the conversation's current task, if any, has finished."""
        task = self.tasks.get(conversation_id)
        if task is not None and task.runner is not None:
            await asyncio.wait({task.runner})

    # Chat surface helpers

    async def send_card(self, conversation_id: str, card: Card) -> None:
        try:
            await self.surface.send_card(conversation_id, card)
        except Exception as e:
            logger.warning(f"Failed to send card to {conversation_id}: {e}")

    async def _update(self, handle: str, card: Card) -> None:
        try:
            ok = await self.surface.update_message(handle, card)
        except Exception as e:
            logger.warning(f"Failed to update message {handle}: {e}")
            return
        if not ok:
            logger.warning(f"Chat surface rejected update of message {handle}")

    def effective_system_prompt(self, session: ConversationSession) -> str | None:
        if session.system_prompt is not None:
            return session.system_prompt
        return self.config.system_prompt

    # Task execution

    async def _run_task(
        self, task: RunningTask, msg: InboundMessage, request: ExecutionRequest
    ) -> None:
        cid = msg.conversation_id
        budget = TimeoutBudget(
            task.token,
            self.config.task_timeout_seconds,
            reset_on_resume=self.config.timeout_resets_on_continuation,
        )
        image_path: Path | None = None
        try:
            prompt, image_path = await self._prepare_prompt(msg)
            text = msg.text.strip()
            display_prompt = f"🖼️ {text}" if msg.image_key else text
            aggregator = StreamAggregator(display_prompt)

            try:
                handle = await self._create_placeholder(cid, aggregator)
            except TransportError as e:
                logger.error(f"Conversation {cid}: {e.code} - {e.message}, aborting")
                return

            await self._drive(task, aggregator, handle, replace(request, prompt=prompt), budget)
        finally:
            budget.stop()
            self.tasks.release(cid, task)
            if image_path is not None:
                with contextlib.suppress(OSError):
                    await aiofiles.os.remove(image_path)

    async def _create_placeholder(self, cid: str, aggregator: StreamAggregator) -> str:
        """Post the initial task card.

        Raises:
            TransportError: If the chat surface did not accept the card
        """
        try:
            handle = await self.surface.create_message(
                cid, self.cards.build_task_card(aggregator.snapshot)
            )
        except Exception as e:
            raise TransportError(cid, str(e)) from e
        if handle is None:
            raise TransportError(cid, "initial card was not accepted")
        return handle

    async def _drive(
        self,
        task: RunningTask,
        aggregator: StreamAggregator,
        handle: str,
        request: ExecutionRequest,
        budget: TimeoutBudget,
    ) -> None:
        """Run execution rounds until the task finishes, then push the final card."""
        cid = task.conversation_id
        token = task.token
        snapshot = aggregator.snapshot
        scheduler = CoalescingScheduler(self.config.update_interval_seconds)
        marker = self.config.turn_limit_marker

        def drop_pending_updates(_: CancelReason) -> None:
            scheduler.cancel()

        token.add_callback(drop_pending_updates)
        budget.start()
        try:
            while True:
                await self._consume(task, aggregator, scheduler, handle, request)
                if token.cancelled:
                    break
                await scheduler.flush()
                if not snapshot.hit_turn_limit(marker):
                    break

                budget.pause()
                logger.info(f"Conversation {cid}: turn limit reached, asking to continue")
                if not await self._await_continuation(task, aggregator, handle):
                    break
                budget.resume()
                logger.info(f"Conversation {cid}: continuing")
                request = replace(
                    request,
                    prompt=self.config.continue_prompt,
                    resumption_token=aggregator.resumption_token or request.resumption_token,
                )
                aggregator.resume()
                await self._update(handle, self.cards.build_task_card(snapshot))
        except Exception as e:
            if isinstance(e, BridgeError):
                logger.error(f"Conversation {cid}: {e.code} - {e.message}")
                message = e.message
            else:
                logger.exception(f"Conversation {cid}: agent execution error: {e}")
                message = str(e) or type(e).__name__
            snapshot.fail(message)
        finally:
            token.remove_callback(drop_pending_updates)

        if token.cancelled:
            scheduler.cancel()
            if snapshot.status != SnapshotStatus.COMPLETE:
                snapshot.status = SnapshotStatus.ERROR
                snapshot.error_message = self._cancel_message(task)
        await scheduler.flush()

        # No-op once a result event has made the snapshot terminal
        snapshot.fail("Agent finished without reporting a result")
        await self._update(handle, self.cards.build_task_card(snapshot))
        logger.info(f"Conversation {cid}: task finished ({snapshot.status.value})")

        if not token.cancelled:
            await self._deliver_artifacts(cid, aggregator)

    async def _consume(
        self,
        task: RunningTask,
        aggregator: StreamAggregator,
        scheduler: CoalescingScheduler,
        handle: str,
        request: ExecutionRequest,
    ) -> None:
        """Run one execution round, folding its events in arrival order."""
        cid = task.conversation_id
        snapshot = aggregator.snapshot
        stored_token = request.resumption_token

        async def push_progress() -> None:
            # Terminal states are pushed once, by _drive
            if not snapshot.is_terminal:
                await self._update(handle, self.cards.build_task_card(snapshot))

        stream = self.backend.execute(request, task.token)
        async with contextlib.aclosing(iterate_until_cancelled(stream, task.token)) as events:
            async for event in events:
                aggregator.process(event)

                resumption_token = aggregator.resumption_token
                if resumption_token and resumption_token != stored_token:
                    self.sessions.set_resumption_token(cid, resumption_token)
                    stored_token = resumption_token

                if not snapshot.is_terminal:
                    scheduler.schedule(push_progress)

    async def _await_continuation(
        self,
        task: RunningTask,
        aggregator: StreamAggregator,
        handle: str,
    ) -> bool:
        """Suspend until the user answers the continue prompt or the task is cancelled."""
        resolver: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        task.pending = PendingContinuation(
            message_handle=handle,
            aggregator=aggregator,
            resolver=resolver,
        )
        waiter = asyncio.ensure_future(task.token.wait())
        try:
            await self._update(handle, self.cards.build_continue_card(self.config.max_turns))
            await asyncio.wait({resolver, waiter}, return_when=asyncio.FIRST_COMPLETED)
            return resolver.done() and resolver.result()
        finally:
            waiter.cancel()
            task.pending = None
            if not resolver.done():
                resolver.cancel()

    async def _answer_continuation(self, task: RunningTask, text: str) -> MessageOutcome:
        pending = task.pending
        if pending is None:
            return MessageOutcome.IGNORED
        reply = classify_reply(text)
        if reply == ContinuationReply.INVALID:
            await self.send_card(
                task.conversation_id,
                self.cards.build_text_card(
                    "⚠️ Invalid Response",
                    "Please reply with **yes** or **no**.",
                    "orange",
                ),
            )
            return MessageOutcome.CONTINUE_INVALID

        should_continue = reply == ContinuationReply.AFFIRMATIVE
        if not pending.resolve(should_continue):
            logger.info(f"Conversation {task.conversation_id}: continuation already answered")
            return MessageOutcome.IGNORED
        if should_continue:
            return MessageOutcome.CONTINUE_ACCEPTED
        return MessageOutcome.CONTINUE_DECLINED

    def _cancel_message(self, task: RunningTask) -> str:
        reason = task.token.reason
        if reason == CancelReason.TIMEOUT:
            return TaskTimeoutError(task.conversation_id, self.config.task_timeout_seconds).message
        if reason == CancelReason.SHUTDOWN:
            return "Task aborted: bridge is shutting down"
        return "Task stopped by user"

    async def _prepare_prompt(self, msg: InboundMessage) -> tuple[str, Path | None]:
        """Download an attached image, if any, and point the prompt at it."""
        text = msg.text.strip()
        if not msg.image_key:
            return text, None

        safe_key = re.sub(r"[^\w.-]", "_", msg.image_key)
        image_path = self.config.images_dir / f"{safe_key}.png"
        try:
            await aiofiles.os.makedirs(self.config.images_dir, exist_ok=True)
            ok = await self.surface.download_image(msg.message_id, msg.image_key, image_path)
        except Exception as e:
            logger.warning(f"Image download failed for {msg.image_key}: {e}")
            ok = False

        if ok:
            prompt = (
                f"{text}\n\n[Image saved at: {image_path}]\n"
                "Please use the Read tool to read and analyze this image file."
            )
            return prompt, image_path
        return f"{text}\n\n(Note: Failed to download the attached image)", None

    async def _deliver_artifacts(self, conversation_id: str, aggregator: StreamAggregator) -> None:
        """Send images the agent produced, skipping missing, empty or oversized files."""
        for path in sorted(aggregator.artifact_paths()):
            try:
                if not await aiofiles.os.path.isfile(path):
                    continue
                size = (await aiofiles.os.stat(path)).st_size
                if 0 < size < self.config.max_output_image_bytes:
                    logger.info(f"Sending output image {path} to {conversation_id}")
                    await self.surface.send_image(conversation_id, Path(path))
            except Exception as e:
                logger.warning(f"Failed to send output image {path}: {e}")
