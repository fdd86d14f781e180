"""Turn-taking agent loop: model call, tool dispatch, repeat."""

from __future__ import annotations

import itertools
import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import AgentError, LLMApiError, LLMInvalidResponseError
from .events import (
    AgentEvent,
    error_event,
    message_end_event,
    message_start_event,
    text_delta_event,
    tool_call_end_event,
    tool_call_result_event,
    tool_call_start_event,
)
from .executor import ExecutionContext, ToolExecutor
from .model import Finish, ModelClient, ModelInput, TextDelta, ToolCallStart
from .schemas import Message, ToolCallBlock
from .session import Session, SessionStatus, SessionStore
from .stream import ArgumentStrategy, StreamAggregator
from .tools import ToolRegistry

if TYPE_CHECKING:
    from .settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentConfig:
    max_steps: int = 100
    argument_strategy: ArgumentStrategy = ArgumentStrategy.REPLACE

    def __post_init__(self) -> None:
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AgentConfig":
        return cls(
            max_steps=settings.agent.max_steps,
            argument_strategy=ArgumentStrategy(settings.agent.argument_strategy),
        )


class RunLog(list):
    """Message log returned by `Agent.run`.

    `truncated` is set when the step budget ran out while the model was still
    requesting tools.
    """

    def __init__(self, messages: Iterable[Message] = (), *, steps: int = 0, truncated: bool = False):
        super().__init__(messages)
        self.steps = steps
        self.truncated = truncated


class Agent:
    """Drives one conversation against a model client and a tool registry."""

    def __init__(
        self,
        session: Session | SessionStore,
        model_client: ModelClient,
        registry: ToolRegistry,
        config: AgentConfig | None = None,
    ):
        self.store = session if isinstance(session, SessionStore) else SessionStore(session)
        self.model_client = model_client
        self.registry = registry
        self.executor = ToolExecutor(registry)
        self.config = config or AgentConfig()

    def session_id(self) -> str:
        return self.store.id

    async def messages(self) -> list[Message]:
        return await self.store.messages()

    def _log_extra(self) -> dict[str, str]:
        return {"session_id": self.session_id()}

    async def _build_input(self) -> ModelInput:
        snapshot = await self.store.snapshot()
        return ModelInput(
            model=snapshot.model.name,
            messages=snapshot.messages,
            system_prompt=snapshot.system_prompt,
            tools=self.executor.tool_definitions(),
            max_tokens=snapshot.model.max_tokens,
            temperature=snapshot.model.temperature,
            extra=dict(snapshot.model.extra),
        )

    # ----- Batch mode -----------------------------------------------------

    async def run(self, user_input: str) -> RunLog:
        """Run until the model stops requesting tools or the budget is spent.

        Model client failures propagate as `LLMError` after the session is
        marked as errored. Tool failures are fed back to the model.
        """
        log_extra = self._log_extra()
        await self.store.append(Message.user(user_input))
        await self.store.set_status(SessionStatus.RUNNING)
        logger.info("run started max_steps=%s", self.config.max_steps, extra=log_extra)

        steps = 0
        truncated = False
        try:
            for step in range(1, self.config.max_steps + 1):
                steps = step
                request = await self._build_input()
                output = await self.model_client.complete(request)
                assistant = Message.assistant(output.content)
                _check_tool_call_ids(assistant)
                await self.store.append(assistant)
                calls = assistant.tool_calls()
                if not calls:
                    break
                context = ExecutionContext(self.session_id(), assistant.id)
                results = await self.executor.execute_all(calls, context)
                await self.store.append(Message.tool_results(results))
            else:
                truncated = True
        except Exception as exc:
            await self.store.set_status(SessionStatus.ERROR)
            logger.warning(
                "run failed step=%s error_type=%s error=%s",
                steps,
                type(exc).__name__,
                exc,
                extra=log_extra,
            )
            raise

        await self.store.set_status(SessionStatus.COMPLETED)
        if truncated:
            logger.warning(
                "run stopped at step budget max_steps=%s", self.config.max_steps, extra=log_extra
            )
        logger.info("run completed steps=%s truncated=%s", steps, truncated, extra=log_extra)
        return RunLog(await self.store.messages(), steps=steps, truncated=truncated)

    # ----- Streaming mode -------------------------------------------------

    async def stream(self, user_input: str | None = None) -> AsyncIterator[AgentEvent]:
        """Run the loop while yielding progress events.

        A turn is persisted only once it completes: closing the generator
        before that, or a model client error, leaves the session without the
        partial assistant message. When `user_input` is None the run continues
        from the existing log.
        """
        session_id = self.session_id()
        log_extra = self._log_extra()
        counter = itertools.count()

        def emit(event: AgentEvent) -> AgentEvent:
            event.seq = next(counter)
            return event

        if user_input is not None:
            await self.store.append(Message.user(user_input))
        await self.store.set_status(SessionStatus.RUNNING)
        logger.info("stream started max_steps=%s", self.config.max_steps, extra=log_extra)

        finished = False
        try:
            for step in range(1, self.config.max_steps + 1):
                yield emit(message_start_event(session_id, step=step))
                aggregator = StreamAggregator(
                    self.config.argument_strategy, session_id=session_id
                )
                names: dict[str, str] = {}
                try:
                    request = await self._build_input()
                    events = self.model_client.stream(request)
                    try:
                        async for event in events:
                            closed = aggregator.feed(event)
                            if isinstance(event, TextDelta) and event.text:
                                yield emit(text_delta_event(session_id, event.text, step=step))
                            elif isinstance(event, ToolCallStart):
                                names[event.id] = event.name
                                yield emit(
                                    tool_call_start_event(
                                        session_id,
                                        tool_call_id=event.id,
                                        name=event.name,
                                        step=step,
                                    )
                                )
                            for block in closed:
                                yield emit(_tool_call_end(session_id, block, step))
                            if isinstance(event, Finish):
                                break
                    finally:
                        aclose = getattr(events, "aclose", None)
                        if aclose is not None:
                            await aclose()
                    assistant = aggregator.build_message()
                except Exception as exc:
                    error = exc if isinstance(exc, AgentError) else _as_llm_error(exc)
                    finished = True
                    await self.store.set_status(SessionStatus.ERROR)
                    logger.warning(
                        "stream turn aborted step=%s error_type=%s error=%s",
                        step,
                        type(error).__name__,
                        error,
                        extra=log_extra,
                    )
                    yield emit(error_event(session_id, error, step=step))
                    return

                calls = assistant.tool_calls()
                if not calls:
                    await self.store.append(assistant)
                    finished = True
                    await self.store.set_status(SessionStatus.COMPLETED)
                    yield emit(
                        message_end_event(
                            session_id,
                            finish_reason=aggregator.finish_reason,
                            usage=aggregator.usage,
                            message_id=assistant.id,
                            step=step,
                        )
                    )
                    logger.info("stream completed steps=%s", step, extra=log_extra)
                    return

                truncated = step == self.config.max_steps
                yield emit(
                    message_end_event(
                        session_id,
                        finish_reason=aggregator.finish_reason,
                        usage=aggregator.usage,
                        message_id=assistant.id,
                        truncated=truncated,
                        step=step,
                    )
                )
                context = ExecutionContext(session_id, assistant.id)
                results = await self.executor.execute_all(calls, context)
                await self.store.append(assistant, Message.tool_results(results))
                for result in results:
                    yield emit(
                        tool_call_result_event(
                            session_id,
                            tool_call_id=result.tool_call_id,
                            name=names.get(result.tool_call_id, ""),
                            result=result.result,
                            is_error=bool(result.is_error),
                            step=step,
                        )
                    )

            finished = True
            await self.store.set_status(SessionStatus.COMPLETED)
            logger.warning(
                "stream stopped at step budget max_steps=%s",
                self.config.max_steps,
                extra=log_extra,
            )
        except Exception:
            finished = True
            await self.store.set_status(SessionStatus.ERROR)
            raise
        finally:
            if not finished:
                # Consumer stopped pulling; the in-progress turn is dropped.
                logger.info("stream closed by consumer", extra=log_extra)
                if await self.store.status() == SessionStatus.RUNNING:
                    await self.store.set_status(SessionStatus.COMPLETED)


def _tool_call_end(session_id: str, block: ToolCallBlock, step: int) -> AgentEvent:
    return tool_call_end_event(
        session_id,
        tool_call_id=block.id,
        name=block.name,
        arguments=block.arguments,
        step=step,
    )


def _as_llm_error(exc: Exception) -> LLMApiError:
    error = LLMApiError(str(exc) or type(exc).__name__, details={"cause": type(exc).__name__})
    error.__cause__ = exc
    return error


def _check_tool_call_ids(message: Message) -> None:
    ids = [call.id for call in message.tool_calls()]
    if len(ids) != len(set(ids)):
        raise LLMInvalidResponseError(
            "duplicate tool call id in model output", details={"tool_call_ids": ids}
        )
