"""
Base Agent Framework

Abstract base class for the agents of the query pipeline.
Provides a consistent interface, timing, logging, retry and error handling,
plus a bounded model-call helper shared by every agent.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self, llm_provider):
            super().__init__(name="MyAgent", llm_provider=llm_provider)

        async def execute(self, input: AgentInput) -> AgentOutput:
            response = await self._generate(LLMRequest(messages=[...]))
            return AgentOutput(
                success=True,
                data={"text": response.content},
                metadata=self._create_metadata(),
            )
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from contextvars import ContextVar

from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.models import LLMRequest, LLMResponse
from querypilot.models.agent import (
    AgentError,
    AgentInput,
    AgentMetadata,
    AgentOutput,
    LLMError,
)

logger = logging.getLogger(__name__)

# Metadata of the agent call running in the current task
_current_metadata: ContextVar[AgentMetadata | None] = ContextVar("agent_metadata", default=None)


class BaseAgent(ABC):
    """
    Abstract base class for all agents.

    Responsibilities:
        - Define standard interface via execute() method
        - Provide timing and performance tracking
        - Retry recoverable errors with exponential backoff
        - Bound and count model calls

    Attributes:
        name: Unique identifier for this agent
        llm: Provider used for model calls (may be None for pure agents)
        max_retries: Retry attempts on recoverable errors
        model_timeout: Seconds allowed per model call (None = unbounded)
    """

    def __init__(
        self,
        name: str,
        llm_provider: BaseLLMProvider | None = None,
        max_retries: int = 1,
        model_timeout: float | None = None,
    ):
        self.name = name
        self.llm = llm_provider
        self.max_retries = max_retries
        self.model_timeout = model_timeout

        logger.debug(
            f"Initialized {self.name}",
            extra={
                "agent": self.name,
                "max_retries": max_retries,
                "model_timeout": model_timeout,
                "provider": getattr(llm_provider, "provider_name", None),
            },
        )

    @abstractmethod
    async def execute(self, input: AgentInput) -> AgentOutput:
        """
        Execute the agent's core logic.

        Raises:
            AgentError: On execution failures (recoverable or not)
        """
        pass  # pragma: no cover - abstract method

    async def __call__(self, input: AgentInput) -> AgentOutput:
        """
        Execute the agent with timing, logging, and error handling.

        Recoverable ``AgentError``s are retried up to ``max_retries`` times;
        anything else is wrapped in a non-recoverable ``AgentError``.
        ``asyncio.CancelledError`` is never caught.
        """
        start_time = time.perf_counter()
        attempt = 0
        outer = _current_metadata.set(None)

        logger.info(
            f"Starting {self.name}",
            extra={
                "agent": self.name,
                "query": input.query[:100],
                "context_keys": list(input.context.keys()),
            },
        )

        try:
            while True:
                metadata = self._create_metadata()
                _current_metadata.set(metadata)
                try:
                    output = await self.execute(input)

                    duration_ms = (time.perf_counter() - start_time) * 1000
                    metadata.mark_complete()
                    metadata.duration_ms = duration_ms
                    output.metadata = metadata

                    logger.info(
                        f"Completed {self.name}",
                        extra={
                            "agent": self.name,
                            "success": output.success,
                            "duration_ms": duration_ms,
                            "attempt": attempt + 1,
                            "llm_calls": metadata.llm_calls,
                        },
                    )
                    return output

                except AgentError as e:
                    attempt += 1
                    logger.warning(
                        f"Agent error in {self.name}: {e.message}",
                        extra={
                            "agent": self.name,
                            "recoverable": e.recoverable,
                            "attempt": attempt,
                            "max_retries": self.max_retries,
                            "context": e.context,
                        },
                    )

                    if not e.recoverable or attempt > self.max_retries:
                        self._finish_with_error(metadata, start_time, e)
                        logger.error(
                            f"Failed {self.name} after {attempt} attempts",
                            extra={"agent": self.name, "error": str(e), "attempts": attempt},
                        )
                        raise

                    wait_time = 2 ** (attempt - 1)
                    logger.info(
                        f"Retrying {self.name} in {wait_time}s",
                        extra={"agent": self.name, "wait_time": wait_time},
                    )
                    await self._sleep(wait_time)

                except Exception as e:
                    self._finish_with_error(metadata, start_time, e)
                    logger.error(
                        f"Unexpected error in {self.name}",
                        extra={
                            "agent": self.name,
                            "error": str(e),
                            "error_type": type(e).__name__,
                        },
                        exc_info=True,
                    )
                    raise AgentError(
                        agent=self.name,
                        message=f"Unexpected error: {e}",
                        recoverable=False,
                        context={"error_type": type(e).__name__},
                    ) from e
        finally:
            _current_metadata.reset(outer)

    def _finish_with_error(
        self, metadata: AgentMetadata, start_time: float, error: Exception
    ) -> None:
        metadata.mark_complete()
        metadata.duration_ms = (time.perf_counter() - start_time) * 1000
        metadata.error = str(error)

    def _create_metadata(self) -> AgentMetadata:
        return AgentMetadata(agent_name=self.name)

    @property
    def metadata(self) -> AgentMetadata:
        """
        Metadata of this agent's call in the current task.

        Each call gets its own record; outside a call a fresh one is returned.
        """
        current = _current_metadata.get()
        if current is None or current.agent_name != self.name:
            return self._create_metadata()
        return current

    def _track_llm_call(self, tokens: int | None = None) -> None:
        """
        Track an LLM API call in metadata.

        Args:
            tokens: Optional token count for this call
        """
        metadata = _current_metadata.get()
        if metadata is None or metadata.agent_name != self.name:
            return
        metadata.llm_calls += 1
        if tokens:
            metadata.tokens_used = (metadata.tokens_used or 0) + tokens

    async def _generate(self, request: LLMRequest) -> LLMResponse:
        """
        Call the model once, bounded by ``model_timeout``.

        Raises:
            LLMError: Provider failure or timeout (recoverable)
        """
        if self.llm is None:
            raise AgentError(self.name, "No LLM provider configured", recoverable=False)

        try:
            if self.model_timeout is not None:
                response = await asyncio.wait_for(
                    self.llm.generate(request), timeout=self.model_timeout
                )
            else:
                response = await self.llm.generate(request)
        except (TimeoutError, asyncio.TimeoutError) as exc:
            raise LLMError(
                self.name,
                f"Model call timed out after {self.model_timeout}s",
                context={"provider": self.llm.provider_name},
            ) from exc
        except AgentError:
            raise
        except Exception as exc:
            raise LLMError(
                self.name,
                f"Model call failed: {exc}",
                context={"provider": self.llm.provider_name, "error_type": type(exc).__name__},
            ) from exc

        self._track_llm_call(response.usage.total_tokens)
        return response

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
