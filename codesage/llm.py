"""Client for the hosted model behind the interview coach.

Wraps a single Claude Code SDK client: lazy connect, serialized queries,
timeouts, a small retry budget and periodic reconnects. Callers get plain
text back or one of the ``CoachError`` subclasses.
"""

import asyncio
import logging

from claude_code_sdk import (
    AssistantMessage,
    ClaudeCodeOptions,
    ClaudeSDKClient,
    CLINotFoundError,
    TextBlock,
)

from . import config

logger = logging.getLogger(__name__)

MAX_PROMPT_SIZE = 32 * 1024  # 32KB
CONNECT_TIMEOUT = 15  # seconds
MAX_RETRIES = 2
RETRY_BACKOFF = 1.0  # seconds
MAX_REQUESTS_PER_CLIENT = 20  # reconnect after N requests

COACH_SYSTEM_PROMPT = (
    "You are CodeSage, a friendly technical interviewer running a mock coding interview. "
    "Answer only with the text the candidate should read. No tool use. "
    "Never reveal complete solutions."
)


class CoachError(Exception):
    """The model call failed."""


class CoachUnavailableError(CoachError):
    """The model or its CLI is not installed or cannot be found."""


class CoachTimeoutError(CoachError):
    """The model did not answer in time."""


async def _close_quietly(client: ClaudeSDKClient):
    try:
        await client.disconnect()
    except Exception:
        logger.debug("Coach client disconnect failed", exc_info=True)


class CoachLLM:
    def __init__(
        self,
        system_prompt: str = COACH_SYSTEM_PROMPT,
        *,
        model: str | None = None,
        timeout: float | None = None,
    ):
        self.system_prompt = system_prompt
        self.model = model if model is not None else config.MODEL
        self.timeout = timeout if timeout is not None else config.LLM_TIMEOUT
        self._client: ClaudeSDKClient | None = None
        self._lock = asyncio.Lock()
        self._request_count = 0

    async def _get_client(self) -> ClaudeSDKClient:
        if self._client and self._request_count < MAX_REQUESTS_PER_CLIENT:
            return self._client
        await self._disconnect()
        client = ClaudeSDKClient(ClaudeCodeOptions(
            system_prompt=self.system_prompt,
            allowed_tools=[],
            max_turns=1,
            model=self.model,
        ))
        try:
            await asyncio.wait_for(client.connect(), timeout=CONNECT_TIMEOUT)
        except asyncio.TimeoutError as exc:
            await _close_quietly(client)
            raise CoachTimeoutError(f"Could not connect within {CONNECT_TIMEOUT}s") from exc
        except Exception:
            await _close_quietly(client)
            raise
        self._client = client
        self._request_count = 0
        return client

    async def _disconnect(self):
        if self._client:
            await _close_quietly(self._client)
            self._client = None
            self._request_count = 0

    async def _query_once(self, prompt: str) -> str:
        client = await self._get_client()
        await asyncio.wait_for(client.query(prompt), timeout=self.timeout)
        text = ""
        response_iter = client.receive_response().__aiter__()
        while True:
            try:
                msg = await asyncio.wait_for(response_iter.__anext__(), timeout=self.timeout)
            except StopAsyncIteration:
                break
            if isinstance(msg, AssistantMessage):
                for block in msg.content:
                    if isinstance(block, TextBlock):
                        text += block.text
        self._request_count += 1
        return text

    async def complete(self, prompt: str) -> str:
        """Send ``prompt`` and return the full reply text."""
        if len(prompt.encode("utf-8")) > MAX_PROMPT_SIZE:
            raise ValueError(
                f"Prompt too large ({len(prompt.encode('utf-8'))} bytes, max {MAX_PROMPT_SIZE})"
            )

        async with self._lock:
            last_exc: CoachError | None = None
            for attempt in range(1 + MAX_RETRIES):
                if attempt > 0:
                    await asyncio.sleep(RETRY_BACKOFF * attempt)
                try:
                    return await self._query_once(prompt)
                except CLINotFoundError as exc:
                    await self._disconnect()
                    raise CoachUnavailableError(str(exc)) from exc
                except CoachTimeoutError as exc:
                    await self._disconnect()
                    last_exc = exc
                except asyncio.TimeoutError as exc:
                    # Force reconnect on next attempt
                    await self._disconnect()
                    last_exc = CoachTimeoutError(f"No reply within {self.timeout}s")
                    last_exc.__cause__ = exc
                except Exception as exc:
                    await self._disconnect()
                    last_exc = CoachError(str(exc) or type(exc).__name__)
                    last_exc.__cause__ = exc
                logger.warning("Coach request attempt %d failed: %s", attempt + 1, last_exc)
            raise last_exc

    async def shutdown(self):
        async with self._lock:
            await self._disconnect()
