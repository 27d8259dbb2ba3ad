"""
Completion Bridge

Forwards a grounded system prompt plus trimmed history to OpenAI chat
completions, either as a single string or as a stream of text pieces.

The bridge never raises. Any of the following ends in FALLBACK_RESPONSE:
- OPENAI_API_KEY missing
- daily or monthly spending limit reached
- API error after retries, or timeout
- empty answer
- a history entry without role or content

With stream=True the fallback is delivered as one streamed piece. A stream that
fails after it has already produced text is simply ended; the visitor keeps
what was sent.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Sequence, Union

from openai import AsyncOpenAI

from docent.openai_client import call_with_retry, get_openai_client
from docent.usage import UsageMonitor

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = (
    "I'm sorry, I'm having trouble connecting to my knowledge base right now. "
    "Please try asking your question again in a moment."
)


@dataclass
class CompletionOptions:
    """Per-call options; None falls back to docent.config."""
    model: Optional[str] = None
    max_output_tokens: Optional[int] = None
    temperature: Optional[float] = None
    stream: bool = False


class CompletionBridge:
    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        usage: Optional[UsageMonitor] = None,
        timeout_seconds: Optional[float] = None,
    ):
        from docent import config

        self._client = client
        self.usage = usage
        self.timeout_seconds = timeout_seconds or config.COMPLETION_TIMEOUT_SECONDS

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_openai_client(self.timeout_seconds)
        return self._client

    def _resolve(self, options: Optional[CompletionOptions]) -> CompletionOptions:
        from docent import config

        options = options or CompletionOptions()
        return CompletionOptions(
            model=options.model or config.CHAT_MODEL,
            max_output_tokens=options.max_output_tokens or config.CHAT_MAX_OUTPUT_TOKENS,
            temperature=config.CHAT_TEMPERATURE if options.temperature is None else options.temperature,
            stream=options.stream,
        )

    def _usage_allowed(self) -> bool:
        if self.usage is None:
            return True
        allowed, reason = self.usage.check_limits()
        if not allowed:
            logger.warning(f"[COMPLETION] Refusing completion: {reason}")
        return allowed

    def _record_usage(self, model: str, usage) -> None:
        if self.usage is None or usage is None:
            return
        prompt_tokens = getattr(usage, "prompt_tokens", None)
        completion_tokens = getattr(usage, "completion_tokens", None)
        if isinstance(prompt_tokens, int) and isinstance(completion_tokens, int):
            self.usage.record_completion(model, prompt_tokens, completion_tokens)

    async def complete(
        self,
        prompt: str,
        history: Sequence[Dict[str, str]],
        options: Optional[CompletionOptions] = None,
    ) -> Union[str, AsyncIterator[str]]:
        """Run one chat completion.

        Args:
            prompt: System prompt from build_prompt().
            history: Trimmed conversation, oldest first, ending with the visitor's message.
            options: Model, output budget, temperature and streaming flag.

        Returns:
            The answer text, or an async iterator of text pieces when streaming.
        """
        options = self._resolve(options)
        try:
            messages = [{"role": "system", "content": prompt}] + [
                {"role": m["role"], "content": m["content"]} for m in history
            ]
        except (KeyError, TypeError) as e:
            logger.error(f"[COMPLETION] Malformed conversation history: {type(e).__name__}: {e}")
            if options.stream:
                return self._fallback_stream()
            return FALLBACK_RESPONSE

        if options.stream:
            return self._stream(messages, options)
        return await self._complete_text(messages, options)

    async def _fallback_stream(self) -> AsyncIterator[str]:
        yield FALLBACK_RESPONSE

    async def _complete_text(self, messages: List[Dict[str, str]], options: CompletionOptions) -> str:
        if not self._usage_allowed():
            return FALLBACK_RESPONSE
        try:
            client = self.client
            response = await call_with_retry(
                lambda: client.chat.completions.create(
                    model=options.model,
                    messages=messages,
                    max_tokens=options.max_output_tokens,
                    temperature=options.temperature,
                    stream=False,
                ),
                operation_name="chat completion",
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as e:
            logger.error(f"[COMPLETION] Chat completion failed: {type(e).__name__}: {e}")
            return FALLBACK_RESPONSE

        self._record_usage(options.model, getattr(response, "usage", None))
        content = response.choices[0].message.content if response.choices else None
        if not content:
            logger.warning("[COMPLETION] Empty answer from completion service")
            return FALLBACK_RESPONSE

        logger.info(f"[COMPLETION] Answer: {len(content)} chars")
        return content

    async def _stream(self, messages: List[Dict[str, str]], options: CompletionOptions) -> AsyncIterator[str]:
        if not self._usage_allowed():
            yield FALLBACK_RESPONSE
            return

        stream = None
        sent = 0
        try:
            client = self.client
            stream = await call_with_retry(
                lambda: client.chat.completions.create(
                    model=options.model,
                    messages=messages,
                    max_tokens=options.max_output_tokens,
                    temperature=options.temperature,
                    stream=True,
                    stream_options={"include_usage": True},
                ),
                operation_name="chat completion stream",
                timeout_seconds=self.timeout_seconds,
            )

            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.timeout_seconds
            events = stream.__aiter__()
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                try:
                    event = await asyncio.wait_for(events.__anext__(), timeout=remaining)
                except StopAsyncIteration:
                    break

                self._record_usage(options.model, getattr(event, "usage", None))
                if not event.choices:
                    continue
                content = event.choices[0].delta.content
                if content:
                    sent += len(content)
                    yield content
        except Exception as e:
            if sent:
                logger.error(
                    f"[COMPLETION] Stream failed after {sent} chars, ending early: {type(e).__name__}: {e}"
                )
            else:
                logger.error(f"[COMPLETION] Stream failed: {type(e).__name__}: {e}")
                yield FALLBACK_RESPONSE
            return
        finally:
            if stream is not None:
                try:
                    await stream.close()
                except Exception as e:
                    logger.warning(f"[COMPLETION] Error closing upstream stream: {e}")

        if not sent:
            logger.warning("[COMPLETION] Empty streamed answer from completion service")
            yield FALLBACK_RESPONSE
        else:
            logger.info(f"[COMPLETION] Streamed answer: {sent} chars")
