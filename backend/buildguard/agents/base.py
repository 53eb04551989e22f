"""Base agent class with LLM integration, timeout/retry logic and JSON recovery."""

import asyncio
import json
import re
import time
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from buildguard.config import Settings, get_settings
from buildguard.exceptions import GenerationTimeoutError, ParseError

logger = structlog.get_logger()

# Approximate token costs (USD per 1K tokens)
MODEL_COSTS = {
    "gpt-4o": {"input": 0.0025, "output": 0.01},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
}

# Only transient failures are retried; a bad answer is not.
RETRYABLE_ERRORS = (TimeoutError, ConnectionError)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def _log_retry(retry_state) -> None:
    logger.warning(
        "llm_retry",
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep,
        error=str(retry_state.outcome.exception()),
    )


class BaseAgent(ABC):
    """Abstract base class for model-backed collaborators."""

    def __init__(
        self,
        name: str,
        role: str,
        model_name: Optional[str] = None,
        temperature: float = 0.5,
        max_output_tokens: int = 8192,
        json_mode: bool = False,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.name = name
        self.role = role
        self.model_name = model_name or self.settings.REPAIR_MODEL
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.json_mode = json_mode
        self._llm = None

    @property
    def llm(self):
        """Lazy-initialize the LLM client."""
        if self._llm is None:
            self._llm = self._create_llm()
        return self._llm

    def _create_llm(self):
        """Create the OpenAI LLM client."""
        kwargs = {
            "model": self.model_name,
            "api_key": self.settings.OPENAI_API_KEY,
            "temperature": self.temperature,
            "max_tokens": self.max_output_tokens,
        }
        if self.json_mode:
            kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}

        return ChatOpenAI(**kwargs)

    @abstractmethod
    def get_system_prompt(self) -> str:
        """Return the system prompt for this agent."""
        ...

    @abstractmethod
    def build_user_message(self, state: dict) -> str:
        """Build the user message from the request state."""
        ...

    @abstractmethod
    def parse_response(self, raw_response: str) -> dict:
        """Parse the LLM response into structured output."""
        ...

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Estimate the cost of an LLM call."""
        costs = MODEL_COSTS.get(self.model_name, {"input": 0.003, "output": 0.015})
        return (input_tokens / 1000 * costs["input"]) + (output_tokens / 1000 * costs["output"])

    async def _call_llm(self, system_prompt: str, user_message: str) -> dict:
        """Call the LLM with a per-call timeout and bounded, jittered retries.

        Raises:
            GenerationTimeoutError: every attempt timed out
        """
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_message),
        ]
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.LLM_MAX_RETRIES),
            wait=wait_exponential_jitter(initial=self.settings.LLM_RETRY_DELAY_SECONDS, max=30),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._invoke(messages)

    async def _invoke(self, messages: list) -> dict:
        start_time = time.time()
        timeout = self.settings.LLM_TIMEOUT_SECONDS
        try:
            response = await asyncio.wait_for(self.llm.ainvoke(messages), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise GenerationTimeoutError(f"{self.role} timed out after {timeout}s") from e

        # Extract token usage from response metadata
        usage = getattr(response, "usage_metadata", {}) or {}
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        cost = self.estimate_cost(input_tokens, output_tokens)

        logger.info(
            "llm_call_complete",
            agent=self.name,
            model=self.model_name,
            duration_seconds=round(time.time() - start_time, 2),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=round(cost, 4),
        )

        return {
            "content": response.content,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cost": cost,
        }

    @staticmethod
    def _strip_code_fences(text: str) -> str:
        """Remove a surrounding markdown code fence (with or without a language tag)."""
        return _FENCE_RE.sub("", text.strip()).strip()

    @staticmethod
    def _fix_llm_json(text: str) -> str:
        """Fix common JSON formatting issues produced by LLMs.

        Drops // comments and trailing commas before } or ]. String values are
        copied through untouched.
        """
        out = []
        in_string, escape_next = False, False
        i, n = 0, len(text)
        while i < n:
            ch = text[i]
            if in_string:
                if escape_next:
                    escape_next = False
                elif ch == "\\":
                    escape_next = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif text.startswith("//", i):
                newline = text.find("\n", i)
                i = n if newline == -1 else newline
                continue
            elif ch == "," and BaseAgent._closes_next(text, i + 1):
                i += 1
                continue
            out.append(ch)
            i += 1
        return "".join(out)

    @staticmethod
    def _closes_next(text: str, i: int) -> bool:
        """True if the next token after whitespace and comments is } or ]."""
        n = len(text)
        while i < n:
            if text[i].isspace():
                i += 1
            elif text.startswith("//", i):
                newline = text.find("\n", i)
                i = n if newline == -1 else newline
            else:
                return text[i] in "}]"
        return False

    @staticmethod
    def _extract_json_object(text: str) -> Optional[str]:
        """Find and extract the first complete JSON object from text.

        An object cut off mid-way is closed by appending the missing braces.
        """
        match = re.search(r"\{", text)
        if not match:
            return None
        # Walk through characters tracking open brackets outside of strings
        closers = {"{": "}", "[": "]"}
        stack, in_string, escape_next = [], False, False
        start = match.start()
        for i in range(start, len(text)):
            ch = text[i]
            if escape_next:
                escape_next = False
            elif ch == "\\":
                escape_next = True
            elif ch == '"':
                in_string = not in_string
            elif not in_string and ch in closers:
                stack.append(closers[ch])
            elif not in_string and ch in "}]":
                if not stack:
                    return None
                stack.pop()
                if not stack:
                    return text[start:i + 1]
        if in_string or not stack:
            return None
        return text[start:].rstrip().rstrip(",") + "".join(reversed(stack))

    def _safe_parse_json(self, text: str) -> dict:
        """Parse a model response, trying progressively more forgiving recoveries.

        Raises:
            ParseError: nothing in the response could be recovered as JSON
        """
        cleaned = self._strip_code_fences(text)
        recoveries = (
            ("as_is", lambda t: t),
            ("fix_llm_json", self._fix_llm_json),
            ("extract_object", lambda t: self._fix_llm_json(self._extract_json_object(t) or "")),
        )

        for method, recover in recoveries:
            candidate = recover(cleaned)
            if not candidate:
                continue
            try:
                result = json.loads(candidate)
            except json.JSONDecodeError as e:
                logger.warning("json_parse_attempt_failed", agent=self.name, method=method, error=str(e))
                continue
            if method != "as_is":
                logger.info("json_parse_recovered", agent=self.name, method=method)
            return result

        logger.error(
            "json_parse_all_attempts_failed",
            agent=self.name,
            response_length=len(text),
            response_preview=cleaned[:500],
        )
        raise ParseError(f"{self.role} returned output that is not valid JSON", raw=text)
