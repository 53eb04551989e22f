"""
Tests for the repair agent: JSON recovery, prompt building and the retry wrapper.

The model client is always replaced; nothing here touches the network.
"""
import asyncio
from types import SimpleNamespace

import pytest

from buildguard.agents.base import BaseAgent
from buildguard.agents.repairer import RepairAgent
from buildguard.config import RepairConfig, Settings
from buildguard.exceptions import GenerationTimeoutError, ParseError
from buildguard.router import route_prompt


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def settings():
    return Settings(OPENAI_API_KEY="test", LLM_MAX_RETRIES=3, LLM_RETRY_DELAY_SECONDS=0.01)


@pytest.fixture
def agent(settings):
    return RepairAgent(settings=settings)


class FakeLLM:
    """Stands in for ChatOpenAI.ainvoke."""

    def __init__(self, content="{}", delay=0.0):
        self.content = content
        self.delay = delay
        self.calls = 0

    async def ainvoke(self, messages):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return SimpleNamespace(
            content=self.content,
            usage_metadata={"input_tokens": 1000, "output_tokens": 1000},
        )


class TestJsonRecovery:

    def test_strip_code_fences(self):
        assert BaseAgent._strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert BaseAgent._strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'

    def test_fix_trailing_commas_and_comments(self):
        text = '{\n// the walls\n"a": [1, 2,],\n}'
        assert BaseAgent._fix_llm_json(text).replace("\n", "") == '{"a": [1, 2]}'

    def test_fix_leaves_string_values_alone(self):
        text = '{"note": "a,}", "url": "http://x/y", "b": [1, // one\n],}'
        assert BaseAgent._fix_llm_json(text) == '{"note": "a,}", "url": "http://x/y", "b": [1 \n]}'

    def test_extract_first_object(self):
        text = 'Here you go: {"a": {"b": [1, 2]}, "c": "}"} and more {"d": 1}'
        assert BaseAgent._extract_json_object(text) == '{"a": {"b": [1, 2]}, "c": "}"}'

    def test_extract_closes_truncated_object(self):
        assert BaseAgent._extract_json_object('{"a": [1, 2,') == '{"a": [1, 2]}'
        assert BaseAgent._extract_json_object('{"a": {"b": 1') == '{"a": {"b": 1}}'

    def test_extract_gives_up(self):
        assert BaseAgent._extract_json_object("no json here") is None
        assert BaseAgent._extract_json_object('{"a": "unterminated') is None

    def test_safe_parse_recovers_wrapped_json(self, agent):
        assert agent._safe_parse_json('Sure!\n{"steps": [],}\nHope that helps') == {"steps": []}

    def test_safe_parse_raises_with_raw_text(self, agent):
        with pytest.raises(ParseError) as exc_info:
            agent._safe_parse_json("I cannot help with that")
        assert exc_info.value.raw == "I cannot help with that"


class TestParseResponse:

    def test_unwraps_echoed_envelope(self, agent):
        raw = '{"blueprintVersion": "1.0.0", "payload": {"palette": [], "steps": []}}'
        assert agent.parse_response(raw) == {"palette": [], "steps": []}

    def test_non_object_is_rejected(self, agent):
        with pytest.raises(ParseError):
            agent.parse_response("[1, 2, 3]")


class TestUserMessage:

    def test_sections(self, agent, house_envelope):
        message = agent.build_user_message({
            "envelope": house_envelope,
            "errors": ["Roof floats", "Unknown block"],
            "intent": route_prompt("a cosy cottage"),
        })
        assert "## Validation Errors\n1. Roof floats\n2. Unknown block" in message
        assert '"buildType": "house"' in message
        assert "- Kind: ops_script" in message
        assert "- Version: 1.0.0" in message
        assert "Previous Attempt Failed" not in message

    def test_retry_and_missing_intent(self, agent, house_envelope):
        message = agent.build_user_message({"envelope": house_envelope, "errors": [], "attempt": 1})
        assert "This is attempt 2." in message
        assert "Not provided" in message
        assert "None reported" in message

    def test_payload_is_truncated(self, settings, house_envelope):
        agent = RepairAgent(config=RepairConfig(max_payload_size=50), settings=settings)
        message = agent.build_user_message({"envelope": house_envelope, "errors": ["e"]})
        assert "... (truncated)" in message


class TestModelCalls:

    def test_invoke_reports_usage_and_cost(self, agent):
        agent._llm = FakeLLM(content='{"steps": []}')
        result = run(agent._call_llm("system", "user"))
        assert result["content"] == '{"steps": []}'
        assert result["input_tokens"] == 1000
        assert result["cost"] == pytest.approx(0.0025 + 0.01)

    def test_timeout_is_retried_then_raised(self, settings):
        settings.LLM_TIMEOUT_SECONDS = 0.01
        agent = RepairAgent(settings=settings)
        agent._llm = FakeLLM(delay=1.0)
        with pytest.raises(GenerationTimeoutError):
            run(agent._call_llm("system", "user"))
        assert agent._llm.calls == 3

    def test_transient_error_recovers(self, agent):
        outcomes = [ConnectionError("reset"), {"content": "{}", "input_tokens": 0, "output_tokens": 0, "cost": 0}]

        async def flaky(messages):
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        agent._invoke = flaky
        assert run(agent._call_llm("system", "user"))["content"] == "{}"
        assert outcomes == []

    def test_bad_answers_are_not_retried(self, agent):
        calls = []

        async def broken(messages):
            calls.append(messages)
            raise ParseError("nope")

        agent._invoke = broken
        with pytest.raises(ParseError):
            run(agent._call_llm("system", "user"))
        assert len(calls) == 1

    def test_repair_returns_payload(self, agent, house_envelope, monkeypatch):
        async def fake_call(system_prompt, user_message):
            assert "Fix every listed error" in system_prompt
            return {"content": '```json\n{"payload": {"palette": ["stone"], "steps": []}}\n```'}

        monkeypatch.setattr(agent, "_call_llm", fake_call)
        payload = run(agent.repair(house_envelope, ["e"], attempt=0))
        assert payload == {"palette": ["stone"], "steps": []}
