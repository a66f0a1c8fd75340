"""
CRM Direct Bridge Tests
=======================

Follow-up classification, gateway result/failure directives and the
single plain completion per CRM turn.
"""

from unittest.mock import AsyncMock

import pytest

from chat_labs.config import CrmConfig
from chat_labs.models.chat_models import ChatThread, StreamEventType, UserInfo
from chat_labs.services.crm_bridge import (
    CrmDirectBridge, TRUNCATION_MARKER, is_follow_up, is_japanese, serialize_result
)
from chat_labs.services.crm_gateway_client import GatewayResponse


@pytest.fixture
def config():
    return CrmConfig(extension_id="crm-ext", gateway_url="https://crm.example.com/query", max_result_chars=200)


@pytest.fixture
def gateway():
    mock = AsyncMock()
    mock.query.return_value = GatewayResponse(success=True, data={"records": [{"name": "Acme"}]}, status=200)
    return mock


@pytest.fixture
def bridge(gateway, llm, config):
    return CrmDirectBridge(gateway, llm, config)


@pytest.fixture
def thread():
    return ChatThread(id="t1", user_id="u1", extension=["crm-ext"])


async def collect(stream):
    return [event async for event in stream]


class TestFollowUpClassifier:

    @pytest.mark.parametrize("message", [
        "案件の金額を教えて",
        "先月の商談一覧",
        "show me the top 10 deals",
        "list accounts in Tokyo",
        "hello",
    ])
    def test_new_queries(self, message):
        assert is_follow_up(message) is False

    @pytest.mark.parametrize("message", [
        "その理由は？",
        "why did that happen?",
        "改善するには？",
        "これを詳しく",
    ])
    def test_follow_ups(self, message):
        assert is_follow_up(message) is True

    @pytest.mark.parametrize("message", ["失注の理由を一覧で", "前回の商談の振り返りで次のアクションは？"])
    def test_data_noun_beats_analysis_word(self, message):
        assert is_follow_up(message) is False

    def test_long_anaphoric_message_is_not_follow_up(self):
        assert is_follow_up("それ" + "あ" * 60) is False


class TestHelpers:

    def test_is_japanese(self):
        assert is_japanese("案件を見せて")
        assert is_japanese("カタカナ")
        assert not is_japanese("show me deals")

    def test_serialize_result_within_limit(self):
        assert serialize_result({"a": 1}, 100) == '{\n  "a": 1\n}'

    def test_serialize_result_truncates_with_marker(self):
        text = serialize_result({"records": ["x" * 50] * 20}, 100)
        assert text.endswith(TRUNCATION_MARKER.format(limit=100))
        assert len(text) < 100 + len(TRUNCATION_MARKER) + 10


class TestDirectives:

    @pytest.mark.asyncio
    async def test_follow_up_skips_gateway(self, bridge, gateway):
        directive = await bridge.build_directive("その理由は？")
        gateway.query.assert_not_called()
        assert "履歴" in directive

    @pytest.mark.asyncio
    async def test_result_directive_contains_json(self, bridge, gateway):
        user = UserInfo(id="u1", email="taro@example.com")
        directive = await bridge.build_directive("案件の金額を教えて", user)
        gateway.query.assert_awaited_once_with("案件の金額を教えて", "taro@example.com")
        assert "```json" in directive
        assert '"name": "Acme"' in directive
        assert "| No. | Name | Account | Amount | Stage | Close Date | Owner | Link |" in directive

    @pytest.mark.asyncio
    async def test_failure_directive_names_status(self, bridge, gateway):
        gateway.query.return_value = GatewayResponse(success=False, status=500, error="HTTP 500")
        directive = await bridge.build_directive("案件の金額を教えて")
        assert "HTTP 500" in directive
        assert "CRMゲートウェイ" in directive

    @pytest.mark.asyncio
    async def test_failure_directive_in_english(self, bridge, gateway):
        gateway.query.return_value = GatewayResponse(success=False, error="timeout")
        directive = await bridge.build_directive("list deals closing this month")
        assert "could not retrieve data (timeout)" in directive

    @pytest.mark.asyncio
    async def test_large_result_is_truncated(self, bridge, gateway):
        gateway.query.return_value = GatewayResponse(
            success=True, data={"records": [{"name": "x" * 40}] * 20}, status=200
        )
        directive = await bridge.build_directive("show all records")
        assert TRUNCATION_MARKER.format(limit=200) in directive


class TestStream:

    @pytest.mark.asyncio
    async def test_one_plain_completion_with_single_directive(self, bridge, llm, thread):
        history = [
            {"role": "user", "content": "前回の質問"},
            {"role": "system", "content": "古い指示\n```json\n{}\n```"},
            {"role": "assistant", "content": "前回の回答"},
        ]
        transcript = []
        events = await collect(bridge.stream(
            thread, "persona", "案件の金額を教えて", history, transcript=transcript
        ))

        assert events[-1].type == StreamEventType.FINAL_CONTENT
        assert len(llm.calls) == 1
        call = llm.calls[0]
        assert call["tools"] is None

        messages = call["messages"]
        assert messages[0] == {"role": "system", "content": "persona"}
        assert messages[-1] == {"role": "user", "content": "案件の金額を教えて"}
        directives = [m for m in messages[1:] if m["role"] == "system"]
        assert len(directives) == 1
        assert messages[-2] is directives[0]
        assert transcript == [{"role": "assistant", "content": "回答です"}]

    @pytest.mark.asyncio
    async def test_gateway_failure_still_streams_answer(self, bridge, gateway, llm, thread):
        gateway.query.return_value = GatewayResponse(success=False, status=500, error="HTTP 500")
        events = await collect(bridge.stream(thread, "persona", "案件の金額を教えて", []))
        assert events[-1].type == StreamEventType.FINAL_CONTENT
        assert "HTTP 500" in llm.calls[0]["messages"][-2]["content"]

    @pytest.mark.asyncio
    async def test_crm_model_override(self, bridge, llm, thread, config):
        config.chat_model = "gpt-4.1-crm"
        await collect(bridge.stream(thread, "persona", "その理由は？", []))
        assert llm.calls[0]["model"] == "gpt-4.1-crm"

    def test_thread_model_used_without_override(self, bridge):
        thread = ChatThread(id="t1", user_id="u1", extension=["crm-ext"], model="gpt-4o")
        assert bridge.resolve_model(thread) == "gpt-4o"

    def test_is_active(self, bridge, thread):
        assert bridge.is_active(thread)
        assert not bridge.is_active(ChatThread(id="t2", user_id="u1", extension=["other"]))

    def test_inactive_without_configured_extension(self, gateway, llm):
        bridge = CrmDirectBridge(gateway, llm, CrmConfig())
        assert not bridge.is_active(ChatThread(id="t1", user_id="u1", extension=[""]))
