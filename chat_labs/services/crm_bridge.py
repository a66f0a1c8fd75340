"""
CRM Direct Bridge
=================

Direct-answer path for threads with the CRM extension enabled. Instead of
letting the model pick tools, every turn is answered by one plain
completion, preceded by exactly one injected system directive:

- Follow-up questions about data already shown are answered from history
  only.
- Anything else is sent to the CRM gateway and the JSON result (or a
  description of the failure) is injected for the model to render.
"""

import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional

from ..config import CrmConfig, resolve_default_model
from ..models.chat_models import ChatThread, StreamEvent, UserInfo
from .cancellation import CancellationSignal
from .crm_gateway_client import CrmGatewayClient, GatewayResponse
from .history_sanitizer import sanitize_history
from .llm_service import LLMService
from .phrase_rules import PhraseText, first_match, phrases
from .reasoning_modes import GenerationOptions

logger = logging.getLogger(__name__)

FOLLOW_UP_MAX_CHARS = 40
TRUNCATION_MARKER = "... [truncated: result exceeded {limit} characters]"

DATA_NOUNS = (
    "商談", "取引先", "案件", "活動", "売上", "受注", "失注", "レコード", "金額",
    "opportunity", "opportunities", "account", "accounts", "record", "records",
    "activity", "activities", "sales", "revenue", "won", "lost", "deal", "deals",
)

REQUERY_WORDS = (
    "一覧", "リスト", "検索", "抽出", "絞り込", "並び替え", "ソート", "上位", "ランキング",
    "今月", "先月", "今週", "先週", "今年", "昨年", "期間", "以上", "以下", "未満", "比較", "次のページ",
    "list", "search", "filter", "sort", "top", "rank", "ranking", "this month", "last month",
    "compare", "comparison", "next page", "more than", "less than",
)

ANALYSIS_WORDS = (
    "理由", "原因", "なぜ", "背景", "改善", "提案", "次のアクション", "リスク", "示唆", "要因",
    "why", "reason", "cause", "background", "improve", "improvement", "proposal",
    "next action", "risk", "implication",
)

ANAPHORIC_PREFIXES = (
    "その", "それ", "この", "これ", "あの", "上記", "先ほど", "さっき", "前述",
    "that", "this", "those", "the above", "earlier",
)


def _short_anaphoric(text: PhraseText) -> bool:
    return len(text.text.strip()) <= FOLLOW_UP_MAX_CHARS and text.starts_with_any(ANAPHORIC_PREFIXES)


FOLLOW_UP_RULES = [
    (phrases(*DATA_NOUNS), False),
    (phrases(*REQUERY_WORDS), False),
    (phrases(*ANALYSIS_WORDS), True),
    (_short_anaphoric, True),
]


def is_follow_up(message: str) -> bool:
    """True when the message asks about data already in the conversation."""
    outcome = first_match(FOLLOW_UP_RULES, PhraseText(message))
    return bool(outcome) if outcome is not None else False


_JAPANESE = re.compile(r"[\u3040-\u30ff\u3400-\u9fff]")


def is_japanese(message: str) -> bool:
    return bool(_JAPANESE.search(message or ""))


def serialize_result(data: Any, limit: int) -> str:
    """Pretty JSON capped at ``limit`` characters with an explicit marker."""
    text = json.dumps(data, ensure_ascii=False, indent=2, default=str)
    if len(text) <= limit:
        return text
    return text[:limit] + "\n" + TRUNCATION_MARKER.format(limit=limit)


def follow_up_directive(japanese: bool) -> str:
    if japanese:
        return (
            "ユーザーの質問は、これまでに提示したCRMデータについての追加質問です。"
            "直前までの会話履歴と既に提示した表の内容だけを根拠に回答してください。"
            "履歴にない事実（件数、金額、日付、取引先名など）を新たに作ったり断定したりしてはいけません。"
            "根拠が足りない場合はその旨を伝え、条件を変えて再検索できることを提案してください。"
        )
    return (
        "The user is asking a follow-up question about CRM data already shown in this conversation. "
        "Answer strictly from the conversation history and the previously presented table. "
        "Do not state any fact (counts, amounts, dates, account names) that is not present there. "
        "If the history is not enough, say so and offer to re-query with different filters."
    )


TABLE_COLUMNS = ["No.", "Name", "Account", "Amount", "Stage", "Close Date", "Owner", "Link"]


def result_directive(payload: str, japanese: bool) -> str:
    header = "| " + " | ".join(TABLE_COLUMNS) + " |"
    if japanese:
        intro = (
            "以下はCRMゲートウェイから取得したデータ（JSON）です。JSONに含まれる事実だけを使って回答してください。\n"
            f"1. まず次の列構成のMarkdown表を作成してください: {header}\n"
            "   Link列は各レコードのリンクを [開く](URL) の形式でクリック可能にしてください。値がない項目は「-」としてください。\n"
            "2. 表の後に2〜3文の短い要約を書いてください。\n"
            "レコードが0件の場合は、該当データがないことを伝え、条件の見直しを提案してください。"
        )
    else:
        intro = (
            "Below is data (JSON) retrieved from the CRM gateway. Use only facts present in the JSON.\n"
            f"1. First render a Markdown table with exactly these columns: {header}\n"
            "   Make the Link column clickable as [Open](URL) using each record's link. Use '-' for missing values.\n"
            "2. After the table, write a short summary of two or three sentences.\n"
            "If there are no records, say that nothing matched and suggest adjusting the conditions."
        )
    return f"{intro}\n\n```json\n{payload}\n```"


def failure_directive(response: GatewayResponse, japanese: bool) -> str:
    detail = f"HTTP {response.status}" if response.status else (response.error or "unknown error")
    if japanese:
        return (
            f"CRMゲートウェイからのデータ取得に失敗しました（{detail}）。"
            "ユーザーに日本語で、データを取得できなかったことを簡潔に伝えてください。"
            "データを推測したり作ったりしてはいけません。"
            "時間をおいて再度試すか、解決しない場合はシステム管理者に問い合わせるよう案内してください。"
        )
    return (
        f"The CRM gateway could not retrieve data ({detail}). "
        "Briefly tell the user that the data could not be retrieved. "
        "Do not guess or invent any data. "
        "Suggest trying again later and contacting the system administrator if the problem persists."
    )


class CrmDirectBridge:
    """Answers CRM-enabled threads with one directive and one plain completion."""

    def __init__(self, gateway: CrmGatewayClient, llm: LLMService, config: CrmConfig):
        self.gateway = gateway
        self.llm = llm
        self.config = config

    def is_active(self, thread: ChatThread) -> bool:
        return bool(self.config.extension_id) and self.config.extension_id in (thread.extension or [])

    def resolve_model(self, thread: ChatThread) -> str:
        if self.config.chat_model:
            return self.config.chat_model
        return resolve_default_model(thread.model)

    async def build_directive(
        self,
        message: str,
        user: Optional[UserInfo] = None,
        signal: Optional[CancellationSignal] = None
    ) -> str:
        """Decide between context-only and gateway answers and build the directive."""
        japanese = is_japanese(message)

        if is_follow_up(message):
            logger.info("[CRM-BRIDGE] Follow-up question, answering from history")
            return follow_up_directive(japanese)

        logger.info("[CRM-BRIDGE] Querying gateway")
        pending = self.gateway.query(message, user.email if user else None)
        response = await (signal.run(pending) if signal else pending)

        if not response.success:
            logger.warning(f"[CRM-BRIDGE] Gateway failed: status={response.status} error={response.error}")
            return failure_directive(response, japanese)

        payload = serialize_result(response.data, self.config.max_result_chars)
        return result_directive(payload, japanese)

    async def prepare_messages(
        self,
        persona: str,
        message: str,
        history: List[Dict[str, Any]],
        user: Optional[UserInfo] = None,
        signal: Optional[CancellationSignal] = None
    ) -> List[Dict[str, Any]]:
        directive = await self.build_directive(message, user, signal)
        return [
            {"role": "system", "content": persona},
            *sanitize_history(history, drop_crm_directives=True),
            {"role": "system", "content": directive},
            {"role": "user", "content": message},
        ]

    async def stream(
        self,
        thread: ChatThread,
        persona: str,
        message: str,
        history: List[Dict[str, Any]],
        user: Optional[UserInfo] = None,
        options: Optional[GenerationOptions] = None,
        signal: Optional[CancellationSignal] = None,
        transcript: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncIterator[StreamEvent]:
        """Stream the CRM answer; exactly one plain completion per turn."""
        messages = await self.prepare_messages(persona, message, history, user, signal)
        model = self.resolve_model(thread)
        logger.info(f"[CRM-BRIDGE] Using model {model}")
        async for event in self.llm.stream_chat(
            messages, model, options, tools=None, signal=signal, transcript=transcript
        ):
            yield event
