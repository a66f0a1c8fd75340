"""
History Sanitizer
==================

Normalizes stored conversation history into a sequence the tool-calling
completion protocol accepts.

Rules, applied in order:
1. Drop turns using the deprecated ``function`` role.
2. Drop ``tool`` turns without a ``tool_call_id``.
3. Keep a ``tool`` turn only when its id was issued by the most recent
   ``assistant`` turn. ``user``/``system`` turns clear the pending ids.
4. When the pending ids are cleared, strip the ids that got no answer from
   that assistant turn, and drop the turn if nothing is left of it.
5. (CRM variant) Drop ``system`` turns carrying injected JSON blobs or
   gateway error directives. A dropped directive still clears pending ids.
6. Replace missing/null content with an empty string.

Turns are never reordered and the input is never mutated.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Tuple, Union

logger = logging.getLogger(__name__)

# Markers of directives injected by the CRM bridge
FENCED_JSON_PATTERN = re.compile(r"```json", re.IGNORECASE)
GATEWAY_ERROR_PHRASES = [
    "CRMゲートウェイ",
    "データ取得に失敗",
    "CRM gateway",
    "could not retrieve data",
]


@dataclass(frozen=True)
class NoPendingTools:
    """No assistant tool calls are awaiting results."""


@dataclass(frozen=True)
class PendingToolCallIds:
    """Tool-call ids issued by the latest assistant turn, and those answered so far."""
    ids: FrozenSet[str]
    answered: FrozenSet[str] = frozenset()


ToolState = Union[NoPendingTools, PendingToolCallIds]


def _issued_ids(turn: Dict[str, Any]) -> FrozenSet[str]:
    calls = turn.get("tool_calls") or []
    return frozenset(tc.get("id") for tc in calls if isinstance(tc, dict) and tc.get("id"))


def _step(state: ToolState, turn: Dict[str, Any]) -> Tuple[ToolState, bool]:
    """Advance the tool-call state machine by one turn; return (state, keep)."""
    role = turn.get("role")

    if role == "assistant":
        return PendingToolCallIds(_issued_ids(turn)), True

    if role == "tool":
        call_id = turn.get("tool_call_id")
        if isinstance(state, PendingToolCallIds) and call_id in state.ids:
            return PendingToolCallIds(state.ids, state.answered | {call_id}), True
        return state, False

    # user / system
    return NoPendingTools(), True


def _settle(sanitized: List[Dict[str, Any]], index: int, state: PendingToolCallIds) -> int:
    """
    Strip unanswered tool calls from the assistant turn at ``index``.

    Returns:
        Number of turns removed (0 or 1)
    """
    if not state.ids or state.ids <= state.answered:
        return 0

    turn = sanitized[index]
    calls = [
        tc for tc in turn.get("tool_calls") or []
        if isinstance(tc, dict) and tc.get("id") in state.answered
    ]
    logger.info(f"[HISTORY] Stripped {len(state.ids - state.answered)} unanswered tool call(s)")
    if calls:
        turn["tool_calls"] = calls
        return 0

    turn.pop("tool_calls", None)
    if turn.get("content"):
        return 0
    del sanitized[index]
    return 1


def is_injected_crm_directive(turn: Dict[str, Any]) -> bool:
    """True for system turns carrying gateway JSON or gateway error text."""
    if turn.get("role") != "system":
        return False
    content = turn.get("content") or ""
    if not isinstance(content, str):
        return False
    if FENCED_JSON_PATTERN.search(content):
        return True
    return any(phrase in content for phrase in GATEWAY_ERROR_PHRASES)


def _normalize(turn: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(turn)
    if out.get("content") is None:
        out["content"] = ""
    if out.get("role") == "assistant" and "tool_calls" in out and not out["tool_calls"]:
        # an empty tool_calls list is rejected by the protocol
        del out["tool_calls"]
    return out


def sanitize_history(
    turns: List[Dict[str, Any]],
    drop_crm_directives: bool = False
) -> List[Dict[str, Any]]:
    """
    Sanitize an oldest-first list of protocol messages.

    Args:
        turns: Raw history in completion-protocol shape
        drop_crm_directives: Also drop injected CRM data/error directives

    Returns:
        New list of protocol-safe messages
    """
    sanitized: List[Dict[str, Any]] = []
    state: ToolState = NoPendingTools()
    pending_at = -1
    dropped = 0

    for turn in turns:
        if not isinstance(turn, dict):
            dropped += 1
            continue

        role = turn.get("role")
        if role == "function":
            dropped += 1
            continue
        if role == "tool" and not turn.get("tool_call_id"):
            dropped += 1
            continue

        if role != "tool" and isinstance(state, PendingToolCallIds):
            dropped += _settle(sanitized, pending_at, state)

        state, keep = _step(state, turn)
        if not keep:
            dropped += 1
            continue
        if drop_crm_directives and is_injected_crm_directive(turn):
            dropped += 1
            continue

        sanitized.append(_normalize(turn))
        if role == "assistant":
            pending_at = len(sanitized) - 1

    if isinstance(state, PendingToolCallIds):
        dropped += _settle(sanitized, pending_at, state)

    if dropped:
        logger.info(f"[HISTORY] Dropped {dropped} of {len(turns)} turns during sanitization")

    return sanitized
