# feedpress/services/json_repair.py
"""
Repair of truncated JSON documents returned by the generation service.

The generation service streams long articles and the response is sometimes
cut off mid-document. Repair is conservative: it only removes an incomplete
trailing fragment and closes the structures left open. Interior content is
never rewritten.

Passes, in order:
1. Direct parse.
2. Strip a markdown code fence and surrounding chatter, parse again.
3. Tail repair: drop a dangling `,"key": "unterminated value`, a trailing
   comma and any half-written escape, close the open string, then append
   the missing closers in reverse nesting order.
4. Cut back to the last complete value and close from there.

If none of these yields a JSON object the original text is returned with
ok=False. Callers that need the object use parse_generation_json, which
raises TruncatedUnrepairable instead.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from feedpress.errors import TruncatedUnrepairable

logger = logging.getLogger(__name__)

CLOSERS = {"{": "}", "[": "]"}

# ```json ... ``` with the closing fence optional (truncated responses lose it)
CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?([\s\S]*?)(?:```|$)")

# ,"key": "value-without-closing-quote   (escape aware)
DANGLING_FIELD_RE = re.compile(r',\s*"(?:[^"\\]|\\.)*"\s*:\s*"(?:[^"\\]|\\.)*\\?$')

TRAILING_COMMA_RE = re.compile(r",\s*$")

PARTIAL_UNICODE_ESCAPE_RE = re.compile(r"\\u[0-9a-fA-F]{0,3}$")


@dataclass
class RepairResult:
    """Outcome of a repair attempt."""

    ok: bool
    text: str                     # Repaired text, or the original when ok is False
    data: dict[str, Any] | None = None
    repaired: bool = False        # False when the input parsed as-is
    actions: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class _ScanState:
    stack: list[str]
    in_string: bool
    escape: bool
    end: int | None               # Index just past the top-level close, if reached
    safe_cut: int                 # Text before this index ends on a complete value
    safe_stack: list[str]         # Open structures at safe_cut


def _scan(text: str) -> _ScanState:
    """
    Walk the text tracking string boundaries and open structures.

    Also records the last position where the document could be cut cleanly:
    right after an opener, a closer, a complete value string or a complete
    literal, or right before a comma.
    """
    stack: list[str] = []
    expect_key: list[bool] = []
    in_string = False
    escape = False
    string_is_key = False
    scalar_start: int | None = None
    safe_cut = 0
    safe_stack: list[str] = []

    def end_scalar(index: int) -> None:
        nonlocal scalar_start, safe_cut, safe_stack
        token = text[scalar_start:index]
        scalar_start = None
        try:
            json.loads(token)
        except ValueError:
            return
        safe_cut, safe_stack = index, list(stack)

    for index, char in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
                if not string_is_key:
                    safe_cut, safe_stack = index + 1, list(stack)
            continue

        if scalar_start is not None and (char.isspace() or char in ",:}]"):
            end_scalar(index)

        if char == '"':
            in_string = True
            string_is_key = bool(stack) and stack[-1] == "{" and expect_key[-1]
        elif char in "{[":
            stack.append(char)
            expect_key.append(char == "{")
            safe_cut, safe_stack = index + 1, list(stack)
        elif char in "}]":
            if not stack or CLOSERS[stack[-1]] != char:
                # Mismatched closer: leave it for the parser to reject
                break
            stack.pop()
            expect_key.pop()
            safe_cut, safe_stack = index + 1, list(stack)
            if not stack:
                return _ScanState(stack, False, False, index + 1, safe_cut, safe_stack)
        elif char == ",":
            safe_cut, safe_stack = index, list(stack)
            if stack:
                expect_key[-1] = stack[-1] == "{"
        elif char == ":":
            if expect_key:
                expect_key[-1] = False
        elif not char.isspace() and scalar_start is None:
            scalar_start = index

    return _ScanState(stack, in_string, escape, None, safe_cut, safe_stack)


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _strip_wrapping(text: str, actions: list[str]) -> str:
    """Remove a markdown code fence and any chatter before the first brace."""
    fence = text.find("```")
    brace = text.find("{")
    match = CODE_FENCE_RE.search(text, fence) if fence != -1 and (brace == -1 or fence < brace) else None
    if match:
        text = match.group(1)
        actions.append("strip_code_fence")

    start = text.find("{")
    if start > 0:
        text = text[start:]
        actions.append("strip_leading_text")
    return text.strip()


def _close(text: str, stack: list[str]) -> str:
    return text + "".join(CLOSERS[opener] for opener in reversed(stack))


def _repair_tail(text: str, actions: list[str]) -> str:
    """Drop the incomplete trailing field, close the open string and structures."""
    state = _scan(text)

    if state.in_string:
        match = DANGLING_FIELD_RE.search(text)
        if match and not _scan(text[: match.start()]).in_string:
            text = text[: match.start()]
            actions.append("strip_dangling_field")
            state = _scan(text)

    if not state.in_string:
        stripped = TRAILING_COMMA_RE.sub("", text)
        if stripped != text:
            text = stripped
            actions.append("strip_trailing_comma")
            state = _scan(text)

    if state.in_string:
        if state.escape:
            text = text[:-1]
            actions.append("drop_partial_escape")
        else:
            partial = PARTIAL_UNICODE_ESCAPE_RE.search(text)
            if partial:
                backslashes = len(text[: partial.start()]) - len(text[: partial.start()].rstrip("\\"))
                if backslashes % 2 == 0:
                    text = text[: partial.start()]
                    actions.append("drop_partial_escape")
        text += '"'
        actions.append("close_string")

    if state.stack:
        actions.append(f"close_structures:{len(state.stack)}")
    return _close(text, state.stack)


def repair_json(text: str | None) -> RepairResult:
    """
    Repair a possibly truncated JSON object.

    Returns a RepairResult; ok is False when no pass produced an object, in
    which case text is the untouched input.
    """
    if not text or not text.strip():
        return RepairResult(ok=False, text=text or "", error="Empty response")

    data = _loads_object(text)
    if data is not None:
        return RepairResult(ok=True, text=text, data=data)

    actions: list[str] = []
    candidate = _strip_wrapping(text, actions)
    if not candidate.startswith("{"):
        return RepairResult(ok=False, text=text, actions=actions, error="No JSON object found")

    state = _scan(candidate)
    if state.end is not None and state.end < len(candidate):
        candidate = candidate[: state.end]
        actions.append("strip_trailing_text")

    data = _loads_object(candidate)
    if data is not None:
        return RepairResult(ok=True, text=candidate, data=data, repaired=True, actions=actions)

    tail_actions = list(actions)
    repaired = _repair_tail(candidate, tail_actions)
    data = _loads_object(repaired)
    if data is not None:
        logger.info(
            f"Repaired truncated JSON ({len(text)} chars): {', '.join(tail_actions)}",
            extra={"event": "json_repaired", "operation": "tail"},
        )
        return RepairResult(ok=True, text=repaired, data=data, repaired=True, actions=tail_actions)

    state = _scan(candidate)
    if state.safe_cut > 0:
        cut_actions = actions + ["cut_to_last_complete_value", f"close_structures:{len(state.safe_stack)}"]
        cut = _close(TRAILING_COMMA_RE.sub("", candidate[: state.safe_cut]), state.safe_stack)
        data = _loads_object(cut)
        if data is not None:
            logger.info(
                f"Repaired truncated JSON ({len(text)} chars) by cutting back to last complete value",
                extra={"event": "json_repaired", "operation": "cut"},
            )
            return RepairResult(ok=True, text=cut, data=data, repaired=True, actions=cut_actions)

    logger.warning(
        f"JSON repair failed for {len(text)}-char response",
        extra={"event": "json_repair_failed"},
    )
    return RepairResult(ok=False, text=text, actions=actions, error="Unrepairable JSON")


def parse_generation_json(text: str | None) -> dict[str, Any]:
    """Parse generation output, repairing truncation. Raises TruncatedUnrepairable."""
    result = repair_json(text)
    if not result.ok:
        raise TruncatedUnrepairable(
            f"Generation response is not a repairable JSON object: {result.error}",
            raw_text=text or "",
        )
    return result.data
