"""
Structured Output Parsing and Salvage.

Vision models asked for JSON return it wrapped in code fences, followed
by prose, or cut off when the output budget runs out. This module
separates those cases:

    - is_truncation_error: does a parse failure look like a cut-off?
    - salvage_json: one structural repair pass over broken output
    - parse_structured_output: strict parse, then salvage, then fail

Salvage only closes syntax. A member whose value was cut off (a partial
string, a number running into the end of input, a key with no value) is
dropped rather than completed, so a salvaged object never contains a
value the model did not fully emit.
"""

import json
import re
from typing import Any, List, Optional, Set, Tuple

from tiered_extraction.utils.exceptions import MalformedOutputError
from tiered_extraction.utils.helpers import strip_code_fences
from tiered_extraction.utils.logger import get_logger

logger = get_logger(__name__)

_CLOSERS = {'{': '}', '[': ']'}
_SCALAR = re.compile(r'-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null')
_DELIMITERS = set(' \t\r\n,}]')

_TRUNCATION_MESSAGES = (
    'Unterminated string',
    'unexpected end',
    'Unexpected end',
)
_END_OF_INPUT_MESSAGES = (
    'Expecting value',
    "Expecting property name",
    "Expecting ',' delimiter",
    "Expecting ':' delimiter",
)


def is_truncation_error(error: json.JSONDecodeError, text: str) -> bool:
    """
    Decide whether a parse failure means the output was cut off.

    Unterminated strings always count. "Expecting ..." failures only
    count when the parser ran into the end of the input; the same
    message in the middle of the text means the output is wrong, not short.

    Args:
        error: Error raised by json.loads.
        text: The text that failed to parse.

    Returns:
        True if a larger output budget could fix the failure.
    """
    message = error.msg
    if any(marker in message for marker in _TRUNCATION_MESSAGES):
        return True
    if any(message.startswith(marker) for marker in _END_OF_INPUT_MESSAGES):
        return not text[error.pos:].strip()
    return False


def _string_end(text: str, start: int) -> Optional[int]:
    """Index just past the closing quote of the string at ``start``."""
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '\\':
            i += 2
            continue
        if ch == '"':
            return i + 1
        i += 1
    return None


def salvage_json(text: str) -> Optional[str]:
    """
    Repair truncated or trailing-garbage JSON.

    The text is scanned once. Every point where the open containers hold
    only complete members is remembered together with the open nesting;
    the repaired text is the last such point plus the missing closers,
    innermost first. Separators directly before a closer are removed.

    Args:
        text: Raw model output (code fences already stripped).

    Returns:
        Repaired JSON text, or None when nothing complete was found.

    Example:
        >>> salvage_json('{"issuerName":"Acme","totalAmount":1500,"taxBreak')
        '{"issuerName":"Acme","totalAmount":1500}'
    """
    starts = [pos for pos in (text.find('{'), text.find('[')) if pos >= 0]
    if not starts:
        return None

    i = min(starts)
    n = len(text)
    stack: List[str] = []
    expect_key: List[Optional[bool]] = []
    dangling_commas: Set[int] = set()
    last_comma: Optional[int] = None
    safe: Optional[Tuple[int, Tuple[str, ...]]] = None

    def value_done(end: int) -> bool:
        nonlocal safe, last_comma
        last_comma = None
        if not stack:
            safe = (end, ())
            return True
        safe = (end, tuple(stack))
        return False

    complete = False
    while i < n and not complete:
        ch = text[i]
        if ch.isspace():
            i += 1
        elif ch in _CLOSERS:
            stack.append(ch)
            expect_key.append(True if ch == '{' else None)
            i += 1
            last_comma = None
            safe = (i, tuple(stack))
        elif ch in '}]':
            if not stack or _CLOSERS[stack[-1]] != ch:
                break
            if last_comma is not None:
                dangling_commas.add(last_comma)
            stack.pop()
            expect_key.pop()
            i += 1
            complete = value_done(i)
        elif ch == ',':
            if not stack:
                break
            last_comma = i
            if expect_key[-1] is not None:
                expect_key[-1] = True
            i += 1
        elif ch == ':':
            if not stack or expect_key[-1] is not True:
                break
            expect_key[-1] = False
            i += 1
        elif ch == '"':
            end = _string_end(text, i)
            if end is None:
                break
            i = end
            if stack and expect_key[-1] is True:
                last_comma = None
            else:
                complete = value_done(i)
        else:
            match = _SCALAR.match(text, i)
            if not match:
                break
            end = match.end()
            # a number touching the end of input may have lost digits
            if end >= n or text[end] not in _DELIMITERS:
                break
            i = end
            complete = value_done(i)

    if safe is None:
        return None

    cut, open_groups = safe
    prefix = ''.join(
        ch for pos, ch in enumerate(text[:cut]) if pos not in dangling_commas
    )
    prefix = prefix[min(starts):]
    closers = ''.join(_CLOSERS[group] for group in reversed(open_groups))
    return prefix + closers


def parse_structured_output(text: str, engine: str = "unknown") -> Tuple[Any, bool]:
    """
    Parse model output as JSON, salvaging it once if needed.

    Args:
        text: Raw model output, possibly fenced.
        engine: Engine name used in errors and logs.

    Returns:
        Tuple of (parsed value, salvaged flag).

    Raises:
        MalformedOutputError: If the output is unparseable after salvage.
    """
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned), False
    except json.JSONDecodeError as e:
        first_error = e

    repaired = salvage_json(cleaned)
    if repaired is None:
        raise MalformedOutputError(engine, text, first_error.msg)

    try:
        parsed = json.loads(repaired)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(engine, text, e.msg)

    logger.warning(
        f"Salvaged malformed output from {engine} "
        f"({len(cleaned)} -> {len(repaired)} chars)"
    )
    return parsed, True
