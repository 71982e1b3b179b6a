"""Unified JSON parsing from LLM output.

Handles common LLM response patterns: plain JSON, markdown code blocks,
JSON with surrounding prose, and trailing text containing stray braces.
"""

import json
import re
from typing import Any, Dict, Optional


def find_balanced_object(text: str) -> Optional[str]:
    """Return the first brace-balanced ``{...}`` span in *text*.

    Scans once from the first ``{``. Braces inside JSON string literals are
    ignored. Returns None when that brace is still open at the end of the
    text; later braces are not retried, so the scan stays linear.
    """
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None



def _loads_dict(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        result = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return result if isinstance(result, dict) else None


def parse_json_from_llm(raw: str) -> Dict[str, Any]:
    """Parse a JSON object from LLM output, handling common wrapping patterns.

    Tries, in order: the whole text, a markdown code block, the first
    balanced ``{...}`` span, and finally everything between the first
    ``{`` and the last ``}``.

    Raises:
        ValueError: If no JSON object can be recovered.
    """
    if not raw or not raw.strip():
        raise ValueError("Empty input")

    text = raw.strip()

    # Try 1: direct parse
    result = _loads_dict(text)
    if result is not None:
        return result

    # Try 2: extract from markdown code block
    code_block_match = re.search(r'```(?:json)?\s*\n(.*?)\n\s*```', text, re.DOTALL)
    if code_block_match:
        result = _loads_dict(code_block_match.group(1).strip())
        if result is not None:
            return result

    # Try 3: first balanced { ... } span
    balanced = find_balanced_object(text)
    if balanced:
        result = _loads_dict(balanced)
        if result is not None:
            return result

    # Try 4: first { to last }
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        result = _loads_dict(text[first:last + 1])
        if result is not None:
            return result

    raise ValueError(f"No valid JSON found in LLM output: {text[:200]}")
