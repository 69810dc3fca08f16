"""
JSON Utilities for LLM Response Parsing.

Enrichment responses are expected to be a JSON array of records, but models
wrap output in markdown fences, add preambles, or return an object holding
the array. Uses json-repair as a fallback when json.loads() fails.
"""

import json
import re
from typing import Any, Dict, List

from json_repair import repair_json

# Keys under which a model sometimes nests the record array
_WRAPPER_KEYS = ("results", "matches", "records", "grants", "data", "items")


def parse_llm_json(text: str) -> Any:
    """
    Parse JSON from LLM response with robust error recovery.

    Handles common LLM output issues:
    - Markdown code blocks (```json ... ```)
    - JSON embedded in surrounding text
    - Single quotes, trailing commas, unquoted keys

    Args:
        text: Raw LLM response text that may contain JSON

    Returns:
        The parsed value (list or dict)

    Raises:
        ValueError: If no valid JSON can be extracted or repaired

    Example:
        >>> parse_llm_json('```json\\n[{"opportunityId": "g1"}]\\n```')
        [{'opportunityId': 'g1'}]
    """
    if not text or not text.strip():
        raise ValueError("Empty input: no JSON content to parse")

    json_str = _strip_markdown_blocks(text.strip())
    json_str = _extract_json_value(json_str)

    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        pass  # Fall through to repair

    try:
        repaired = repair_json(json_str, return_objects=True)
    except Exception as e:
        raise ValueError(f"Failed to repair JSON: {e}") from e

    # repair_json yields "" when there is nothing salvageable
    if isinstance(repaired, (list, dict)):
        return repaired
    raise ValueError(
        f"Failed to parse or repair JSON. Original text (first 500 chars): {text[:500]}"
    )


def parse_llm_json_list(text: str) -> List[Dict[str, Any]]:
    """
    Parse an LLM response that should contain a list of JSON objects.

    A bare object is unwrapped from a known wrapper key, or treated as a
    single record. Non-object items are dropped.

    Raises:
        ValueError: If the response holds no list of records
    """
    parsed = parse_llm_json(text)

    if isinstance(parsed, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(parsed.get(key), list):
                parsed = parsed[key]
                break
        else:
            parsed = [parsed]

    if not isinstance(parsed, list):
        raise ValueError(f"Expected a JSON array, got {type(parsed).__name__}")

    return [item for item in parsed if isinstance(item, dict)]


def _strip_markdown_blocks(text: str) -> str:
    """
    Remove markdown code block wrappers from text.

    Handles a fenced block anywhere in the text, with or without a
    language specifier.
    """
    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    if fenced:
        return fenced.group(1).strip()
    return text.strip()


def _extract_json_value(text: str) -> str:
    """
    Extract the outermost JSON array or object from surrounding prose.

    Arrays win when the first bracket precedes the first brace.

    Raises:
        ValueError: If no JSON pattern is found
    """
    text = text.strip()
    if text.startswith("[") or text.startswith("{"):
        return text

    first_bracket = text.find("[")
    first_brace = text.find("{")
    candidates = []
    if first_bracket != -1:
        candidates.append((first_bracket, r"\[.*\]"))
    if first_brace != -1:
        candidates.append((first_brace, r"\{.*\}"))

    for _, pattern in sorted(candidates):
        match = re.search(pattern, text, re.DOTALL)
        if match:
            return match.group(0)

    raise ValueError(f"No JSON value found in text: {text[:200]}")
