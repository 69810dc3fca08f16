"""
Common utility functions for the grant discovery pipeline.

Shared helpers used across stages: running the async pipeline from sync
code, scrubbing untrusted text before it is placed in a prompt, and the
display strings shown next to a ranked result.
"""

import asyncio
import concurrent.futures
import re
from datetime import date
from typing import Coroutine, Iterable, Optional, TypeVar

T = TypeVar('T')

NOT_PROVIDED = "Not provided"

# Order matters: role markers and injection phrases before length truncation
_PROMPT_STRIP_PATTERNS = [
    r'```',
    r'---',
    r'\[INST\]',
    r'</?s>',
    r'<\|(?:im_start|im_end|endoftext|system|user|assistant)\|>',
    r'</?(?:system|instruction|prompt|context|role|message)>',
    r'\b(?:system|assistant|user)\s*:',
]

_PROMPT_FILTER_PATTERNS = [
    r'ignore\s+(?:all\s+)?(?:previous|above|prior)\s+(?:instructions?|prompts?|rules?)',
    r'disregard\s+(?:all\s+)?(?:previous|above|prior)\s+(?:instructions?|context)',
    r'override\s+(?:system|previous|all)\s+(?:prompt|instructions?|rules?)',
    r'forget\s+(?:everything|all|previous)(?:\s+(?:above|instructions?|context))?',
    r'new\s+instructions?\s*:',
    r'you\s+are\s+now\s+',
]


def run_async(coro: Coroutine[None, None, T]) -> T:
    """
    Run an async coroutine from a sync context, handling nested event loops.

    If no event loop is running, uses asyncio.run(). Otherwise runs the
    coroutine on a fresh loop in a worker thread.

    Args:
        coro: The coroutine to run

    Returns:
        The result of the coroutine
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(asyncio.run, coro)
        return future.result()


def sanitize_prompt_text(value: Optional[str], max_length: int = 2000) -> str:
    """
    Neutralize prompt-injection markers in upstream text.

    Grant titles and summaries come from third-party sources and are pasted
    into the enrichment prompt verbatim otherwise.

    Args:
        value: Untrusted text
        max_length: Truncation limit applied after scrubbing

    Returns:
        Scrubbed text, or "Not provided" when nothing is left
    """
    if not value:
        return NOT_PROVIDED

    text = value
    for pattern in _PROMPT_STRIP_PATTERNS:
        text = re.sub(pattern, '', text, flags=re.IGNORECASE)
    for pattern in _PROMPT_FILTER_PATTERNS:
        text = re.sub(pattern, '[filtered]', text, flags=re.IGNORECASE)

    text = text[:max_length].strip()
    return text or NOT_PROVIDED


def sanitize_prompt_list(
    items: Optional[Iterable[str]],
    max_item_length: int = 200,
    max_items: int = 20,
) -> str:
    """Scrub each item and join with commas."""
    if not items:
        return NOT_PROVIDED
    cleaned = [
        sanitize_prompt_text(item, max_item_length)
        for item in list(items)[:max_items]
    ]
    cleaned = [item for item in cleaned if item != NOT_PROVIDED]
    return ", ".join(cleaned) or NOT_PROVIDED


def _money(amount: float) -> str:
    if float(amount).is_integer():
        return f"${int(amount):,}"
    return f"${amount:,.2f}"


def format_funding_display(
    funding_min: Optional[float],
    funding_max: Optional[float],
    funding_text: Optional[str] = None,
) -> str:
    """
    Human-readable award range.

    Source-provided text wins; zero amounts count as missing.

    Example:
        >>> format_funding_display(10000, 40000)
        '$10,000 - $40,000'
        >>> format_funding_display(None, 25000)
        'Up to $25,000'
    """
    if funding_text:
        return funding_text
    if funding_min and funding_max and funding_min != funding_max:
        return f"{_money(funding_min)} - {_money(funding_max)}"
    if funding_max:
        return f"Up to {_money(funding_max)}"
    if funding_min:
        return f"From {_money(funding_min)}"
    return "Varies"


def format_deadline_display(deadline: Optional[date], deadline_type: Optional[str] = None) -> str:
    """'March 15, 2025', 'Rolling', or 'Not specified'."""
    if deadline is not None:
        return f"{deadline.strftime('%B')} {deadline.day}, {deadline.year}"
    if deadline_type and deadline_type.lower() == "rolling":
        return "Rolling"
    return "Not specified"
