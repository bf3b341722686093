from __future__ import annotations

import json
import os
import re
from typing import Dict, List
from urllib.request import Request, urlopen

FALLBACK_INTERESTS = "Common interests identified through profile similarity."

STOP_WORDS = {
    "and", "or", "the", "to", "of", "for", "with", "in", "at", "a", "an", "is",
    "are", "into", "over", "under", "about", "that", "this", "what", "want",
    "would", "like", "from", "have", "been", "being", "more", "most", "also",
    "our", "their", "they", "them", "you", "your", "i'm", "i've", "really",
}


def _terms(answers: Dict[str, str]) -> List[str]:
    tokens: List[str] = []
    for value in answers.values():
        tokens.extend(re.split(r"[\s/\-]+", str(value).lower()))
    cleaned = [t.strip(",.;:!?()\"'") for t in tokens]
    return [t for t in cleaned if t and t not in STOP_WORDS and len(t) > 3]


def _template_interests(name_a: str, answers_a: Dict[str, str], name_b: str, answers_b: Dict[str, str]) -> str:
    terms_b = set(_terms(answers_b))
    shared: List[str] = []
    for term in _terms(answers_a):
        if term in terms_b and term not in shared:
            shared.append(term)

    if not shared:
        return FALLBACK_INTERESTS
    return (
        f"{name_a} and {name_b} both talked about "
        + ", ".join(shared[:3])
        + ". They should enjoy comparing notes on these topics."
    )


def _llm_enabled() -> bool:
    return os.getenv("ENABLE_LLM_INTERESTS", "0") == "1" and bool(os.getenv("OPENAI_API_KEY"))


def _format_answers(answers: Dict[str, str]) -> str:
    return "\n".join(f"- {field}: {text}" for field, text in answers.items())


def _openai_interests(
    name_a: str, answers_a: Dict[str, str], name_b: str, answers_b: Dict[str, str], timeout_seconds: float
) -> str:
    api_key = os.getenv("OPENAI_API_KEY", "")
    model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    prompt = (
        "Based on these two attendee profiles, identify 2-3 common interests or topics they could discuss.\n\n"
        f"Attendee 1 ({name_a}):\n{_format_answers(answers_a)}\n\n"
        f"Attendee 2 ({name_b}):\n{_format_answers(answers_b)}\n\n"
        "Write a brief, friendly description (2-3 sentences) of what they have in common and why they'd "
        "enjoy meeting. Focus on shared interests, challenges, or goals."
    )
    payload = {
        "model": model,
        "input": [{"role": "user", "content": prompt}],
        "max_output_tokens": 150,
    }
    req = Request(
        url="https://api.openai.com/v1/responses",
        data=json.dumps(payload).encode("utf-8"),
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
        method="POST",
    )
    with urlopen(req, timeout=timeout_seconds) as response:
        body = json.loads(response.read().decode("utf-8"))
    text = str(body.get("output_text", "")).strip()
    if text:
        return text
    raise ValueError("No output_text in OpenAI response")


def summarize_common_interests(
    name_a: str,
    answers_a: Dict[str, str],
    name_b: str,
    answers_b: Dict[str, str],
    timeout_seconds: float = 8.0,
) -> str:
    """Short rationale for why two attendees should meet.

    Uses the LLM when ENABLE_LLM_INTERESTS=1 and an API key is configured; any
    provider error is raised to the caller. Otherwise the text is built from the
    terms both answer sets share.
    """
    if not _llm_enabled():
        return _template_interests(name_a, answers_a, name_b, answers_b)
    return _openai_interests(name_a, answers_a, name_b, answers_b, timeout_seconds)
