from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

import requests

from config.settings import Settings, get_settings
from snowcone.queries import execute_scalar


logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
TEXT_KEYS = ("response", "message", "content")


class LLMError(RuntimeError):
    pass


@dataclass
class LLMResult:
    text: str
    model: str
    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    remaining_credits: Optional[float] = None


def _num(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_variant_response(value: Any, model: str = "unknown") -> LLMResult:
    """Normalize the VARIANT returned by the ASK_LLM procedure.

    The procedure may hand back a JSON string, an already-decoded object, or
    plain text. The text itself can sit under ``response``, ``message`` or
    ``content`` depending on the model.
    """
    if value is None:
        raise LLMError("No response from LLM")
    payload: Any = value
    if isinstance(value, (bytes, bytearray)):
        payload = value.decode("utf-8")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            text = payload.strip()
            if not text:
                raise LLMError("Empty response from LLM")
            return LLMResult(text=text, model=model)
    if not isinstance(payload, dict):
        text = str(payload).strip()
        if not text:
            raise LLMError("Empty response from LLM")
        return LLMResult(text=text, model=model)

    text = None
    for key in TEXT_KEYS:
        candidate = payload.get(key)
        if isinstance(candidate, str) and candidate.strip():
            text = candidate.strip()
            break
    if text is None:
        if payload.get("error"):
            raise LLMError(str(payload["error"]))
        raise LLMError("Empty response from LLM")

    remaining = payload.get("remaining_credits")
    return LLMResult(
        text=text,
        model=str(payload.get("model") or model),
        cost=_num(payload.get("cost")),
        input_tokens=int(_num(payload.get("input_tokens"))),
        output_tokens=int(_num(payload.get("output_tokens"))),
        remaining_credits=_num(remaining) if remaining is not None else None,
    )


def _complete_ask_llm(prompt: str, model: str, settings: Settings) -> LLMResult:
    if not settings.llm_user_email:
        raise LLMError("LLM_USER_EMAIL is not set.")
    sql = "CALL ASK_LLM(%(email)s, %(prompt)s, %(model)s)"
    try:
        value = execute_scalar(
            sql, {"email": settings.llm_user_email, "prompt": prompt, "model": model}
        )
    except Exception as exc:
        raise LLMError(f"ASK_LLM call failed: {exc}") from exc
    return parse_variant_response(value, model=model)


def _complete_cortex(prompt: str, model: str) -> LLMResult:
    sql = "SELECT snowflake.cortex.complete(%(model)s, %(prompt)s) AS response"
    try:
        value = execute_scalar(sql, {"model": model, "prompt": prompt})
    except Exception as exc:
        raise LLMError(f"Cortex complete failed: {exc}") from exc
    if value is None or not str(value).strip():
        raise LLMError("Cortex returned no response.")
    return LLMResult(text=str(value).strip(), model=model)


def _complete_openai(
    prompt: str,
    model: str,
    settings: Settings,
    system_prompt: Optional[str],
    temperature: float,
) -> LLMResult:
    if not settings.openai_api_key:
        raise LLMError("OPENAI_API_KEY is not set.")
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    payload = {"model": model, "temperature": temperature, "messages": messages}
    headers = {
        "Authorization": f"Bearer {settings.openai_api_key}",
        "Content-Type": "application/json",
    }
    try:
        resp = requests.post(
            OPENAI_URL, json=payload, headers=headers, timeout=settings.llm_timeout_s
        )
        resp.raise_for_status()
        data = resp.json()
    except requests.exceptions.RequestException as exc:
        raise LLMError(f"OpenAI request failed: {exc}") from exc
    try:
        text = data["choices"][0]["message"]["content"].strip()
    except (KeyError, IndexError, TypeError, AttributeError) as exc:
        raise LLMError("Unexpected OpenAI response shape.") from exc
    if not text:
        raise LLMError("Empty response from LLM")
    usage = data.get("usage") or {}
    return LLMResult(
        text=text,
        model=str(data.get("model") or model),
        input_tokens=int(usage.get("prompt_tokens", 0)),
        output_tokens=int(usage.get("completion_tokens", 0)),
    )


def complete(
    prompt: str,
    model: Optional[str] = None,
    settings: Optional[Settings] = None,
    system_prompt: Optional[str] = None,
    temperature: float = 0.2,
) -> LLMResult:
    settings = settings or get_settings()
    provider = settings.llm_provider
    logger.info("llm request provider=%s prompt_chars=%d", provider, len(prompt))
    if provider == "openai":
        result = _complete_openai(
            prompt, model or settings.openai_model, settings, system_prompt, temperature
        )
    else:
        # The warehouse-side providers take a single prompt string.
        full_prompt = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
        model = model or settings.llm_model
        if provider == "cortex":
            result = _complete_cortex(full_prompt, model)
        else:
            result = _complete_ask_llm(full_prompt, model, settings)
    logger.info(
        "llm response model=%s chars=%d cost=%.6f",
        result.model,
        len(result.text),
        result.cost,
    )
    return result


def _format_pairs(items: Iterable[Tuple[str, object]], max_items: int = 8) -> str:
    trimmed = list(items)[:max_items]
    return ", ".join(f"{label} ({value})" for label, value in trimmed) if trimmed else "None"


def summarize_location(
    name: str,
    stats: Dict[str, object],
    recent_reviews: Iterable[str] = (),
    settings: Optional[Settings] = None,
) -> str:
    system_prompt = (
        "You are a concise operations analyst for a snow cone shop chain. "
        "Use only the numbers provided and do not invent facts."
    )
    reviews_text = "\n".join(f"- {text}" for text in list(recent_reviews)[:5]) or "None"
    user_prompt = (
        f"Location: {name}\n"
        f"Metrics: {_format_pairs(stats.items(), max_items=12)}\n"
        f"Recent reviews:\n{reviews_text}\n"
        "Return a short paragraph (2-4 sentences) on how this location is doing "
        "and one concrete suggestion."
    )
    return complete(user_prompt, settings=settings, system_prompt=system_prompt).text


def generate_briefing(facts: Dict[str, Any], settings: Optional[Settings] = None) -> str:
    locations = facts.get("locations") or []
    breakdown = "; ".join(
        f"{loc['name']}: Rev ${loc['revenue']:,}, Waste ${loc['waste_cost']:,} "
        f"({loc['waste_rate']}%), Rating {loc['rating']}, Trend {loc['trend']}"
        for loc in locations
    )
    attention = ", ".join(
        f"{item['name']} ({'/'.join(item['reasons'])})" for item in facts.get("attention") or []
    )
    system_prompt = (
        "You are the AI assistant for an operations manager of a snow cone chain. "
        "Focus only on actionable insights and keep it brief and professional."
    )
    user_prompt = (
        'Write a 3-bullet "Monday Morning Briefing" summarizing the data below. '
        "Call out the top performer and the most concerning location. "
        "Format as a Markdown list.\n"
        f"Total revenue: ${round(float(facts.get('total_revenue') or 0)):,}\n"
        f"Locations: {facts.get('location_count', 0)}\n"
        f"Top performer: {facts.get('top_performer') or 'None'}\n"
        f"Most concerning: {facts.get('most_concerning') or 'None'}\n"
        f"Needs attention: {attention or 'None'}\n"
        f"Location breakdown: {breakdown or 'None'}"
    )
    return complete(user_prompt, settings=settings, system_prompt=system_prompt).text
