import json
from dataclasses import replace

import pytest
import requests

from snowcone import llm
from snowcone.llm import LLMError, parse_variant_response


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def test_parse_variant_json_string():
    value = json.dumps(
        {
            "response": " Austin leads revenue. ",
            "model": "llama3.1-70b",
            "cost": 0.0042,
            "input_tokens": 120,
            "output_tokens": 30,
            "remaining_credits": 4.5,
        }
    )
    result = parse_variant_response(value)
    assert result.text == "Austin leads revenue."
    assert result.model == "llama3.1-70b"
    assert result.cost == pytest.approx(0.0042)
    assert (result.input_tokens, result.output_tokens) == (120, 30)
    assert result.remaining_credits == 4.5


@pytest.mark.parametrize("key", ["response", "message", "content"])
def test_parse_variant_text_keys(key):
    assert parse_variant_response({key: "hello"}, model="m").text == "hello"


def test_parse_variant_prefers_response_over_message():
    assert parse_variant_response({"response": "a", "message": "b"}).text == "a"


def test_parse_variant_plain_text_and_defaults():
    result = parse_variant_response("just text", model="mistral-large")
    assert result.text == "just text"
    assert result.model == "mistral-large"
    assert result.cost == 0.0
    assert result.remaining_credits is None


def test_parse_variant_errors():
    with pytest.raises(LLMError):
        parse_variant_response(None)
    with pytest.raises(LLMError):
        parse_variant_response("   ")
    with pytest.raises(LLMError, match="Insufficient credits"):
        parse_variant_response({"error": "Insufficient credits"})


def test_complete_ask_llm_calls_procedure(monkeypatch, settings):
    calls = []

    def _scalar(sql, params=None):
        calls.append((sql, params))
        return json.dumps({"response": "ok", "cost": 0.001})

    monkeypatch.setattr(llm, "execute_scalar", _scalar)
    result = llm.complete("hi", settings=settings, system_prompt="be brief")
    sql, params = calls[0]
    assert sql == "CALL ASK_LLM(%(email)s, %(prompt)s, %(model)s)"
    assert params == {"email": "ops@snowcone.test", "prompt": "be brief\n\nhi", "model": "llama3.1-70b"}
    assert result.text == "ok"
    assert result.cost == pytest.approx(0.001)


def test_complete_ask_llm_requires_email(settings):
    with pytest.raises(LLMError, match="LLM_USER_EMAIL"):
        llm.complete("hi", settings=replace(settings, llm_user_email=""))


def test_complete_ask_llm_wraps_warehouse_errors(monkeypatch, settings):
    def _scalar(sql, params=None):
        raise RuntimeError("procedure does not exist")

    monkeypatch.setattr(llm, "execute_scalar", _scalar)
    with pytest.raises(LLMError) as excinfo:
        llm.complete("hi", settings=settings)
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_complete_cortex(monkeypatch, settings):
    calls = []

    def _scalar(sql, params=None):
        calls.append((sql, params))
        return "  cortex says hi "

    monkeypatch.setattr(llm, "execute_scalar", _scalar)
    result = llm.complete("hi", model="mistral-large", settings=replace(settings, llm_provider="cortex"))
    assert "snowflake.cortex.complete(%(model)s, %(prompt)s)" in calls[0][0]
    assert calls[0][1] == {"model": "mistral-large", "prompt": "hi"}
    assert result.text == "cortex says hi"


def test_complete_cortex_empty_response(monkeypatch, settings):
    monkeypatch.setattr(llm, "execute_scalar", lambda sql, params=None: None)
    with pytest.raises(LLMError):
        llm.complete("hi", settings=replace(settings, llm_provider="cortex"))


def test_complete_openai(monkeypatch, settings):
    captured = {}

    def _post(url, json=None, headers=None, timeout=None):
        captured.update(url=url, json=json, headers=headers, timeout=timeout)
        return FakeResponse(
            {
                "model": "gpt-4o-mini",
                "choices": [{"message": {"content": " Briefing text "}}],
                "usage": {"prompt_tokens": 50, "completion_tokens": 10},
            }
        )

    monkeypatch.setattr(requests, "post", _post)
    cfg = replace(settings, llm_provider="openai")
    result = llm.complete("hi", settings=cfg, system_prompt="sys")
    assert captured["url"] == llm.OPENAI_URL
    assert captured["headers"]["Authorization"] == "Bearer sk-test"
    assert captured["json"]["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "hi"},
    ]
    assert captured["timeout"] == cfg.llm_timeout_s
    assert result.text == "Briefing text"
    assert (result.input_tokens, result.output_tokens) == (50, 10)


def test_complete_openai_http_error(monkeypatch, settings):
    monkeypatch.setattr(requests, "post", lambda *a, **k: FakeResponse({}, status=429))
    with pytest.raises(LLMError) as excinfo:
        llm.complete("hi", settings=replace(settings, llm_provider="openai"))
    assert isinstance(excinfo.value.__cause__, requests.exceptions.HTTPError)


def test_complete_openai_requires_key(settings):
    with pytest.raises(LLMError, match="OPENAI_API_KEY"):
        llm.complete("hi", settings=replace(settings, llm_provider="openai", openai_api_key=""))


def test_complete_openai_bad_shape(monkeypatch, settings):
    monkeypatch.setattr(requests, "post", lambda *a, **k: FakeResponse({"choices": []}))
    with pytest.raises(LLMError, match="Unexpected"):
        llm.complete("hi", settings=replace(settings, llm_provider="openai"))


def test_generate_briefing_prompt(monkeypatch, settings):
    prompts = []

    def _complete(prompt, settings=None, system_prompt=None, **kwargs):
        prompts.append(prompt)
        return llm.LLMResult(text="- bullet", model="m")

    monkeypatch.setattr(llm, "complete", _complete)
    facts = {
        "total_revenue": 1300.4,
        "location_count": 2,
        "top_performer": "Dallas Uptown",
        "most_concerning": "Dallas Uptown",
        "attention": [{"name": "Dallas Uptown", "reasons": ["Low rating", "Declining sales"]}],
        "locations": [
            {
                "name": "Dallas Uptown",
                "revenue": 600,
                "rating": 3.1,
                "trend": "declining",
                "trend_percent": -50.0,
                "waste_cost": 20,
                "waste_rate": 8.0,
            }
        ],
    }
    assert llm.generate_briefing(facts, settings) == "- bullet"
    prompt = prompts[0]
    assert "Monday Morning Briefing" in prompt
    assert "Total revenue: $1,300" in prompt
    assert "Dallas Uptown (Low rating/Declining sales)" in prompt
    assert "Dallas Uptown: Rev $600, Waste $20 (8.0%), Rating 3.1, Trend declining" in prompt


def test_summarize_location_prompt(monkeypatch, settings):
    prompts = []
    monkeypatch.setattr(
        llm,
        "complete",
        lambda prompt, settings=None, system_prompt=None: prompts.append(prompt)
        or llm.LLMResult(text="Doing well.", model="m"),
    )
    text = llm.summarize_location("Austin Downtown", {"revenue": "$500"}, ["Great!", "Slow line"], settings)
    assert text == "Doing well."
    assert "Location: Austin Downtown" in prompts[0]
    assert "revenue ($500)" in prompts[0]
    assert "- Slow line" in prompts[0]


@pytest.mark.parametrize(
    "value",
    [
        {"response": "", "cost": 0.01},
        {"message": "   ", "model": "m"},
        json.dumps({"cost": 0.01}),
        '""',
    ],
)
def test_parse_variant_blank_text_raises(value):
    with pytest.raises(LLMError, match="Empty response"):
        parse_variant_response(value)


def test_complete_openai_blank_content(monkeypatch, settings):
    monkeypatch.setattr(
        requests,
        "post",
        lambda *a, **k: FakeResponse({"choices": [{"message": {"content": "  "}}]}),
    )
    with pytest.raises(LLMError, match="Empty response"):
        llm.complete("hi", settings=replace(settings, llm_provider="openai"))
