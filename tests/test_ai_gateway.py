import pytest

from conftest import FakeAIClient
from domain import Module, Note
from services.ai_gateway import (
    AIServiceError,
    ai_settings,
    ask_einstein,
    build_notes_prompt,
    format_notes_for_prompt,
    get_ai_client,
    search_notes,
)

SETTINGS = {"api_key": "k", "base_url": "https://api.groq.com/openai/v1", "model": "llama3-70b-8192", "timeout": 5.0}


def test_ai_settings_prefers_config_over_defaults(monkeypatch):
    monkeypatch.delenv("AI_API_KEY", raising=False)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("AI_MODEL", raising=False)
    settings = ai_settings({"AI_API_KEY": "abc", "AI_TIMEOUT": "12"})

    assert settings["api_key"] == "abc"
    assert settings["model"] == "llama3-70b-8192"
    assert settings["timeout"] == 12.0


def test_missing_api_key_is_a_service_error(monkeypatch):
    monkeypatch.delenv("AI_API_KEY", raising=False)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    with pytest.raises(AIServiceError):
        get_ai_client(ai_settings({}))


def test_ask_einstein_sends_single_request():
    client = FakeAIClient(reply="## Hi")
    assert ask_einstein("  What is entropy? ", settings=SETTINGS, client=client) == "## Hi"

    (call,) = client.calls
    assert call["model"] == "llama3-70b-8192"
    assert call["max_tokens"] == 2048
    assert call["messages"][1] == {"role": "user", "content": "What is entropy?"}


def test_ask_einstein_requires_a_message():
    with pytest.raises(ValueError):
        ask_einstein("   ", settings=SETTINGS, client=FakeAIClient())


def test_service_failure_is_wrapped_once():
    client = FakeAIClient(error=TimeoutError("slow"))
    with pytest.raises(AIServiceError):
        ask_einstein("hello", settings=SETTINGS, client=client)
    assert len(client.calls) == 1


def test_empty_completion_is_an_error():
    with pytest.raises(AIServiceError):
        ask_einstein("hello", settings=SETTINGS, client=FakeAIClient(reply=""))


def test_notes_are_labelled_with_their_module():
    modules = [Module(id="1", name="Physics", code="PH100")]
    notes = [Note(id="a", title="Waves", content="lambda", module_id="1"), Note(id="b", title="Misc")]
    block = format_notes_for_prompt(notes, modules)

    assert "--- Note: Waves ([PH100] Physics) ---\nlambda" in block
    assert "--- Note: Misc (No Module) ---" in block


def test_notes_prompt_omits_section_without_notes():
    prompt = build_notes_prompt("why?", "")
    assert "following notes" not in prompt
    assert 'The student is asking: "why?"' in prompt


def test_search_notes_includes_notes_in_prompt():
    client = FakeAIClient(reply="From your notes...")
    answer = search_notes("waves", [Note(id="a", title="Waves", content="crest")], [], settings=SETTINGS, client=client)

    assert answer == "From your notes..."
    prompt = client.calls[0]["messages"][1]["content"]
    assert "crest" in prompt
    assert client.calls[0]["max_tokens"] == 1000
