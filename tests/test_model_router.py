"""Model router tests."""

from app.config import settings
from app.schemas.chat import ChatMessage
from app.services.model_router import (
    DEFAULT_RULES,
    detect_tool_need,
    model_supports_tools,
)


def _user(text: str) -> ChatMessage:
    return ChatMessage(role="user", content=text)


def test_entity_with_read_intent_picks_tool_tier():
    decision = detect_tool_need([_user("Zeige mir alle Themes")])
    assert decision.needs_tools is True
    assert decision.reason.startswith("entity-crud")
    assert decision.reason == "entity-crud:theme+read"
    assert decision.model == settings.tool_model
    assert decision.max_steps == settings.tool_max_steps


def test_small_talk_stays_on_chat_tier():
    decision = detect_tool_need([_user("Hallo, wie geht es dir?")])
    assert decision.needs_tools is False
    assert decision.reason == "general-chat"
    assert decision.model == settings.chat_model
    assert decision.max_steps == 1


def test_explicit_database_reference_wins():
    decision = detect_tool_need([_user("Was steht in der Tabelle?")])
    assert decision.needs_tools is True
    assert decision.reason == "explicit-db-reference"


def test_entity_without_intent_is_general_chat():
    decision = detect_tool_need([_user("Was ist eine Rolle?")])
    assert decision.needs_tools is False


def test_no_user_message():
    decision = detect_tool_need([ChatMessage(role="assistant", content="Hi!")])
    assert decision.reason == "no-user-message"
    assert decision.needs_tools is False
    assert decision.max_steps == 1


def test_only_latest_user_message_counts():
    messages = [
        _user("Lösche alle Rollen"),
        ChatMessage(role="assistant", content="Bist du sicher?"),
        _user("Nein, danke"),
    ]
    assert detect_tool_need(messages).needs_tools is False


def test_parts_are_read():
    message = ChatMessage(
        role="user",
        parts=[{"type": "text", "text": "Erstelle einen neuen"}, {"type": "text", "text": "Benutzer"}],
    )
    decision = detect_tool_need([message])
    assert decision.reason == "entity-crud:benutzer+create"


def test_decision_is_deterministic():
    messages = [_user("Ändere die Rolle von Anna"), _user("Update the users please")]
    first = detect_tool_need(messages)
    for _ in range(5):
        assert detect_tool_need(messages) == first


def test_extra_entities_extend_vocabulary():
    rules = DEFAULT_RULES.with_entities(["invoices"])
    assert detect_tool_need([_user("list invoices")], rules).needs_tools is True
    assert detect_tool_need([_user("list invoices")]).needs_tools is False


def test_model_tool_support_allow_list(monkeypatch):
    assert model_supports_tools("anthropic/claude-opus-4.5") is True
    assert model_supports_tools("openai/gpt-4o") is True
    assert model_supports_tools("google/gemini-3-flash-preview") is False
    assert model_supports_tools("some/unknown-model") is False

    monkeypatch.setattr(settings, "tool_model", "some/unknown-model")
    assert model_supports_tools("some/unknown-model") is True
