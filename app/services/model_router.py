"""Model router — picks the model tier for a conversation turn.

- chat tier: cheap and fast, good with screenshots, no tool loop
- tool tier: expensive, reliable tool calling for data operations

The decision is a keyword heuristic over the latest user message. The keyword
lists are plain data (``RouterRules``) so they can be extended or localized
without touching the decision logic, and ``detect_tool_need`` stays a pure
function of its inputs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from app.config import settings
from app.schemas.chat import ChatMessage, RouterDecision


@dataclass(frozen=True)
class RouterRules:
    # Generic data vocabulary; any hit means the user talks about the database
    db_keywords: tuple[str, ...]
    # Governed resources and their synonyms (German and English)
    entities: tuple[str, ...]
    # CRUD intent classes, checked in order; the first class with a hit wins
    crud_keywords: tuple[tuple[str, tuple[str, ...]], ...]

    def with_entities(self, extra: Iterable[str]) -> RouterRules:
        known = set(self.entities)
        added = tuple(e.lower() for e in extra if e and e.lower() not in known)
        if not added:
            return self
        return replace(self, entities=self.entities + added)


DEFAULT_RULES = RouterRules(
    db_keywords=(
        "datenbank", "database", "tabelle", "table",
        "eintrag", "einträge", "record", "records",
        "datensatz", "datensätze", "supabase", "db",
    ),
    entities=(
        # German
        "rolle", "rollen", "benutzer", "nutzer", "profil", "profile",
        "fehler", "bug", "bugs", "feature", "features",
        "theme", "themes", "thema", "themen",
        # English
        "roles", "users", "profiles", "user",
    ),
    crud_keywords=(
        ("read", (
            "zeige", "zeig", "liste", "auflisten", "show", "list", "get",
            "finde", "find", "suche", "search", "abfrage", "query",
            "hole", "fetch", "alle", "all", "wieviele", "how many",
        )),
        ("create", (
            "erstelle", "erstellen", "create", "anlegen", "lege an", "leg an",
            "lege", "neue", "neuen", "neuer", "new", "add",
            "hinzufügen", "füge hinzu", "insert", "einfügen",
        )),
        ("update", (
            "ändere", "ändern", "update", "bearbeite", "bearbeiten", "edit",
            "setze", "set", "aktualisiere", "aktualisieren", "modify", "modifiziere",
        )),
        ("delete", (
            "lösche", "löschen", "delete", "remove", "entferne", "entfernen", "drop",
        )),
    ),
)


def last_user_text(messages: Sequence[ChatMessage]) -> str | None:
    """Text of the most recent user message; None if there is none."""
    for message in reversed(messages):
        if message.role == "user":
            return message.text(" ")
    return None


def _first_hit(text: str, keywords: Iterable[str]) -> str | None:
    return next((k for k in keywords if k in text), None)


def detect_tool_need(
    messages: Sequence[ChatMessage],
    rules: RouterRules = DEFAULT_RULES,
    *,
    chat_model: str | None = None,
    tool_model: str | None = None,
    tool_max_steps: int | None = None,
) -> RouterDecision:
    """Decide whether this turn needs tools and which model tier serves it.

    Precedence: explicit database vocabulary, then entity + CRUD intent,
    otherwise general chat. Model names default to the configured tiers.
    """
    chat_model = chat_model or settings.chat_model
    tool_model = tool_model or settings.tool_model
    steps = tool_max_steps or settings.tool_max_steps

    text = last_user_text(messages)
    if text is None:
        return RouterDecision(
            needs_tools=False, reason="no-user-message", model=chat_model, max_steps=1
        )

    lowered = text.lower()

    if _first_hit(lowered, rules.db_keywords):
        return RouterDecision(
            needs_tools=True, reason="explicit-db-reference", model=tool_model, max_steps=steps
        )

    entity = _first_hit(lowered, rules.entities)
    crud = next(
        (name for name, keywords in rules.crud_keywords if _first_hit(lowered, keywords)),
        None,
    )
    if entity and crud:
        return RouterDecision(
            needs_tools=True,
            reason=f"entity-crud:{entity}+{crud}",
            model=tool_model,
            max_steps=steps,
        )

    # Entity alone or intent alone is not enough
    return RouterDecision(needs_tools=False, reason="general-chat", model=chat_model, max_steps=1)


# Models known to handle tool calling reliably
TOOL_SUPPORTED_MODELS = frozenset(
    {
        "anthropic/claude-opus-4.5",
        "openai/gpt-4.1",
        "anthropic/claude-3.5-sonnet",
        "openai/gpt-4o",
    }
)


def model_supports_tools(model_id: str) -> bool:
    """Allow-list check; unknown models are treated as unable to call tools.

    The configured tool and fallback models always count as supported.
    """
    if model_id in (settings.tool_model, settings.fallback_tool_model):
        return True
    return model_id in TOOL_SUPPORTED_MODELS


def default_rules() -> RouterRules:
    """Built-in rules plus the entities configured for this deployment."""
    return DEFAULT_RULES.with_entities(settings.router_extra_entities)
