import re
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.config import settings
from app.models.chat import Character


@dataclass
class ChatGenerationResult:
    assistant_text: str
    usage: dict[str, Any]


_PROVIDER_ALIASES: dict[str, str] = {
    "openai": "openai_compatible",
    "openai_compatible": "openai_compatible",
    "gpt": "openai_compatible",
    "google": "gemini",
    "gemini": "gemini",
    "stub": "stub",
}
_USER_NAME_PATTERN = re.compile(r"my name is (\w+)", re.IGNORECASE)
_ASSISTANT_PREFIX_PATTERN = re.compile(r"^assistant:\s*", re.IGNORECASE)
_BOLD_EDGE_PATTERN = re.compile(r"^\*\*?|\*\*?$", re.MULTILINE)


def _truncate_text(text: str, max_chars: int) -> str:
    content = (text or "").strip()
    if len(content) <= max_chars:
        return content
    return content[: max_chars - 1].rstrip() + "…"


def _normalize_provider(value: str | None) -> str:
    key = str(value or "").strip().lower()
    return _PROVIDER_ALIASES.get(key, "stub")


def detect_user_name(history: list[dict[str, Any]], default: str = "Human") -> str:
    name = default
    for item in history:
        if str(item.get("role")) != "user":
            continue
        match = _USER_NAME_PATTERN.search(str(item.get("content") or ""))
        if match:
            name = match.group(1)
    return name


def format_conversation(history: list[dict[str, Any]]) -> str:
    lines: list[str] = []
    for item in history:
        speaker = "Human" if str(item.get("role")) == "user" else "Assistant"
        lines.append(f"{speaker}: {str(item.get('content') or '').strip()}")
    return "\n\n".join(lines)


def build_character_system_prompt(
    character: Character,
    conversation: list[dict[str, Any]],
    *,
    user_name: str | None = None,
) -> str:
    """System prompt for ``character``.

    ``conversation`` includes the user message being answered, so a name given
    on this turn is picked up and the state reads as an active conversation.
    """
    user_name = user_name or detect_user_name(conversation)
    knowledge = character.background or "Deep knowledge of your world and experiences"
    dialogues = "\n".join(character.dialogues or []) or "Speak authentically as your character"
    quote_rule = f"- Draw from these notable quotes: {character.notable_quotes}\n" if character.notable_quotes else ""
    conversation_state = "Active conversation in progress" if conversation else "New conversation starting"
    return (
        f"You are {character.name}, a fictional character originating from "
        f"{character.content_source or 'an original story'}. Stay completely in character at all times.\n\n"
        f"Your role and background:\n{character.description}\n\n"
        f"Your personality:\n{character.personality or 'A unique and engaging personality'}\n\n"
        f"Knowledge context:\n{knowledge}\n\n"
        "When interacting:\n"
        f"- Use natural, conversational language that matches {character.name}'s personality\n"
        "- Keep replies short, one to three paragraphs\n"
        "- Never break the fourth wall or acknowledge being an AI\n"
        f"{quote_rule}"
        f"- Address the user as \"{user_name}\" if they shared their name, otherwise as a friend\n\n"
        f"Example dialogues:\n{dialogues}\n\n"
        f"The user has identified themselves as: {user_name}\n"
        f"Previous messages show: {conversation_state}"
    )


def build_character_prompt(
    character: Character,
    history: list[dict[str, Any]],
    user_input: str,
    *,
    user_name: str | None = None,
) -> str:
    system_prompt = build_character_system_prompt(
        character,
        with_user_turn(history, user_input),
        user_name=user_name,
    )
    return (
        f"{system_prompt}\n\n"
        f"Previous conversation:\n{format_conversation(history)}\n\n"
        f"Remember to stay in character as {character.name} and maintain conversation context.\n"
        f"Human: {user_input}\n"
        "Assistant:"
    )


def with_user_turn(history: list[dict[str, Any]], user_input: str) -> list[dict[str, Any]]:
    return [*history, {"role": "user", "content": user_input}]


def clean_reply(text: str) -> str:
    cleaned = _ASSISTANT_PREFIX_PATTERN.sub("", (text or "").strip())
    cleaned = _BOLD_EDGE_PATTERN.sub("", cleaned)
    return cleaned.strip()


def _trim_history(history: list[dict[str, Any]]) -> list[dict[str, Any]]:
    limit = max(int(settings.chat_history_prompt_limit), 1)
    rows = [item for item in history if isinstance(item, dict)]
    return rows[-limit:]


async def _generate_stub(character: Character, user_input: str) -> ChatGenerationResult:
    assistant_text = f"{character.name} considers your words for a moment. \"{_truncate_text(user_input, 160)}\"... tell me more."
    return ChatGenerationResult(
        assistant_text=assistant_text,
        usage={"provider": "stub", "input_chars": len(user_input), "output_chars": len(assistant_text)},
    )


async def _generate_openai_compatible(
    character: Character,
    history: list[dict[str, Any]],
    user_input: str,
    user_name: str,
) -> ChatGenerationResult:
    api_key = str(settings.llm_api_key or "").strip()
    if not api_key:
        raise ValueError("LLM_API_KEY is required for provider=openai_compatible")

    endpoint = str(settings.llm_base_url).rstrip("/") + "/chat/completions"
    messages: list[dict[str, str]] = [
        {
            "role": "system",
            "content": build_character_system_prompt(
                character,
                with_user_turn(history, user_input),
                user_name=user_name,
            ),
        }
    ]
    for item in history:
        messages.append({"role": str(item.get("role")), "content": str(item.get("content") or "")})
    messages.append({"role": "user", "content": user_input})
    body = {
        "model": settings.llm_model,
        "messages": messages,
        "temperature": float(settings.llm_temperature),
        "max_tokens": int(settings.llm_max_output_tokens),
        "stream": False,
    }
    timeout = httpx.Timeout(float(settings.llm_timeout_seconds))
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(endpoint, json=body, headers={"Authorization": f"Bearer {api_key}"})
        resp.raise_for_status()
        data = resp.json()

    content = data.get("choices", [{}])[0].get("message", {}).get("content", "")
    usage_raw = data.get("usage") if isinstance(data.get("usage"), dict) else {}
    return ChatGenerationResult(
        assistant_text=clean_reply(content),
        usage={
            "provider": "openai_compatible",
            "model": settings.llm_model,
            "prompt_tokens": usage_raw.get("prompt_tokens"),
            "completion_tokens": usage_raw.get("completion_tokens"),
            "total_tokens": usage_raw.get("total_tokens"),
        },
    )


def _gemini_response_text(payload: dict[str, Any]) -> str:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") if isinstance(first, dict) else {}
    parts = content.get("parts") if isinstance(content, dict) else []
    if not isinstance(parts, list):
        return ""
    texts = [str(part.get("text", "") or "").strip() for part in parts if isinstance(part, dict)]
    return "\n".join(text for text in texts if text).strip()


async def _generate_gemini(
    character: Character,
    history: list[dict[str, Any]],
    user_input: str,
    user_name: str,
) -> ChatGenerationResult:
    api_key = str(settings.gemini_api_key or settings.llm_api_key or "").strip()
    if not api_key:
        raise ValueError("GEMINI_API_KEY is required for provider=gemini")

    model = str(settings.gemini_model or settings.llm_model).strip()
    model_path = model if model.startswith("models/") else f"models/{model}"
    endpoint = f"{str(settings.gemini_base_url).rstrip('/')}/{model_path}:generateContent"
    body = {
        "contents": [
            {
                "role": "user",
                "parts": [{"text": build_character_prompt(character, history, user_input, user_name=user_name)}],
            }
        ],
        "generationConfig": {
            "temperature": float(settings.llm_temperature),
            "maxOutputTokens": int(settings.llm_max_output_tokens),
        },
    }
    timeout = httpx.Timeout(float(settings.llm_timeout_seconds))
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(endpoint, params={"key": api_key}, json=body)
        resp.raise_for_status()
        payload = resp.json()

    usage_metadata = payload.get("usageMetadata") if isinstance(payload.get("usageMetadata"), dict) else {}
    return ChatGenerationResult(
        assistant_text=clean_reply(_gemini_response_text(payload)),
        usage={
            "provider": "gemini",
            "model": model,
            "prompt_tokens": usage_metadata.get("promptTokenCount"),
            "completion_tokens": usage_metadata.get("candidatesTokenCount"),
            "total_tokens": usage_metadata.get("totalTokenCount"),
        },
    )


async def generate_character_reply(
    character: Character,
    history: list[dict[str, Any]],
    user_input: str,
) -> ChatGenerationResult:
    # Name detection looks at the whole session, not just the prompt window.
    user_name = detect_user_name(with_user_turn(history, user_input))
    trimmed = _trim_history(history)
    provider = _normalize_provider(settings.llm_provider)
    if provider == "openai_compatible":
        return await _generate_openai_compatible(character, trimmed, user_input, user_name)
    if provider == "gemini":
        return await _generate_gemini(character, trimmed, user_input, user_name)
    return await _generate_stub(character, user_input)
