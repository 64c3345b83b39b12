import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from app.core.config import settings
from app.models.chat import Character
from app.services import llm_provider


def _character() -> Character:
    return Character(
        id=1,
        creator_id="creator",
        name="Mira",
        description="A lighthouse keeper who collects stories.",
        content_source="Saltwind",
        personality="Warm, dry humor",
        dialogues=["Mira: The sea keeps its own ledger."],
    )


def _async_client_returning(response: httpx.Response) -> tuple[MagicMock, AsyncMock]:
    client = AsyncMock()
    client.post.return_value = response
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = client
    factory.return_value.__aexit__.return_value = False
    return factory, client


class PromptHelpersTestCase(unittest.TestCase):
    def test_detect_user_name_uses_latest_user_introduction(self) -> None:
        history = [
            {"role": "user", "content": "Hi, my name is Theo"},
            {"role": "assistant", "content": "my name is Mira"},
            {"role": "user", "content": "Actually my name is Ana"},
        ]
        self.assertEqual(llm_provider.detect_user_name(history), "Ana")
        self.assertEqual(llm_provider.detect_user_name([]), "Human")

    def test_clean_reply_strips_prefix_and_bold_edges(self) -> None:
        self.assertEqual(llm_provider.clean_reply("Assistant: **Welcome aboard**"), "Welcome aboard")
        self.assertEqual(llm_provider.clean_reply("  plain text  "), "plain text")

    def test_prompt_mentions_character_and_conversation(self) -> None:
        history = [{"role": "user", "content": "my name is Theo"}]
        prompt = llm_provider.build_character_prompt(_character(), history, "Tell me a story")
        self.assertIn("You are Mira", prompt)
        self.assertIn("Saltwind", prompt)
        self.assertIn("Human: my name is Theo", prompt)
        self.assertIn('"Theo"', prompt)
        self.assertTrue(prompt.endswith("Human: Tell me a story\nAssistant:"))


class GenerateReplyTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._snapshot = {
            "llm_provider": settings.llm_provider,
            "llm_api_key": settings.llm_api_key,
            "llm_base_url": settings.llm_base_url,
            "chat_history_prompt_limit": settings.chat_history_prompt_limit,
            "gemini_api_key": settings.gemini_api_key,
            "gemini_base_url": settings.gemini_base_url,
            "gemini_model": settings.gemini_model,
        }
        settings.llm_base_url = "http://llm.local/v1"
        settings.gemini_base_url = "http://gemini.local/v1beta"
        settings.gemini_model = "gemini-test"
        settings.chat_history_prompt_limit = 2

    def tearDown(self) -> None:
        for key, value in self._snapshot.items():
            setattr(settings, key, value)

    async def test_stub_reply_stays_in_character(self) -> None:
        settings.llm_provider = "stub"
        result = await llm_provider.generate_character_reply(_character(), [], "Hello there")
        self.assertIn("Mira", result.assistant_text)
        self.assertEqual(result.usage["provider"], "stub")

    async def test_openai_compatible_requires_api_key(self) -> None:
        settings.llm_provider = "openai"
        settings.llm_api_key = ""
        with self.assertRaises(ValueError):
            await llm_provider.generate_character_reply(_character(), [], "Hello")

    async def test_openai_compatible_sends_trimmed_history(self) -> None:
        settings.llm_provider = "openai_compatible"
        settings.llm_api_key = "sk-test"
        history = [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "second"},
            {"role": "user", "content": "third"},
        ]
        response = httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": "Assistant: The tide is turning."}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17},
            },
            request=httpx.Request("POST", "http://llm.local/v1/chat/completions"),
        )
        factory, client = _async_client_returning(response)
        with patch("app.services.llm_provider.httpx.AsyncClient", factory):
            result = await llm_provider.generate_character_reply(_character(), history, "fourth")

        self.assertEqual(result.assistant_text, "The tide is turning.")
        self.assertEqual(result.usage["total_tokens"], 17)
        call = client.post.await_args
        self.assertEqual(call.args[0], "http://llm.local/v1/chat/completions")
        sent = call.kwargs["json"]["messages"]
        self.assertEqual(sent[0]["role"], "system")
        self.assertEqual([item["content"] for item in sent[1:]], ["second", "third", "fourth"])
        self.assertEqual(call.kwargs["headers"]["Authorization"], "Bearer sk-test")

    async def test_name_given_on_the_current_turn_reaches_the_prompt(self) -> None:
        settings.llm_provider = "gemini"
        settings.gemini_api_key = "g-test"
        response = httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "Welcome, Alice."}]}}]},
            request=httpx.Request("POST", "http://gemini.local/v1beta/models/gemini-test:generateContent"),
        )
        factory, client = _async_client_returning(response)
        with patch("app.services.llm_provider.httpx.AsyncClient", factory):
            result = await llm_provider.generate_character_reply(_character(), [], "Hello, my name is Alice")

        self.assertEqual(result.assistant_text, "Welcome, Alice.")
        prompt = client.post.await_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
        self.assertIn("The user has identified themselves as: Alice", prompt)
        self.assertIn("Previous messages show: Active conversation in progress", prompt)
        self.assertEqual(client.post.await_args.kwargs["params"], {"key": "g-test"})

    async def test_name_outside_the_prompt_window_is_kept(self) -> None:
        settings.llm_provider = "openai_compatible"
        settings.llm_api_key = "sk-test"
        history = [
            {"role": "user", "content": "my name is Theo"},
            {"role": "assistant", "content": "Nice to meet you"},
            {"role": "user", "content": "What is the lighthouse like?"},
            {"role": "assistant", "content": "Cold and bright"},
        ]
        response = httpx.Response(
            200,
            json={"choices": [{"message": {"content": "Of course, Theo."}}]},
            request=httpx.Request("POST", "http://llm.local/v1/chat/completions"),
        )
        factory, client = _async_client_returning(response)
        with patch("app.services.llm_provider.httpx.AsyncClient", factory):
            await llm_provider.generate_character_reply(_character(), history, "Tell me more")

        sent = client.post.await_args.kwargs["json"]["messages"]
        self.assertEqual(len(sent), 4)
        self.assertIn("The user has identified themselves as: Theo", sent[0]["content"])

    async def test_provider_http_error_propagates(self) -> None:
        settings.llm_provider = "openai_compatible"
        settings.llm_api_key = "sk-test"
        response = httpx.Response(
            502,
            text="bad gateway",
            request=httpx.Request("POST", "http://llm.local/v1/chat/completions"),
        )
        factory, _ = _async_client_returning(response)
        with patch("app.services.llm_provider.httpx.AsyncClient", factory):
            with self.assertRaises(httpx.HTTPStatusError):
                await llm_provider.generate_character_reply(_character(), [], "Hello")


if __name__ == "__main__":
    unittest.main()
