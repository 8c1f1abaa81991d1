"""Tests for the remote refinement provider clients."""

from unittest.mock import MagicMock, patch

import anthropic
import httpx
import openai
import pytest

from sonic_dictate import config
from sonic_dictate.models import ProviderConfig, ProviderKind
from sonic_dictate.providers import (
    AnthropicClient,
    GoogleClient,
    MissingCredential,
    OpenAIClient,
    ProviderRequestFailed,
    build_remote_clients,
    format_user_turn,
)

REQUEST = httpx.Request("POST", "https://example.invalid")


def source_for(kind, key="sk-test"):
    def source():
        return ProviderConfig(provider=kind, credentials={kind: key})

    return source


def openai_response(content):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


class TestFormatUserTurn:
    """Test the user message layout."""

    def test_with_instruction(self):
        """Test that instruction and text are wrapped in tags."""
        turn = format_user_turn("Fix it", "some text")
        assert turn == "<INSTRUCTION>Fix it</INSTRUCTION>\n<TEXT>some text</TEXT>\n\nRESULT:"

    def test_without_instruction(self):
        """Test that a blank instruction is omitted."""
        assert format_user_turn("  ", "t") == "<TEXT>t</TEXT>\n\nRESULT:"
        assert format_user_turn(None, "t") == "<TEXT>t</TEXT>\n\nRESULT:"


class TestOpenAIClient:
    """Test the OpenAI client."""

    @patch("sonic_dictate.providers.OpenAI")
    def test_generate_success(self, mock_openai):
        """Test a successful chat completion."""
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = openai_response("Hello")
        mock_openai.return_value = mock_client

        result = OpenAIClient(source_for(ProviderKind.OPENAI)).generate("sys", "inst", "text")

        assert result == "Hello"
        mock_openai.assert_called_once_with(api_key="sk-test", timeout=config.REMOTE_TIMEOUT, max_retries=0)
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["messages"][1]["content"].startswith("<INSTRUCTION>inst</INSTRUCTION>")

    @patch("sonic_dictate.providers.OpenAI")
    def test_missing_key(self, mock_openai):
        """Test that an empty key fails before any request."""
        client = OpenAIClient(source_for(ProviderKind.OPENAI, key="  "))
        with pytest.raises(MissingCredential):
            client.generate("sys", None, "text")
        mock_openai.assert_not_called()

    @patch("sonic_dictate.providers.OpenAI")
    def test_connection_error_wrapped(self, mock_openai):
        """Test that SDK errors become ProviderRequestFailed."""
        mock_openai.return_value.chat.completions.create.side_effect = openai.APIConnectionError(
            request=REQUEST
        )
        with pytest.raises(ProviderRequestFailed, match="OpenAI request failed"):
            OpenAIClient(source_for(ProviderKind.OPENAI)).generate("sys", None, "text")

    @patch("sonic_dictate.providers.OpenAI")
    def test_status_error_wrapped(self, mock_openai):
        """Test that a non-2xx response becomes ProviderRequestFailed."""
        response = httpx.Response(401, request=REQUEST)
        mock_openai.return_value.chat.completions.create.side_effect = openai.AuthenticationError(
            "bad key", response=response, body=None
        )
        with pytest.raises(ProviderRequestFailed, match="HTTP 401"):
            OpenAIClient(source_for(ProviderKind.OPENAI)).generate("sys", None, "text")

    @patch("sonic_dictate.providers.OpenAI")
    def test_no_choices(self, mock_openai):
        """Test that an empty choice list is a failure."""
        response = MagicMock()
        response.choices = []
        mock_openai.return_value.chat.completions.create.return_value = response
        with pytest.raises(ProviderRequestFailed, match="no choices"):
            OpenAIClient(source_for(ProviderKind.OPENAI)).generate("sys", None, "text")


class TestAnthropicClient:
    """Test the Anthropic client."""

    @patch("sonic_dictate.providers.Anthropic")
    def test_generate_joins_text_blocks(self, mock_anthropic):
        """Test that text blocks are concatenated."""
        response = MagicMock()
        response.content = [
            MagicMock(type="text", text="Hello "),
            MagicMock(type="text", text="world"),
        ]
        mock_anthropic.return_value.messages.create.return_value = response

        result = AnthropicClient(source_for(ProviderKind.ANTHROPIC)).generate("sys", "inst", "text")

        assert result == "Hello world"
        kwargs = mock_anthropic.return_value.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-3-5-haiku-latest"
        assert kwargs["system"] == "sys"
        assert kwargs["max_tokens"] == config.ANTHROPIC_MAX_TOKENS

    @patch("sonic_dictate.providers.Anthropic")
    def test_no_text_content(self, mock_anthropic):
        """Test that a response without text blocks fails."""
        response = MagicMock()
        response.content = []
        mock_anthropic.return_value.messages.create.return_value = response
        with pytest.raises(ProviderRequestFailed, match="no text content"):
            AnthropicClient(source_for(ProviderKind.ANTHROPIC)).generate("sys", None, "t")

    @patch("sonic_dictate.providers.Anthropic")
    def test_sdk_error_wrapped(self, mock_anthropic):
        """Test that SDK errors become ProviderRequestFailed."""
        mock_anthropic.return_value.messages.create.side_effect = anthropic.APIConnectionError(
            request=REQUEST
        )
        with pytest.raises(ProviderRequestFailed, match="Anthropic request failed"):
            AnthropicClient(source_for(ProviderKind.ANTHROPIC)).generate("sys", None, "t")


class TestGoogleClient:
    """Test the Gemini client."""

    @patch("sonic_dictate.providers.httpx.post")
    def test_generate_success(self, mock_post):
        """Test a successful generateContent call."""
        mock_post.return_value = httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "Bonjour"}]}}]},
            request=REQUEST,
        )

        result = GoogleClient(source_for(ProviderKind.GOOGLE, "g-key")).generate("sys", "inst", "hi")

        assert result == "Bonjour"
        args, kwargs = mock_post.call_args
        assert args[0] == config.GEMINI_API_URL.format(model="gemini-3-flash-preview")
        assert kwargs["headers"] == {"x-goog-api-key": "g-key"}
        assert "<TEXT>hi</TEXT>" in kwargs["json"]["contents"][0]["parts"][0]["text"]

    @patch("sonic_dictate.providers.httpx.post")
    def test_http_error_status(self, mock_post):
        """Test that a non-2xx status fails loudly."""
        mock_post.return_value = httpx.Response(400, json={"error": {}}, request=REQUEST)
        with pytest.raises(ProviderRequestFailed, match="HTTP 400"):
            GoogleClient(source_for(ProviderKind.GOOGLE)).generate("sys", None, "hi")

    @patch("sonic_dictate.providers.httpx.post")
    def test_transport_error(self, mock_post):
        """Test that connection failures are wrapped."""
        mock_post.side_effect = httpx.ConnectError("refused", request=REQUEST)
        with pytest.raises(ProviderRequestFailed, match="Gemini request failed"):
            GoogleClient(source_for(ProviderKind.GOOGLE)).generate("sys", None, "hi")

    @patch("sonic_dictate.providers.httpx.post")
    def test_unexpected_body(self, mock_post):
        """Test that a body without candidates is a failure."""
        mock_post.return_value = httpx.Response(200, json={"candidates": []}, request=REQUEST)
        with pytest.raises(ProviderRequestFailed, match="Unexpected Gemini response"):
            GoogleClient(source_for(ProviderKind.GOOGLE)).generate("sys", None, "hi")


class TestBuildRemoteClients:
    """Test the client lookup table."""

    def test_one_client_per_remote_provider(self):
        """Test that every remote provider has a client of the right kind."""
        clients = build_remote_clients(source_for(ProviderKind.OPENAI))
        assert set(clients) == {ProviderKind.GOOGLE, ProviderKind.OPENAI, ProviderKind.ANTHROPIC}
        assert all(client.kind is kind for kind, client in clients.items())

    def test_key_read_at_call_time(self):
        """Test that a key change is seen by the next request."""
        current = {"key": ""}

        def source():
            return ProviderConfig(
                provider=ProviderKind.OPENAI, credentials={ProviderKind.OPENAI: current["key"]}
            )

        client = build_remote_clients(source)[ProviderKind.OPENAI]
        with pytest.raises(MissingCredential):
            client.generate("sys", None, "t")

        current["key"] = "sk-new"
        with patch("sonic_dictate.providers.OpenAI") as mock_openai:
            mock_openai.return_value.chat.completions.create.return_value = openai_response("ok")
            assert client.generate("sys", None, "t") == "ok"
        assert mock_openai.call_args.kwargs["api_key"] == "sk-new"
