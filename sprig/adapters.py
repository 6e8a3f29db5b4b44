"""
[FILE SUMMARY]
context:
  INTENT:
    purpose: >
      Hides each chat-completion vendor behind one adapter interface: endpoint, headers,
      payload, non-streaming response extraction, and incremental normalization of that
      vendor's streaming wire format into uniform StreamChunks.

  STRUCTURAL:
    responsibility: >
      Provides the ProviderAdapter protocol, one adapter per supported vendor, and the two
      shared stream-normalization strategies (event-delimited envelopes and brace scanning).
      Incomplete or malformed JSON is an expected condition and is reported as a tagged
      result, never raised.
    boundaries:
      owns:
        - Vendor request/response shapes
        - Stream envelope decoding and consumed-length bookkeeping
        - Mapping "provider:model" strings to adapters
      does_not_own:
        - HTTP transport and retries (owned by client.py)
        - Code block detection (owned by scanner.py)
    entrypoints:
      - get_adapter
      - scan_json_object
      - split_event_envelopes
[/FILE SUMMARY]
"""
from __future__ import annotations

import json
from typing import Any, Callable, Protocol

from .errors import ConfigError
from .models import (
    INCOMPLETE,
    ChatMessage,
    GPTRequest,
    Malformed,
    Parsed,
    StreamChunk,
    StreamResult,
)

DEFAULT_TEMPERATURE = 0.2

TextExtractor = Callable[[dict], "str | None"]


class ProviderAdapter(Protocol):
    provider: str
    api_key_env_var: str | None
    supported_models: list[str]

    def get_endpoint(self, stream: bool = False) -> str:
        ...

    def get_headers(self, api_key: str | None) -> dict[str, str]:
        ...

    def get_payload(self, request: GPTRequest, stream: bool = False) -> dict[str, Any]:
        ...

    def extract_response(self, body: Any) -> str:
        ...

    def convert_stream(self, buffer: str) -> StreamResult:
        ...


def dig(d: Any, path: list) -> Any:
    cur = d
    for k in path:
        if isinstance(k, int):
            if not isinstance(cur, list) or len(cur) <= k:
                return None
        elif not isinstance(cur, dict):
            return None
        cur = cur[k] if isinstance(k, int) else cur.get(k)
    return cur


def scan_json_object(buffer: str, extract: TextExtractor) -> StreamResult:
    start = buffer.find("{")
    if start < 0:
        return INCOMPLETE

    for end in range(start + 1, len(buffer) + 1):
        if buffer[end - 1] != "}":
            continue
        try:
            envelope = json.loads(buffer[start:end])
        except ValueError:
            continue
        text = extract(envelope) if isinstance(envelope, dict) else None
        if text is None:
            return Malformed(f"unrecognised stream envelope: {buffer[start:end][:200]}", end)
        return Parsed(StreamChunk(text, end))

    return INCOMPLETE


def parse_envelope(piece: str) -> dict:
    start = piece.find("{")
    end = piece.rfind("}")
    if start < 0 or end < start:
        return {}
    try:
        loaded = json.loads(piece[start : end + 1])
    except ValueError:
        return {}
    return loaded if isinstance(loaded, dict) else {}


def split_event_envelopes(buffer: str, extract: TextExtractor, delimiter: str = "\n\n") -> StreamResult:
    complete_end = buffer.rfind(delimiter)
    if complete_end < 0:
        return INCOMPLETE
    consumed = complete_end + len(delimiter)

    envelopes = list(map(parse_envelope, buffer[:complete_end].split(delimiter)))
    error = next(filter(lambda e: e.get("type") == "error", envelopes), None)
    if error is not None:
        message = dig(error, ["error", "message"]) or "provider reported an error"
        return Malformed(str(message), consumed)

    texts = list(filter(lambda t: t is not None, map(extract, envelopes)))
    if not texts:
        return INCOMPLETE
    return Parsed(StreamChunk("".join(texts), consumed))


def openai_delta_text(envelope: dict) -> str | None:
    if "choices" not in envelope:
        return None
    content = dig(envelope, ["choices", 0, "delta", "content"])
    return content if isinstance(content, str) else ""


def claude_delta_text(envelope: dict) -> str | None:
    kind = envelope.get("type")
    if kind == "content_block_delta" and dig(envelope, ["delta", "type"]) == "text_delta":
        return dig(envelope, ["delta", "text"]) or None
    if kind == "content_block_start" and dig(envelope, ["content_block", "type"]) == "text":
        return dig(envelope, ["content_block", "text"]) or None
    return None


def gemini_delta_text(envelope: dict) -> str | None:
    if "candidates" not in envelope:
        return None
    text = dig(envelope, ["candidates", 0, "content", "parts", 0, "text"])
    return text if isinstance(text, str) else ""


def ollama_delta_text(envelope: dict) -> str | None:
    message = dig(envelope, ["message", "content"])
    if isinstance(message, str):
        return message
    response = envelope.get("response")
    if isinstance(response, str):
        return response
    return "" if envelope.get("done") is True else None


def dashed_model_name(model: str) -> str:
    return model.replace(":", "-", 1)


class OpenAIAdapter:
    provider = "openai"
    api_key_env_var: str | None = "OPENAI_API_KEY"
    default_endpoint = "https://api.openai.com/v1/chat/completions"
    supported_models = [
        "openai:gpt-4o",
        "openai:gpt-4o-mini",
        "openai:gpt-4-turbo",
        "openai:gpt-3.5-turbo",
    ]

    def __init__(self, model: str, endpoint: str | None = None):
        self.model = model
        self.endpoint = endpoint

    def get_endpoint(self, stream: bool = False) -> str:
        return self.endpoint or self.default_endpoint

    def get_headers(self, api_key: str | None) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key or ''}",
            "Content-Type": "application/json",
        }

    def get_payload(self, request: GPTRequest, stream: bool = False) -> dict[str, Any]:
        payload = {
            "model": dashed_model_name(self.model),
            "messages": list(map(ChatMessage.to_dict, request.conversation())),
            "temperature": request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE,
            "stream": stream,
        }
        if request.max_tokens:
            payload["max_tokens"] = request.max_tokens
        return payload

    def extract_response(self, body: Any) -> str:
        content = dig(body, ["choices", 0, "message", "content"])
        if not isinstance(content, str):
            raise ValueError("No valid response from API")
        return content

    def convert_stream(self, buffer: str) -> StreamResult:
        return scan_json_object(buffer, openai_delta_text)


class AzureOpenAIAdapter(OpenAIAdapter):
    provider = "azureopenai"
    api_key_env_var = "AZURE_OPENAI_API_KEY"
    default_endpoint = ""
    supported_models = [
        "azureopenai:gpt-4o",
        "azureopenai:gpt-4o-mini",
        "azureopenai:gpt-4-turbo",
    ]

    def __init__(self, model: str, endpoint: str | None = None):
        if not endpoint:
            raise ConfigError("azureopenai models need an `endpoint` in the config file")
        super().__init__(model, endpoint)

    def get_headers(self, api_key: str | None) -> dict[str, str]:
        return {"api-key": api_key or "", "Content-Type": "application/json"}


class MistralAdapter(OpenAIAdapter):
    provider = "mistral"
    api_key_env_var = "MISTRAL_API_KEY"
    default_endpoint = "https://api.mistral.ai/v1/chat/completions"
    supported_models = [
        "mistral:mistral-small-latest",
        "mistral:mistral-large-latest",
        "mistral:codestral-latest",
        "mistral:open-mixtral-8x22b",
    ]


class ClaudeAdapter:
    provider = "claude"
    api_key_env_var: str | None = "ANTHROPIC_API_KEY"
    anthropic_version = "2023-06-01"
    default_endpoint = "https://api.anthropic.com/v1/messages"
    supported_models = [
        "claude:claude-3-5-sonnet-20240620",
        "claude:claude-3-opus-20240229",
        "claude:claude-3-haiku-20240307",
    ]

    def __init__(self, model: str, endpoint: str | None = None):
        self.model = model
        self.endpoint = endpoint

    def get_endpoint(self, stream: bool = False) -> str:
        return self.endpoint or self.default_endpoint

    def get_headers(self, api_key: str | None) -> dict[str, str]:
        return {
            "x-api-key": api_key or "",
            "anthropic-version": self.anthropic_version,
            "Content-Type": "application/json",
        }

    def get_payload(self, request: GPTRequest, stream: bool = False) -> dict[str, Any]:
        conversation = request.conversation()
        system = "\n\n".join(m.content for m in conversation if m.role == "system")
        payload = {
            "model": self.model,
            "messages": [m.to_dict() for m in conversation if m.role != "system"],
            "max_tokens": request.max_tokens or 4096,
            "temperature": request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE,
            "stream": stream,
        }
        if system:
            payload["system"] = system
        return payload

    def extract_response(self, body: Any) -> str:
        content = dig(body, ["content"])
        if not isinstance(content, list) or not content:
            raise ValueError("Invalid response structure")
        return "\n".join(filter(None, map(lambda item: dig(item, ["text"]), content)))

    def convert_stream(self, buffer: str) -> StreamResult:
        return split_event_envelopes(buffer, claude_delta_text)


class GeminiAdapter:
    provider = "gemini"
    api_key_env_var: str | None = "GEMINI_API_KEY"
    base_url = "https://generativelanguage.googleapis.com/v1beta/models"
    supported_models = [
        "gemini:gemini-1.5-pro-latest",
        "gemini:gemini-1.5-flash-latest",
    ]

    def __init__(self, model: str, endpoint: str | None = None):
        self.model = model
        self.endpoint = endpoint

    def get_endpoint(self, stream: bool = False) -> str:
        if self.endpoint:
            return self.endpoint
        action = "streamGenerateContent" if stream else "generateContent"
        return f"{self.base_url}/{dashed_model_name(self.model)}:{action}"

    def get_headers(self, api_key: str | None) -> dict[str, str]:
        return {"x-goog-api-key": api_key or "", "Content-Type": "application/json"}

    def get_payload(self, request: GPTRequest, stream: bool = False) -> dict[str, Any]:
        def one(m: ChatMessage) -> dict:
            role = "model" if m.role == "assistant" else "user"
            return {"role": role, "parts": [{"text": m.content}]}

        return {
            "contents": list(map(one, request.conversation())),
            "generationConfig": {
                "temperature": request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": request.max_tokens or 8192,
            },
        }

    def extract_response(self, body: Any) -> str:
        text = dig(body, ["candidates", 0, "content", "parts", 0, "text"])
        if not isinstance(text, str):
            raise ValueError("Invalid response structure")
        return text

    def convert_stream(self, buffer: str) -> StreamResult:
        return scan_json_object(buffer, gemini_delta_text)


class OllamaAdapter:
    provider = "ollama"
    api_key_env_var: str | None = None
    default_endpoint = "http://localhost:11434/api/chat"
    supported_models: list[str] = []

    def __init__(self, model: str, endpoint: str | None = None):
        self.model = model
        self.endpoint = endpoint

    def get_endpoint(self, stream: bool = False) -> str:
        return self.endpoint or self.default_endpoint

    def get_headers(self, api_key: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def get_payload(self, request: GPTRequest, stream: bool = False) -> dict[str, Any]:
        options = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        return {
            "model": self.model,
            "messages": list(map(ChatMessage.to_dict, request.conversation())),
            "stream": stream,
            "options": options,
        }

    def extract_response(self, body: Any) -> str:
        text = ollama_delta_text(body) if isinstance(body, dict) else None
        if text is None:
            raise ValueError("Invalid response structure")
        return text

    def convert_stream(self, buffer: str) -> StreamResult:
        return scan_json_object(buffer, ollama_delta_text)


ADAPTERS = {
    cls.provider: cls
    for cls in (OpenAIAdapter, AzureOpenAIAdapter, MistralAdapter, ClaudeAdapter, GeminiAdapter, OllamaAdapter)
}


def split_model(model: str) -> tuple[str, str]:
    provider, sep, name = (model or "").strip().partition(":")
    if not sep or not name:
        raise ConfigError(f"Model must look like provider:model, got {model!r}")
    if provider not in ADAPTERS:
        available = ", ".join(sorted(ADAPTERS))
        raise ConfigError(f"Unsupported provider: {provider} (available: {available})")
    return (provider, name)


def adapter_class(model: str) -> type:
    return ADAPTERS[split_model(model)[0]]


def get_adapter(model: str, endpoint: str | None = None) -> ProviderAdapter:
    provider, name = split_model(model)
    return ADAPTERS[provider](name, endpoint)
