from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console

from sprig.config import Settings
from sprig.render import Renderer


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        chunks: list[str] | None = None,
        body: Any = None,
        text: str = "",
        headers: dict | None = None,
    ):
        self.status_code = status_code
        self.chunks = list(chunks or [])
        self.body = body
        self.text = text or (json.dumps(body) if body is not None else "")
        self.headers = dict(headers or {})
        self.encoding = None
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self.body is None:
            raise ValueError("no json body")
        return self.body

    def iter_content(self, chunk_size=None, decode_unicode=False):
        yield from self.chunks

    def close(self) -> None:
        self.closed = True


class FakeHttp:
    def __init__(self, responses: list[FakeResponse]):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def post(self, url, headers=None, json=None, stream=False, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "stream": stream})
        if not self.responses:
            raise AssertionError(f"Unexpected provider request during tests: POST {url}")
        return self.responses.pop(0)


def openai_sse(*texts: str) -> list[str]:
    def one(t: str) -> str:
        return "data: " + json.dumps({"choices": [{"index": 0, "delta": {"content": t}}]}) + "\n\n"

    return list(map(one, texts)) + ["data: [DONE]\n\n"]


def claude_sse(*texts: str) -> list[str]:
    def one(t: str) -> str:
        envelope = {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": t}}
        return "event: content_block_delta\ndata: " + json.dumps(envelope) + "\n\n"

    start = 'event: message_start\ndata: {"type": "message_start", "message": {"id": "msg_1"}}\n\n'
    stop = 'event: message_stop\ndata: {"type": "message_stop"}\n\n'
    return [start] + list(map(one, texts)) + [stop]


@pytest.fixture
def settings() -> Settings:
    return Settings(model="openai:gpt-4o", api_key="test-key", backoff_seconds=0.5, max_rate_limit_retries=4)


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def renderer(output: io.StringIO) -> Renderer:
    console = Console(file=output, soft_wrap=True, highlight=False, no_color=True, width=120)
    return Renderer(console, silent=True)


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text(
        "def main():\n    print('hello')\n    return 0\n",
        encoding="utf-8",
    )
    return tmp_path
