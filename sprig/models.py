from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Literal, TypeVar, Union

T = TypeVar("T")

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class StreamChunk:
    text: str
    consumed_length: int


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T


@dataclass(frozen=True)
class Incomplete:
    pass


@dataclass(frozen=True)
class Malformed:
    reason: str
    consumed_length: int = 0


INCOMPLETE = Incomplete()

StreamResult = Union[Parsed[StreamChunk], Incomplete, Malformed]


def consumed_length(result: StreamResult) -> int:
    if isinstance(result, Parsed):
        return result.value.consumed_length
    if isinstance(result, Malformed):
        return result.consumed_length
    return 0


@dataclass(frozen=True)
class DiffBlock:
    language: str
    file_path: str
    current_content: str
    new_content: str


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class GPTRequest:
    messages: list[ChatMessage] = field(default_factory=list)
    prompt: str = ""
    temperature: float | None = None
    max_tokens: int | None = None

    def conversation(self) -> list[ChatMessage]:
        if self.messages:
            return list(self.messages)
        return [ChatMessage("user", self.prompt)]
