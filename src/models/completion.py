"""Provider-agnostic completion models.

Every AI backend receives a :class:`CompletionRequest` and returns a
:class:`CompletionResult`; the adapters in ``src/providers/ai/`` translate
to and from each vendor's wire format so no caller ever touches an SDK
type.  All models are frozen Pydantic v2 models.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):  # noqa: UP042
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One turn of the conversation sent to a provider."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str


class CompletionRequest(BaseModel):
    """A single completion call.

    Range checks that depend on the backend (token ceiling, temperature
    maximum, supported models) are done by each provider before any
    network call; only the provider-independent invariants live here.
    """

    model_config = ConfigDict(frozen=True)

    model: str = Field(min_length=1)
    messages: list[ChatMessage] = Field(min_length=1)
    max_tokens: int = Field(gt=0)
    temperature: float = Field(ge=0.0)
    system_prompt: str | None = None

    def resolved_system_prompt(self) -> str | None:
        """Return ``system_prompt`` or, failing that, the first system message."""
        if self.system_prompt:
            return self.system_prompt
        for message in self.messages:
            if message.role == MessageRole.SYSTEM:
                return message.content
        return None

    def conversation(self) -> list[ChatMessage]:
        """Return the non-system messages in order."""
        return [m for m in self.messages if m.role != MessageRole.SYSTEM]


class TokenUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResult(BaseModel):
    """What a provider returns for a successful completion."""

    model_config = ConfigDict(frozen=True)

    content: str
    usage: TokenUsage | None = None
    model: str
    finish_reason: str = "stop"


class ProviderConfig(BaseModel):
    """Connection settings handed to :meth:`IAIProvider.initialize`."""

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    base_url: str | None = None
    timeout: float = Field(default=30.0, gt=0, description="Per-call timeout in seconds.")
    max_retries: int = Field(default=3, ge=0, description="SDK-level retries per call.")


class ProviderInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    capabilities: list[str] = Field(default_factory=list)


class UseCaseSettings(BaseModel):
    """Recommended sampling settings for one use case (e.g. summarization)."""

    model_config = ConfigDict(frozen=True)

    temperature: float = Field(ge=0.0)
    max_tokens: int = Field(gt=0)
