"""AI provider adapters and the provider registry.

Three concrete implementations of IAIProvider (src/interfaces/ai_provider.py):
    - ClaudeProvider  — Anthropic Messages API
    - OpenAIProvider  — OpenAI chat completions (or any compatible endpoint)
    - OllamaProvider  — local models through Ollama's OpenAI-compatible API

At startup, main.py activates the provider named by AI_PROVIDER on a
ProviderRegistry, which the orchestrator reads on every completion.
"""

from src.providers.ai.claude_provider import ClaudeProvider
from src.providers.ai.ollama_provider import OllamaProvider
from src.providers.ai.openai_provider import OpenAIProvider
from src.providers.ai.registry import ActiveProvider, ProviderRegistry

__all__ = [
    "ActiveProvider",
    "ClaudeProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "ProviderRegistry",
]
