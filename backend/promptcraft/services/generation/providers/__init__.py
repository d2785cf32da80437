"""Generation provider implementations.

Each provider module implements the same pattern:
  resolve model → POST request (→ poll operation) → GenerationResult
"""

from promptcraft.services.generation.providers.a1111 import A1111Config, A1111Provider
from promptcraft.services.generation.providers.anthropic import AnthropicConfig, AnthropicProvider
from promptcraft.services.generation.providers.comfyui import ComfyUIConfig, ComfyUIProvider
from promptcraft.services.generation.providers.google import GoogleConfig, GoogleProvider
from promptcraft.services.generation.providers.grok import GrokConfig, GrokProvider
from promptcraft.services.generation.providers.invokeai import InvokeAIConfig, InvokeAIProvider
from promptcraft.services.generation.providers.openai import OpenAIConfig, OpenAIProvider

PROVIDER_CLASSES = {
    OpenAIProvider.name: OpenAIProvider,
    AnthropicProvider.name: AnthropicProvider,
    GoogleProvider.name: GoogleProvider,
    GrokProvider.name: GrokProvider,
    A1111Provider.name: A1111Provider,
    ComfyUIProvider.name: ComfyUIProvider,
    InvokeAIProvider.name: InvokeAIProvider,
}

__all__ = [
    "A1111Config",
    "A1111Provider",
    "AnthropicConfig",
    "AnthropicProvider",
    "ComfyUIConfig",
    "ComfyUIProvider",
    "GoogleConfig",
    "GoogleProvider",
    "GrokConfig",
    "GrokProvider",
    "InvokeAIConfig",
    "InvokeAIProvider",
    "OpenAIConfig",
    "OpenAIProvider",
    "PROVIDER_CLASSES",
]
