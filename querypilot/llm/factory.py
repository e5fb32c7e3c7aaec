"""
LLM Provider Factory

Factory for creating LLM provider instances based on configuration.
Supports OpenAI, Anthropic, Google, and Local providers.
"""

import logging
from typing import Literal

from querypilot.config import LLMSettings
from querypilot.llm.anthropic import AnthropicProvider
from querypilot.llm.base import BaseLLMProvider
from querypilot.llm.google import GoogleProvider
from querypilot.llm.local import LocalProvider
from querypilot.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)


class LLMProviderFactory:
    """
    Factory for creating LLM provider instances.

    Handles provider selection and per-role overrides
    (``agent_provider``, ``synthesis_provider``, ``planner_provider``).
    """

    # Registry of available providers
    PROVIDERS = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "google": GoogleProvider,
        "local": LocalProvider,
    }

    @staticmethod
    def create_provider(
        provider_type: Literal["openai", "anthropic", "google", "local"],
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """
        Create an LLM provider instance.

        Args:
            provider_type: Type of provider to create
            config: LLM configuration settings
            model_type: Use main model or mini model (default: main)

        Returns:
            Configured provider instance

        Raises:
            ValueError: If provider type is unknown or required config is missing
        """
        if provider_type not in LLMProviderFactory.PROVIDERS:
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {list(LLMProviderFactory.PROVIDERS.keys())}"
            )

        logger.info(
            f"Creating {provider_type} provider with {model_type} model",
            extra={"provider": provider_type, "model_type": model_type},
        )

        if provider_type == "local":
            # Local servers expose a single model
            return LocalProvider(
                base_url=config.local_base_url,
                model=config.local_model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout=config.timeout,
            )

        api_key = config.key_for(provider_type)
        if not api_key:
            raise ValueError(
                f"API key required for {provider_type} provider. "
                f"Set LLM_{provider_type.upper()}_API_KEY"
            )

        main_model = getattr(config, f"{provider_type}_model")
        mini_model = getattr(config, f"{provider_type}_model_mini")
        provider_cls = LLMProviderFactory.PROVIDERS[provider_type]
        return provider_cls(
            api_key=api_key,
            model=main_model if model_type == "main" else mini_model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )

    @staticmethod
    def create_default_provider(
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """Create provider using default_provider from config."""
        return LLMProviderFactory.create_provider(
            config.default_provider,
            config,
            model_type,
        )

    @staticmethod
    def create_agent_provider(
        agent_name: str,
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """
        Create provider for a specific role with override support.

        Checks for a role-specific provider override (e.g. ``synthesis_provider``)
        and falls back to ``default_provider`` if not specified.

        Args:
            agent_name: Role name ("agent", "synthesis", "planner")
            config: LLM configuration
            model_type: Use main or mini model
        """
        override_attr = f"{agent_name}_provider"
        override = getattr(config, override_attr, None)
        provider_type = override or config.default_provider

        logger.info(
            f"Creating provider for {agent_name}",
            extra={
                "agent": agent_name,
                "provider": provider_type,
                "has_override": override is not None,
            },
        )

        return LLMProviderFactory.create_provider(provider_type, config, model_type)
