"""
storyforge Configuration Module
LLM provider, embedding and workflow settings.
"""

from .llm_providers import (
    DEEPSEEK_MODELS,
    OPENAI_MODELS,
    AgentModelConfig,
    AgentRole,
    AgentSettings,
    DeepSeekConfig,
    EmbeddingConfig,
    LLMConfiguration,
    LLMProvider,
    OpenAIConfig,
    ProviderConfig,
    WorkflowSettings,
    create_default_config_from_env,
)

__all__ = [
    "LLMProvider",
    "DEEPSEEK_MODELS",
    "OPENAI_MODELS",
    "ProviderConfig",
    "DeepSeekConfig",
    "OpenAIConfig",
    "EmbeddingConfig",
    "AgentRole",
    "AgentSettings",
    "AgentModelConfig",
    "WorkflowSettings",
    "LLMConfiguration",
    "create_default_config_from_env",
]
