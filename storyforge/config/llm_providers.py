"""
LLM Provider Configuration for storyforge
DeepSeek (chat/streaming/tool calls), OpenAI-compatible fallback, and
SiliconFlow-style embedding + rerank endpoints.
"""

import os
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, SecretStr


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    DEEPSEEK = "deepseek"
    OPENAI = "openai"


# ============================================================================
# Model Definitions by Provider
# ============================================================================

DEEPSEEK_MODELS: Dict[str, Dict[str, Any]] = {
    "deepseek-chat": {
        "name": "DeepSeek V3",
        "description": "DeepSeek's general chat model, supports tool calls and JSON mode",
        "context_window": 64000,
        "max_output": 8192,
        "supports_function_calling": True,
    },
    "deepseek-reasoner": {
        "name": "DeepSeek R1",
        "description": "DeepSeek reasoning model, streams reasoning_content",
        "context_window": 64000,
        "max_output": 8192,
        "supports_function_calling": False,
    },
}

OPENAI_MODELS: Dict[str, Dict[str, Any]] = {
    "gpt-4o": {
        "name": "GPT-4o",
        "description": "Most capable GPT-4 model",
        "context_window": 128000,
        "max_output": 16384,
        "supports_function_calling": True,
    },
    "gpt-4o-mini": {
        "name": "GPT-4o Mini",
        "description": "Smaller, faster, cheaper GPT-4o variant",
        "context_window": 128000,
        "max_output": 16384,
        "supports_function_calling": True,
    },
}


# ============================================================================
# Provider Configuration Models
# ============================================================================

class ProviderConfig(BaseModel):
    """Base configuration for an LLM provider."""
    provider: LLMProvider
    api_key: SecretStr
    base_url: Optional[str] = None
    default_model: str
    enabled: bool = True

    @property
    def available_models(self) -> Dict[str, Dict[str, Any]]:
        return {}


class DeepSeekConfig(ProviderConfig):
    """DeepSeek-specific configuration (OpenAI-compatible API)."""
    provider: LLMProvider = LLMProvider.DEEPSEEK
    base_url: str = "https://api.deepseek.com"
    default_model: str = "deepseek-chat"

    @property
    def available_models(self) -> Dict[str, Dict[str, Any]]:
        return DEEPSEEK_MODELS


class OpenAIConfig(ProviderConfig):
    """OpenAI-specific configuration."""
    provider: LLMProvider = LLMProvider.OPENAI
    base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4o-mini"

    @property
    def available_models(self) -> Dict[str, Dict[str, Any]]:
        return OPENAI_MODELS


class EmbeddingConfig(BaseModel):
    """Embedding and rerank endpoints (OpenAI-compatible embeddings, Jina-style rerank)."""
    api_key: SecretStr
    base_url: str = "https://api.siliconflow.cn/v1"
    model: str = "BAAI/bge-m3"
    dimension: int = Field(default=1024, ge=1)
    rerank_model: str = "BAAI/bge-reranker-v2-m3"
    rerank_enabled: bool = True


# ============================================================================
# Agent Model Assignment
# ============================================================================

class AgentRole(str, Enum):
    """Every LLM-backed role in the novel workflow."""
    STORY_SUMMARIZER = "story_summarizer"
    NOVEL_WRITER = "novel_writer"
    OPTION_GENERATOR = "option_generator"
    EXPERT_CRITIQUE = "expert_critique"
    CRITIQUE_SUMMARIZER = "critique_summarizer"
    NOVEL_REWRITER = "novel_rewriter"
    OUTLINE_CONTRIBUTOR = "outline_contributor"
    OUTLINE_SUMMARIZER = "outline_summarizer"
    WORLDVIEW_ARCHITECT = "worldview_architect"
    EXPERT_RECRUITER = "expert_recruiter"
    CHARACTER_RECORDER = "character_recorder"
    TASK_RECORDER = "task_recorder"


class AgentSettings(BaseModel):
    """Model and sampling settings for one role."""
    model: str = "deepseek-chat"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: Optional[int] = None


DEFAULT_AGENT_TEMPERATURES: Dict[AgentRole, float] = {
    AgentRole.STORY_SUMMARIZER: 0.5,
    AgentRole.NOVEL_WRITER: 0.8,
    AgentRole.OPTION_GENERATOR: 0.7,
    AgentRole.EXPERT_CRITIQUE: 0.7,
    AgentRole.CRITIQUE_SUMMARIZER: 0.7,
    AgentRole.NOVEL_REWRITER: 0.8,
    AgentRole.OUTLINE_CONTRIBUTOR: 0.8,
    AgentRole.OUTLINE_SUMMARIZER: 0.7,
    AgentRole.WORLDVIEW_ARCHITECT: 0.9,
    AgentRole.EXPERT_RECRUITER: 0.7,
    AgentRole.CHARACTER_RECORDER: 0.6,
    AgentRole.TASK_RECORDER: 0.6,
}


def _default_agent_settings() -> Dict[AgentRole, AgentSettings]:
    return {
        role: AgentSettings(temperature=temperature)
        for role, temperature in DEFAULT_AGENT_TEMPERATURES.items()
    }


class AgentModelConfig(BaseModel):
    """Configuration for which model each role uses."""
    provider: LLMProvider = LLMProvider.DEEPSEEK
    agents: Dict[AgentRole, AgentSettings] = Field(default_factory=_default_agent_settings)

    def for_role(self, role: AgentRole) -> AgentSettings:
        """Settings for a role, falling back to defaults for unconfigured roles."""
        settings = self.agents.get(role)
        if settings is None:
            settings = AgentSettings(temperature=DEFAULT_AGENT_TEMPERATURES.get(role, 0.7))
        return settings


# ============================================================================
# Workflow Settings
# ============================================================================

class WorkflowSettings(BaseModel):
    """Knobs for the novel cycle."""
    max_revisions: int = Field(default=1, ge=1, le=5)
    outline_span: int = Field(default=5, ge=1)
    outline_discussion_rounds: int = Field(default=2, ge=1)
    speaker_delay_seconds: float = Field(default=1.0, ge=0.0)
    reader_choice_enabled: bool = True
    choice_timeout_seconds: float = Field(default=120.0, gt=0.0)
    max_tool_rounds: int = Field(default=3, ge=0, le=10)
    tool_search_limit: int = Field(default=3, ge=1)
    archive_threshold: int = Field(default=20000, ge=1)
    context_chunk_size: int = Field(default=10000, ge=1)
    memory_chunk_chars: int = Field(default=500, ge=50)
    archive_url: Optional[str] = None


# ============================================================================
# Master Configuration
# ============================================================================

class LLMConfiguration(BaseModel):
    """Master configuration with all providers and workflow settings."""

    deepseek: Optional[DeepSeekConfig] = None
    openai: Optional[OpenAIConfig] = None
    embedding: Optional[EmbeddingConfig] = None

    agent_models: AgentModelConfig = Field(default_factory=AgentModelConfig)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)

    timeout_seconds: int = Field(default=120, ge=10, le=600)

    def get_provider_config(self, provider: LLMProvider) -> Optional[ProviderConfig]:
        """Get configuration for a specific provider."""
        provider_map = {
            LLMProvider.DEEPSEEK: self.deepseek,
            LLMProvider.OPENAI: self.openai,
        }
        return provider_map.get(provider)

    def get_enabled_providers(self) -> List[LLMProvider]:
        """Get list of enabled providers."""
        enabled = []
        if self.deepseek and self.deepseek.enabled:
            enabled.append(LLMProvider.DEEPSEEK)
        if self.openai and self.openai.enabled:
            enabled.append(LLMProvider.OPENAI)
        return enabled

    def validate_configuration(self) -> List[str]:
        """Validate that the generation provider and all role models are usable."""
        errors = []
        provider = self.agent_models.provider
        provider_config = self.get_provider_config(provider)
        if not provider_config:
            errors.append(f"Provider {provider.value} is not configured")
        elif not provider_config.enabled:
            errors.append(f"Provider {provider.value} is disabled")
        else:
            for role in AgentRole:
                model = self.agent_models.for_role(role).model
                if model not in provider_config.available_models:
                    errors.append(f"{role.value}: Model {model} not available for {provider.value}")

        if not self.embedding:
            errors.append("Embedding service is not configured (set SILICONFLOW_API_KEY)")

        return errors


# ============================================================================
# Helper Functions
# ============================================================================

def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def create_default_config_from_env() -> LLMConfiguration:
    """Create configuration from environment variables."""
    config = LLMConfiguration()

    # DeepSeek
    if os.getenv("DEEPSEEK_API_KEY"):
        config.deepseek = DeepSeekConfig(
            api_key=SecretStr(os.getenv("DEEPSEEK_API_KEY")),
            base_url=os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com"),
        )

    # OpenAI
    if os.getenv("OPENAI_API_KEY"):
        config.openai = OpenAIConfig(
            api_key=SecretStr(os.getenv("OPENAI_API_KEY")),
        )
        if not config.deepseek:
            config.agent_models = AgentModelConfig(
                provider=LLMProvider.OPENAI,
                agents={
                    role: AgentSettings(model="gpt-4o-mini", temperature=temperature)
                    for role, temperature in DEFAULT_AGENT_TEMPERATURES.items()
                },
            )

    # Embeddings + rerank
    if os.getenv("SILICONFLOW_API_KEY"):
        config.embedding = EmbeddingConfig(
            api_key=SecretStr(os.getenv("SILICONFLOW_API_KEY")),
            base_url=os.getenv("EMBEDDING_BASE_URL", "https://api.siliconflow.cn/v1"),
            model=os.getenv("EMBEDDING_MODEL", "BAAI/bge-m3"),
            dimension=int(os.getenv("EMBEDDING_DIMENSION", "1024")),
            rerank_model=os.getenv("RERANK_MODEL", "BAAI/bge-reranker-v2-m3"),
            rerank_enabled=_env_bool("RERANK_ENABLED", True),
        )

    # Workflow
    config.workflow = WorkflowSettings(
        max_revisions=int(os.getenv("MAX_REVISIONS", "1")),
        reader_choice_enabled=_env_bool("READER_CHOICE_ENABLED", True),
        choice_timeout_seconds=float(os.getenv("CHOICE_TIMEOUT_SECONDS", "120")),
        speaker_delay_seconds=float(os.getenv("SPEAKER_DELAY_SECONDS", "1.0")),
        archive_url=os.getenv("ARCHIVE_URL"),
    )

    return config
