"""Configuration schema using Pydantic."""

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EstimatorConfig(BaseModel):
    """Token cost model. The ratios are calibrated against cl100k_base."""
    encoding_name: str = "cl100k_base"
    load_timeout_seconds: float = 3.0  # Encoder load may download the BPE ranks
    chars_per_token: float = 4.0  # Heuristic when the encoder is unavailable
    image_tokens_per_kb: float = 15.0
    message_overhead_tokens: int = 5  # role and metadata fields
    tool_overhead_tokens: int = 10  # toolCallId, state, ...
    image_metadata_tokens: int = 5
    text_output_overhead_tokens: int = 3
    error_overhead_tokens: int = 5
    requested_state_tokens: int = 2
    input_fallback_tokens: int = 20  # Input could not be serialized
    tool_fallback_tokens: int = 80  # Whole tool part could not be costed
    fallback_image_chars_per_kb: float = 60.0  # Used by the char-count fallback


class OptimizerConfig(BaseModel):
    """Conversation optimizer configuration."""
    max_output_tokens: int = 100_000
    target_tokens: int = 80_000
    preserve_recent_messages: int = Field(default=3, ge=1)
    fallback_keep_messages: int = 10  # Safety net keeps at least this many
    tool_result_max_chars: int = 1_000
    recent_image_window: int = 5  # Images this recent survive strip_old_images
    summary_preview_chars: int = 60
    summary_max_lines: int = 20

    @model_validator(mode="after")
    def _check_target(self) -> "OptimizerConfig":
        if self.target_tokens > self.max_output_tokens:
            raise ValueError("target_tokens must not exceed max_output_tokens")
        return self


class MemoryConfig(BaseModel):
    """Three-tier memory configuration."""
    default_token_budget: int = 3_000
    max_long_term_entries: int = 30
    min_conversation_history: int = 5
    per_type_fact_cap: int = 3
    history_budget_share: float = 0.3  # Share of the budget for recent turns
    chars_per_entry: int = 120
    max_history_entries: int = 20
    chars_per_token: int = 4


class DictionaryConfig(BaseModel):
    """Brand/location dictionary cache configuration."""
    ttl_seconds: float = 300.0  # 5 minutes, safety net behind invalidate()


class Config(BaseSettings):
    """Root configuration for ctxbudget."""
    estimator: EstimatorConfig = Field(default_factory=EstimatorConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    dictionary: DictionaryConfig = Field(default_factory=DictionaryConfig)

    model_config = SettingsConfigDict(
        env_prefix="CTXBUDGET_",
        env_nested_delimiter="__",
    )
