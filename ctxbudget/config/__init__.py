"""Configuration module for ctxbudget."""

from ctxbudget.config.loader import load_config, get_config_path, save_config
from ctxbudget.config.schema import (
    Config,
    DictionaryConfig,
    EstimatorConfig,
    MemoryConfig,
    OptimizerConfig,
)

__all__ = [
    "Config",
    "DictionaryConfig",
    "EstimatorConfig",
    "MemoryConfig",
    "OptimizerConfig",
    "load_config",
    "get_config_path",
    "save_config",
]
