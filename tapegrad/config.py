"""
Package configuration.

A single Config instance is active per process. It is read from the
environment on first access and can be replaced with `set_config`.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, replace
from typing import Optional

from .core.storage import DType, float32


_TRUE = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
    default_dtype: DType = float32
    log_level: str = "WARNING"
    # Free gradient buffers of intermediate tensors once a backward pass ends.
    dispose_intermediate_gradients: bool = True

    @staticmethod
    def from_env() -> 'Config':
        dtype_name = os.getenv("TAPEGRAD_DEFAULT_DTYPE", float32.label)
        dispose = os.getenv("TAPEGRAD_DISPOSE_INTERMEDIATE", "1")
        return Config(
            default_dtype=DType.from_name(dtype_name),
            log_level=os.getenv("TAPEGRAD_LOG_LEVEL", "WARNING").upper(),
            dispose_intermediate_gradients=dispose.strip().lower() in _TRUE,
        )

    def updated(self, **changes) -> 'Config':
        return replace(self, **changes)


_config: Optional[Config] = None


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def set_config(config: Config) -> Config:
    """Install `config` and return the one it replaces."""
    global _config
    previous = get_config()
    _config = config
    return previous
