"""
Declara Core Module
===================

Configuration and the validated-structure surface:
- Config: Layered configuration with environment overrides
- validated / check: Structure decorator and field helper (declara.core.struct)
"""

from declara.core.config import Config, get_config, reset_config

__all__ = [
    "Config",
    "get_config",
    "reset_config",
]
