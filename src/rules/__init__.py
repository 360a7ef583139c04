"""Configuration rules for sigprof runs"""

from rules.config import (
    CONFIG_FILENAME,
    ConfigError,
    SigprofConfig,
    load_config,
    resolve_output_dir,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "SigprofConfig",
    "load_config",
    "resolve_output_dir",
]
