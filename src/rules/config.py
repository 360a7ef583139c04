from __future__ import annotations

import keyword
from pathlib import Path
from typing import Literal

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from contract.artifacts import DEFAULT_GENERATED_MODULE
from contract.errors import SigprofError
from instrument.registry import DEFAULT_PROBE_LIMIT

CONFIG_FILENAME = "sigprof.toml"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class SigprofConfig(BaseModel):
    """Configuration for one instrumentation run."""

    model_config = ConfigDict(extra="forbid")

    output_dir: str = Field(
        default="build",
        description="Directory (relative to the root) that receives the instrumented tree",
    )
    include: list[str] = Field(
        default_factory=list,
        description="fnmatch patterns a unit path must match; empty keeps every file",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="fnmatch patterns whose matching unit paths are skipped",
    )
    nested_gitignore: bool = Field(
        default=False,
        description=(
            "Honor every .gitignore under the root, not just the top-level one"
        ),
    )
    generated_module: str = Field(
        default=DEFAULT_GENERATED_MODULE,
        description="Module name of the consolidated wrapper module",
    )
    probe_limit: int = Field(
        default=DEFAULT_PROBE_LIMIT,
        gt=0,
        description="Maximum hash collisions probed before giving up",
    )
    log_level: LogLevel = Field(
        default="WARNING",
        description="Logging level for the sigprof command",
    )

    @field_validator("generated_module")
    @classmethod
    def validate_generated_module(cls, v: str) -> str:
        if not v.isidentifier() or keyword.iskeyword(v):
            msg = f"generated_module must be a valid Python identifier, got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> object:
        if isinstance(v, str):
            return v.upper()
        return v


class ConfigError(SigprofError):
    """Raised for an unreadable or invalid sigprof.toml, or a bad root or output path."""


def resolve_output_dir(root: Path, output_dir: str) -> Path:
    """Turn the configured output_dir into an absolute path under ``root``.

    Only a non-empty relative path naming a proper subdirectory of the root
    is accepted, checked after symlinks and ``..`` are resolved.
    """
    candidate = Path(output_dir)
    if not output_dir or output_dir.startswith("~") or candidate.is_absolute():
        msg = f"output_dir must be a non-empty relative path, got {output_dir!r}"
        raise ConfigError(msg)

    try:
        base = root.resolve()
        target = base.joinpath(candidate).resolve()
    except OSError as exc:
        msg = f"cannot resolve output_dir {output_dir!r}: {exc}"
        raise ConfigError(msg) from exc

    if not target.is_relative_to(base):
        msg = f"output_dir {output_dir!r} escapes the root"
        raise ConfigError(msg)
    if target == base:
        msg = "output_dir must not be the root itself"
        raise ConfigError(msg)
    return target


def load_config(root: Path) -> SigprofConfig:
    """Load configuration from sigprof.toml if it exists."""
    config_path = Path(root) / CONFIG_FILENAME

    if not config_path.is_file():
        return SigprofConfig()

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {config_path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return SigprofConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid config in {config_path}: {e}"
        raise ConfigError(msg) from e


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "LogLevel",
    "SigprofConfig",
    "load_config",
    "resolve_output_dir",
]
