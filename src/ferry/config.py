from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from .runners.claude import DEFAULT_MODEL

ENV_CLAUDE_CMD = "FERRY_CLAUDE_CMD"

LOCAL_CONFIG_NAME = Path(".ferry") / "ferry.toml"
HOME_CONFIG_PATH = Path.home() / ".ferry" / "ferry.toml"
DEFAULT_SESSION_PATH = Path.home() / ".ferry" / "session.json"


class ConfigError(RuntimeError):
    pass


class Permissions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    read_vault: bool = False
    list_vault_structure: bool = False
    edit_current_file: bool = False
    edit_any_file: bool = False
    create_files: bool = False

    @model_validator(mode="after")
    def _edit_any_implies_current(self) -> Permissions:
        if self.edit_any_file:
            self.edit_current_file = True
        return self


class FerrySettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    claude_cmd: str = "claude"
    model: str = DEFAULT_MODEL
    system_prompt: str | None = None
    clear_chat_on_start: bool = False
    session_path: Path = DEFAULT_SESSION_PATH
    permissions: Permissions = Permissions()

    @field_validator("claude_cmd", mode="before")
    @classmethod
    def _default_claude_cmd(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return "claude"
        return value.strip() if isinstance(value, str) else value

    @field_validator("model", mode="before")
    @classmethod
    def _default_model(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return DEFAULT_MODEL
        return value.strip() if isinstance(value, str) else value

    @field_validator("session_path", mode="after")
    @classmethod
    def _expand_session_path(cls, value: Path) -> Path:
        return value.expanduser()


def build_tools_list(permissions: Permissions) -> list[str]:
    tools = ["Read"]
    if permissions.list_vault_structure:
        tools.extend(["Glob", "Grep", "LS"])
    if permissions.edit_current_file or permissions.edit_any_file:
        tools.append("Edit")
    if permissions.edit_any_file or permissions.create_files:
        tools.append("Write")
    return tools


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config(path: str | Path | None = None) -> tuple[dict, Path | None]:
    """Read the raw TOML table; an absent default config is an empty table."""
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate
    return {}, None


def load_settings(path: str | Path | None = None) -> tuple[FerrySettings, Path | None]:
    config, cfg_path = load_config(path)

    env_cmd = os.environ.get(ENV_CLAUDE_CMD)
    if env_cmd and env_cmd.strip():
        config = {**config, "claude_cmd": env_cmd.strip()}

    try:
        settings = FerrySettings.model_validate(config)
    except ValidationError as e:
        where = cfg_path or "settings"
        raise ConfigError(f"Invalid config in {where}: {e}") from None
    return settings, cfg_path
