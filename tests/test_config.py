from pathlib import Path

import pytest

from ferry.config import (
    ENV_CLAUDE_CMD,
    ConfigError,
    FerrySettings,
    Permissions,
    build_tools_list,
    load_config,
    load_settings,
)
from ferry.runners.claude import DEFAULT_MODEL


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(ENV_CLAUDE_CMD, raising=False)


class TestLoadConfig:
    def test_load_from_explicit_path(self, tmp_path: Path) -> None:
        config_file = tmp_path / "ferry.toml"
        config_file.write_text('claude_cmd = "/opt/claude"')

        config, path = load_config(config_file)

        assert config == {"claude_cmd": "/opt/claude"}
        assert path == config_file

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Missing config file"):
            load_config(tmp_path / "nonexistent.toml")

    def test_malformed_toml_raises(self, tmp_path: Path) -> None:
        bad_file = tmp_path / "bad.toml"
        bad_file.write_text("invalid = [unclosed")

        with pytest.raises(ConfigError, match="Malformed TOML"):
            load_config(bad_file)

    def test_path_exists_but_is_directory(self, tmp_path: Path) -> None:
        dir_path = tmp_path / "config_dir"
        dir_path.mkdir()

        with pytest.raises(ConfigError, match="Failed to read config file"):
            load_config(dir_path)

    def test_local_config_is_found(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        local = tmp_path / ".ferry" / "ferry.toml"
        local.parent.mkdir()
        local.write_text('model = "claude-sonnet-4-5"')
        monkeypatch.chdir(tmp_path)

        config, path = load_config()

        assert config == {"model": "claude-sonnet-4-5"}
        assert path == local


class TestLoadSettings:
    def test_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "ferry.toml"
        config_file.write_text("")

        settings, _ = load_settings(config_file)

        assert settings.claude_cmd == "claude"
        assert settings.model == DEFAULT_MODEL
        assert settings.system_prompt is None
        assert settings.clear_chat_on_start is False
        assert settings.permissions == Permissions()

    def test_blank_values_fall_back_to_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "ferry.toml"
        config_file.write_text('claude_cmd = "   "\nmodel = ""')

        settings, _ = load_settings(config_file)

        assert settings.claude_cmd == "claude"
        assert settings.model == DEFAULT_MODEL

    def test_env_overrides_claude_cmd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config_file = tmp_path / "ferry.toml"
        config_file.write_text('claude_cmd = "/opt/claude"')
        monkeypatch.setenv(ENV_CLAUDE_CMD, " /usr/local/bin/claude ")

        settings, _ = load_settings(config_file)

        assert settings.claude_cmd == "/usr/local/bin/claude"

    def test_clear_chat_on_start(self, tmp_path: Path) -> None:
        config_file = tmp_path / "ferry.toml"
        config_file.write_text("clear_chat_on_start = true")

        settings, _ = load_settings(config_file)

        assert settings.clear_chat_on_start is True

    def test_session_path_is_expanded(self, tmp_path: Path) -> None:
        config_file = tmp_path / "ferry.toml"
        config_file.write_text('session_path = "~/chats/session.json"')

        settings, _ = load_settings(config_file)

        assert settings.session_path == Path.home() / "chats" / "session.json"

    def test_unknown_key_is_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "ferry.toml"
        config_file.write_text("bot_token = 1")

        with pytest.raises(ConfigError, match="Invalid config"):
            load_settings(config_file)

    def test_bad_permission_type_is_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "ferry.toml"
        config_file.write_text('[permissions]\nread_vault = "sometimes"')

        with pytest.raises(ConfigError, match="Invalid config"):
            load_settings(config_file)


class TestPermissions:
    def test_edit_any_file_implies_edit_current_file(self) -> None:
        permissions = Permissions(edit_any_file=True)
        assert permissions.edit_current_file is True

    def test_nested_table(self) -> None:
        settings = FerrySettings.model_validate(
            {"permissions": {"list_vault_structure": True}}
        )
        assert settings.permissions.list_vault_structure is True


@pytest.mark.parametrize(
    ("permissions", "expected"),
    [
        (Permissions(), ["Read"]),
        (Permissions(read_vault=True), ["Read"]),
        (Permissions(list_vault_structure=True), ["Read", "Glob", "Grep", "LS"]),
        (Permissions(edit_current_file=True), ["Read", "Edit"]),
        (Permissions(edit_any_file=True), ["Read", "Edit", "Write"]),
        (Permissions(create_files=True), ["Read", "Write"]),
        (
            Permissions(list_vault_structure=True, edit_any_file=True, create_files=True),
            ["Read", "Glob", "Grep", "LS", "Edit", "Write"],
        ),
    ],
)
def test_build_tools_list(permissions: Permissions, expected: list[str]) -> None:
    assert build_tools_list(permissions) == expected
