"""Testes unitários de configuração: Settings, ClientConfig, arquivo e normalização da URL."""
import json
import os
import stat

import pytest
from pydantic import ValidationError

from tfs_cli.config import (
    REDACTED,
    ClientConfig,
    Settings,
    default_config_path,
    load_file_config,
    merge_config,
    normalize_base_url,
    save_file_config,
)
from tfs_cli.errors import ConfigInvalidError


class TestClientConfig:
    def test_redacted_hides_token(self):
        cfg = ClientConfig(base_url="https://h/c", project="P", pat="super-secret")
        red = cfg.redacted()
        assert red.pat == REDACTED
        assert "super-secret" not in red.model_dump_json()
        assert cfg.pat == "super-secret"

    def test_redacted_idempotent(self):
        red = ClientConfig(pat="super-secret").redacted()
        assert red.redacted() == red
        assert red.redacted().pat == REDACTED

    def test_redacted_empty_pat(self):
        assert ClientConfig().redacted().pat == ""

    def test_with_project_does_not_mutate(self):
        cfg = ClientConfig(base_url="https://h/c", project="A", pat="x", insecure=True)
        other = cfg.with_project("B")
        assert cfg.project == "A"
        assert other.project == "B"
        assert other.base_url == cfg.base_url
        assert other.insecure is True

    def test_frozen(self):
        cfg = ClientConfig(project="A")
        with pytest.raises(ValidationError):
            cfg.project = "B"

    def test_file_dict_uses_alias(self):
        cfg = ClientConfig(base_url="https://h/c", project="P", pat="x", insecure=True)
        assert cfg.to_file_dict() == {"baseUrl": "https://h/c", "project": "P", "pat": "x"}


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.TFS_LOG_LEVEL == "WARNING"
        assert s.TFS_TIMEOUT_SECONDS == 30.0
        assert s.my_default_states == ["Разработка", "Выполняется"]

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TFS_BASE_URL", "https://h/c")
        monkeypatch.setenv("TFS_PROJECT", "P")
        monkeypatch.setenv("TFS_PAT", "tok")
        monkeypatch.setenv("TFS_MY_DEFAULT_STATES", "Active, New")
        s = Settings()
        assert s.to_client_config() == ClientConfig(base_url="https://h/c", project="P", pat="tok")
        assert s.my_default_states == ["Active", "New"]

    def test_placeholder_is_unset(self, monkeypatch):
        monkeypatch.setenv("TFS_PAT", "$(TFS_PAT)")
        monkeypatch.setenv("TFS_TIMEOUT_SECONDS", "$(TIMEOUT)")
        s = Settings()
        assert s.TFS_PAT == ""
        assert s.TFS_TIMEOUT_SECONDS == 30.0


class TestConfigFile:
    def test_default_path_uses_xdg(self, isolated_env):
        assert default_config_path() == isolated_env / "xdg" / "tfs" / "config.json"

    def test_missing_file_is_empty(self, tmp_path):
        assert load_file_config(tmp_path / "nope.json") == ClientConfig()

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "sub" / "config.json"
        save_file_config(ClientConfig(base_url="https://h/c", project="P", pat="tok"), path)
        assert json.loads(path.read_text(encoding="utf-8")) == {"baseUrl": "https://h/c", "project": "P", "pat": "tok"}
        if os.name == "posix":
            assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert load_file_config(path).pat == "tok"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigInvalidError):
            load_file_config(path)

    def test_non_object_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ConfigInvalidError):
            load_file_config(path)


def test_merge_config_non_empty_wins():
    base = ClientConfig(base_url="https://file/c", project="FileProj", pat="file")
    merged = merge_config(base, ClientConfig(project="EnvProj"))
    assert merged == ClientConfig(base_url="https://file/c", project="EnvProj", pat="file")


@pytest.mark.parametrize(
    "base_url,project,expected",
    [
        ("https://tfs.example.com/DefaultCollection/MyProject", "MyProject", ("https://tfs.example.com/DefaultCollection", True)),
        ("https://tfs.example.com/DefaultCollection/myproject/", "MyProject", ("https://tfs.example.com/DefaultCollection", True)),
        ("https://tfs.example.com/DefaultCollection", "MyProject", ("https://tfs.example.com/DefaultCollection", False)),
        ("https://tfs.example.com/DefaultCollection/MyProject", "", ("https://tfs.example.com/DefaultCollection/MyProject", False)),
    ],
)
def test_normalize_base_url(base_url, project, expected):
    assert normalize_base_url(base_url, project) == expected
