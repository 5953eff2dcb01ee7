from pathlib import Path

import pytest

from sshlink.config import (
    ConnectConfig,
    ManagerSettings,
    load_config,
    resolve_host,
    resolve_settings,
)
from sshlink.constants import BACKOFF_TABLE, CONNECT_TIMEOUT


def test_connect_config_defaults():
    config = ConnectConfig(host="10.0.0.5", username="deploy", private_key_path="~/.ssh/id_ed25519")

    assert config.port == 22
    assert config.passphrase is None
    assert config.key_path == Path.home() / ".ssh" / "id_ed25519"
    assert config.target == "deploy@10.0.0.5:22"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"host": "", "username": "u", "private_key_path": "k"},
        {"host": "h", "username": "", "private_key_path": "k"},
        {"host": "h", "username": "u", "private_key_path": ""},
        {"host": "h", "username": "u", "private_key_path": "k", "port": 0},
        {"host": "h", "username": "u", "private_key_path": "k", "port": 70000},
    ],
)
def test_connect_config_validation(kwargs):
    with pytest.raises(ValueError):
        ConnectConfig(**kwargs)


def test_manager_settings_defaults():
    settings = ManagerSettings()
    assert settings.connect_timeout == CONNECT_TIMEOUT
    assert settings.backoff == BACKOFF_TABLE


def test_manager_settings_validation():
    with pytest.raises(ValueError):
        ManagerSettings(connect_timeout=0)
    with pytest.raises(ValueError):
        ManagerSettings(backoff=())


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_project_config_overrides_global(tmp_path):
    global_path = _write(
        tmp_path / "home" / "defaults.toml",
        """
[hosts.prod]
host = "10.0.0.5"
username = "deploy"
private_key_path = "~/.ssh/id_ed25519"

[manager]
connect_timeout = 10.0
""",
    )
    project_dir = tmp_path / "project"
    _write(
        project_dir / "sshlink.toml",
        """
[hosts.prod]
port = 2222

[hosts.staging]
host = "10.0.1.5"
username = "deploy"
private_key_path = "~/.ssh/staging"
""",
    )

    raw = load_config(project_dir=project_dir, global_path=global_path)
    assert set(raw["hosts"]) == {"prod", "staging"}

    prod = resolve_host("prod", project_dir=project_dir, global_path=global_path)
    assert prod == ConnectConfig(
        host="10.0.0.5",
        username="deploy",
        private_key_path="~/.ssh/id_ed25519",
        port=2222,
    )


def test_resolve_unknown_host(tmp_path):
    with pytest.raises(KeyError, match="not found"):
        resolve_host("nope", project_dir=tmp_path, global_path=tmp_path / "missing.toml")


def test_resolve_settings_from_toml(tmp_path):
    _write(
        tmp_path / "sshlink.toml",
        """
[manager]
connect_timeout = 5
backoff = [1, 3, 9]
""",
    )

    settings = resolve_settings(project_dir=tmp_path, global_path=tmp_path / "missing.toml")

    assert settings == ManagerSettings(connect_timeout=5, backoff=(1.0, 3.0, 9.0))


def test_resolve_settings_defaults_without_files(tmp_path):
    settings = resolve_settings(project_dir=tmp_path, global_path=tmp_path / "missing.toml")
    assert settings == ManagerSettings()
