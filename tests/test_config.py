from __future__ import annotations

from pathlib import Path

import pytest

from e2dupes.config import CONFIG_ENV_VAR, AppConfig, load_config
from e2dupes.errors import ConfigError
from e2dupes.labels import CABLE_GROUP_LABEL, TERRESTRIAL_GROUP_LABEL


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

    config = load_config()

    assert config == AppConfig()
    assert config.require_confirmation is True
    assert config.cable_label == CABLE_GROUP_LABEL
    assert config.terrestrial_label == TERRESTRIAL_GROUP_LABEL


def test_full_config(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "e2dupes.yaml",
        """
log_level: debug
settings_dir: settings
output_dir: /tmp/e2dupes-out
require_confirmation: false
group_labels:
  cable: Kabel
  terrestrial: Antenne
""",
    )

    config = load_config(path)

    assert config.log_level == "debug"
    assert config.settings_dir == tmp_path / "settings"
    assert config.output_dir == Path("/tmp/e2dupes-out")
    assert config.require_confirmation is False
    assert config.cable_label == "Kabel"
    assert config.terrestrial_label == "Antenne"


def test_config_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path / "env.yaml", "group_labels:\n  cable: Cable TV\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    config = load_config()

    assert config.cable_label == "Cable TV"
    assert config.terrestrial_label == TERRESTRIAL_GROUP_LABEL


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    assert load_config(_write(tmp_path / "empty.yaml", "")) == AppConfig()


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.yaml")


def test_unknown_key_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path / "bad.yaml", "colour: blue\n")

    with pytest.raises(ConfigError, match="invalid config"):
        load_config(path)


def test_wrong_type_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path / "bad.yaml", "require_confirmation: maybe\n")

    with pytest.raises(ConfigError, match="require_confirmation"):
        load_config(path)


def test_non_mapping_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path / "list.yaml", "- one\n- two\n")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)


def test_yaml_syntax_error(tmp_path: Path) -> None:
    path = _write(tmp_path / "broken.yaml", "log_level: [unclosed\n")

    with pytest.raises(ConfigError, match="failed to parse"):
        load_config(path)
