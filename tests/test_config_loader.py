"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from companion_chat.config import AppConfig, StorageConfig
from companion_chat.config_loader import (
    CONFIG_ENV_VAR,
    load_config,
    load_text_file_with_guess_encoding,
    read_yaml,
)


def _write(path, text, encoding="utf-8"):
    path.write_text(text, encoding=encoding)
    return path


def test_defaults():
    config = AppConfig()
    assert config.history.limit == 30
    assert config.history.window_hours == 24
    assert config.vector.top_k == 3
    assert config.streaming.checkpoint_interval_seconds == 1.0
    assert config.llm.max_new_tokens == 2048
    assert config.llm.temperature == 0.7
    assert config.llm.repetition_penalty == 1.1
    assert config.rate_limit.requests == 10
    assert config.personas == []


def test_env_var_substitution(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_LLM_KEY", "secret-123")
    path = _write(tmp_path / "conf.yaml", "llm:\n  api_key: ${TEST_LLM_KEY}\n")

    data = read_yaml(path)

    assert data["llm"]["api_key"] == "secret-123"


def test_unknown_env_var_left_untouched(tmp_path, monkeypatch):
    monkeypatch.delenv("SURELY_UNSET_VAR", raising=False)
    path = _write(tmp_path / "conf.yaml", "llm:\n  api_key: ${SURELY_UNSET_VAR}\n")

    assert read_yaml(path)["llm"]["api_key"] == "${SURELY_UNSET_VAR}"


def test_read_yaml_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_yaml(tmp_path / "nope.yaml")


def test_load_config_with_personas(tmp_path):
    path = _write(
        tmp_path / "conf.yaml",
        """
history:
  limit: 10
personas:
  - id: aria
    name: Aria
    instructions: Aria is warm.
    seed: "User: hi\\n\\nAria: hello"
""",
    )

    config = load_config(path)

    assert config.history.limit == 10
    assert config.personas[0].id == "aria"
    assert config.personas[0].seed == "User: hi\n\nAria: hello"


def test_load_config_env_var_path(tmp_path, monkeypatch):
    path = _write(tmp_path / "custom.yaml", "vector:\n  top_k: 7\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    assert load_config().vector.top_k == 7


def test_load_config_missing_file_uses_defaults(tmp_path):
    config = load_config(tmp_path / "missing.yaml")
    assert config == AppConfig()


def test_load_config_invalid_raises(tmp_path):
    path = _write(tmp_path / "conf.yaml", "history:\n  backend: memcached\n")
    with pytest.raises(ValidationError):
        load_config(path)


def test_storage_path_rejects_parent_components():
    with pytest.raises(ValidationError):
        StorageConfig(sqlite_db_path="../../etc/chat.db")


def test_guess_encoding_non_utf8(tmp_path):
    path = _write(tmp_path / "conf.yaml", "# café résumé naïve\nserver:\n  port: 9000\n", encoding="latin-1")

    content = load_text_file_with_guess_encoding(str(path))

    assert content is not None
    assert "port: 9000" in content


def test_utf8_bom_is_dropped(tmp_path):
    path = _write(tmp_path / "conf.yaml", "vector:\n  top_k: 5\n", encoding="utf-8-sig")

    assert read_yaml(path) == {"vector": {"top_k": 5}}
