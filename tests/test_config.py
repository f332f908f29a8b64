import logging

import pytest

from convoscript.config import ScriptConfig, build_client, load_config
from convoscript.core.context import DEFAULT_MODEL


class TestLoadConfig:
    def test_missing_file(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            config = load_config(tmp_path / "config.yaml")
        assert config == ScriptConfig()
        assert config.model == DEFAULT_MODEL
        assert "No configuration found" in caplog.text

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == ScriptConfig()

    def test_full(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "model: anthropic:claude-3-5-haiku-latest\n"
            "providers:\n"
            "  anthropic:\n"
            "    api_key: secret\n"
            "request_params:\n"
            "  temperature: 0.2\n"
            "log_level: INFO\n"
        )
        config = load_config(path)
        assert config.model == "anthropic:claude-3-5-haiku-latest"
        assert config.providers == {"anthropic": {"api_key": "secret"}}
        assert config.request_params == {"temperature": 0.2}
        assert config.log_level == "INFO"

    def test_legacy_openai_token(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("openai:\n  token: sk-test\n")
        assert load_config(path).providers == {"openai": {"api_key": "sk-test"}}

    def test_legacy_token_does_not_override(self):
        config = ScriptConfig.model_validate(
            {"openai": {"token": "old"}, "providers": {"openai": {"api_key": "new"}}}
        )
        assert config.providers["openai"]["api_key"] == "new"


def test_build_client(monkeypatch):
    captured = {}

    class FakeClient:
        def __init__(self, provider_configs=None):
            captured["provider_configs"] = provider_configs

    monkeypatch.setattr("convoscript.config.Client", FakeClient)
    client = build_client(ScriptConfig(providers={"openai": {"api_key": "k"}}))
    assert isinstance(client, FakeClient)
    assert captured["provider_configs"] == {"openai": {"api_key": "k"}}


def test_invalid_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("providers: [1, 2]\n")
    with pytest.raises(ValueError):
        load_config(path)
