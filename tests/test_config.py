from __future__ import annotations

import pytest

from patchbay.config import PatchbayConfig


def test_from_mapping_builds_validated_config():
    config = PatchbayConfig.from_mapping(
        {
            "api_keys": {"openai": "sk-config"},
            "include_debug_connector": False,
            "disabled_connectors": ["builtin/anthropic"],
        }
    )
    assert config.api_keys == {"openai": "sk-config"}
    assert config.include_debug_connector is False
    assert config.disabled_connectors == frozenset({"builtin/anthropic"})
    assert config.explicit_key("openai") == "sk-config"
    assert config.explicit_key("anthropic") is None
    assert not config.is_enabled("builtin/anthropic")
    assert config.is_enabled("builtin/openai")


def test_from_mapping_defaults():
    config = PatchbayConfig.from_mapping({})
    assert config.api_keys == {}
    assert config.include_debug_connector is True
    assert config.disabled_connectors == frozenset()


@pytest.mark.parametrize(
    "payload",
    [
        {"unknown": 1},
        {"api_keys": ["sk"]},
        {"api_keys": {"openai": ""}},
        {"include_debug_connector": "yes"},
        {"disabled_connectors": "builtin/openai"},
        {"disabled_connectors": [""]},
    ],
)
def test_from_mapping_rejects_invalid_input(payload):
    with pytest.raises(ValueError):
        PatchbayConfig.from_mapping(payload)


def test_from_env_reads_flags():
    config = PatchbayConfig.from_env(
        {
            "PATCHBAY_DISABLE_DEBUG": "true",
            "PATCHBAY_DISABLED_CONNECTORS": " builtin/a, ,builtin/b ",
        }
    )
    assert config.include_debug_connector is False
    assert config.disabled_connectors == frozenset({"builtin/a", "builtin/b"})


def test_from_env_defaults_to_process_environment(monkeypatch):
    monkeypatch.setenv("PATCHBAY_DISABLE_DEBUG", "0")
    config = PatchbayConfig.from_env()
    assert config.include_debug_connector is True
    assert config.disabled_connectors == frozenset()


def test_from_env_rejects_unparseable_flag():
    with pytest.raises(ValueError, match="PATCHBAY_DISABLE_DEBUG"):
        PatchbayConfig.from_env({"PATCHBAY_DISABLE_DEBUG": "maybe"})


def test_stream_options_carry_configured_key():
    config = PatchbayConfig(api_keys={"openai": "sk-config"})
    options = config.stream_options("openai", temperature=0.3)
    assert options.api_key == "sk-config"
    assert options.temperature == 0.3

    overridden = config.stream_options("openai", api_key="sk-call")
    assert overridden.api_key == "sk-call"
    assert config.stream_options("anthropic").api_key is None
