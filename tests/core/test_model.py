from __future__ import annotations

import pytest

from patchbay.core.model import ModelCost, ModelDescriptor, deserialize_model, serialize_model


def test_serialize_model_omits_unset_optional_fields() -> None:
    model = ModelDescriptor(id="gpt-test", api="openai-completions", provider="openai")

    payload = serialize_model(model)

    assert "name" not in payload
    assert "base_url" not in payload
    assert "headers" not in payload
    assert "compat" not in payload
    assert payload["input"] == ["text"]
    assert payload["cost"] == {"input": 0, "output": 0, "cache_read": 0, "cache_write": 0}
    assert model.display_name == "gpt-test"


def test_serialize_model_keeps_populated_fields() -> None:
    model = ModelDescriptor(
        id="vision-1",
        api="openai-completions",
        provider="openai",
        name="Vision One",
        base_url="https://api.example.test/v1",
        reasoning=True,
        input=("text", "image"),
        cost=ModelCost(input=1.5, output=6, cache_read=0.15, cache_write=0),
        context_window=128_000,
        max_tokens=4_096,
        headers={"X-Team": "core"},
    )

    payload = serialize_model(model)

    assert payload["name"] == "Vision One"
    assert payload["base_url"] == "https://api.example.test/v1"
    assert payload["headers"] == {"X-Team": "core"}
    assert deserialize_model(payload) == model


@pytest.mark.parametrize("value", [-1, float("inf"), float("nan")])
def test_model_cost_rejects_negative_or_non_finite_values(value: float) -> None:
    with pytest.raises(ValueError):
        ModelCost(input=value, output=0, cache_read=0, cache_write=0)


def test_model_cost_rejects_non_numbers() -> None:
    with pytest.raises(TypeError):
        ModelCost(input=True, output=0, cache_read=0, cache_write=0)


def test_model_descriptor_validates_fields() -> None:
    with pytest.raises(ValueError, match="provider"):
        ModelDescriptor(id="m", api="a", provider="")
    with pytest.raises(ValueError, match="modalities"):
        ModelDescriptor(id="m", api="a", provider="p", input=("text", "audio"))
    with pytest.raises(ValueError, match="context_window"):
        ModelDescriptor(id="m", api="a", provider="p", context_window=0)
