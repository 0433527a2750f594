from __future__ import annotations

import pytest

from patchbay.naming import builtin_connector_id, conventional_env_var, provider_label


@pytest.mark.parametrize(
    "value, expected",
    [
        ("openai", "OPENAI_API_KEY"),
        ("amazon-bedrock", "AMAZON_BEDROCK_API_KEY"),
        ("google-vertex-ai", "GOOGLE_VERTEX_AI_API_KEY"),
        ("x", "X_API_KEY"),
    ],
)
def test_conventional_env_var(value, expected):
    assert conventional_env_var(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("mock-provider", "Mock Provider"),
        ("google-vertex", "Google Vertex"),
        ("openai", "Openai"),
        ("already-Upper", "Already Upper"),
    ],
)
def test_provider_label(value, expected):
    assert provider_label(value) == expected


def test_builtin_connector_id():
    assert builtin_connector_id("anthropic") == "builtin/anthropic"
