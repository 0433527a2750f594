from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for path in (SRC, ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from tests.fixtures import openai_fake  # noqa: E402

PROVIDER_ENV_VARS = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "MOCK_PROVIDER_API_KEY",
    "X_API_KEY",
    "X_KEY",
    "PATCHBAY_DISABLE_DEBUG",
    "PATCHBAY_DISABLED_CONNECTORS",
)


@pytest.fixture(autouse=True)
def patch_openai_stream(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure OpenAI streaming uses deterministic fake fixtures."""

    monkeypatch.setattr(
        "patchbay.connectors.openai.create_openai_stream",
        openai_fake.create_openai_stream,
    )


@pytest.fixture(autouse=True)
def clean_provider_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test without provider credentials in the environment."""

    for name in PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
