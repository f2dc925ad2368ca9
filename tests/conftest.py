from __future__ import annotations

import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
SDK_SRC = BASE_DIR / "src"
TESTS_DIR = BASE_DIR / "tests"

for path in (SDK_SRC, BASE_DIR, TESTS_DIR):
    sys.path.insert(0, str(path))

import pytest  # noqa: E402

from packing_fakes import FakePackingBackend, FakeRates, FakeShipping, ScriptedPrompt, order_payload  # noqa: E402
from packstation_sdk.config import ClientConfig  # noqa: E402
from packstation_sdk.packing_session import PackingSession  # noqa: E402
from packstation_sdk.packing_state import PackingActor  # noqa: E402


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(env_name="test", api_base_url="https://api.example.com", retries=0)


@pytest.fixture
def backend() -> FakePackingBackend:
    fake = FakePackingBackend()
    fake.add(order_payload())
    return fake


@pytest.fixture
def packer() -> PackingActor:
    return PackingActor(user_id="packer-1", role="PACKER")


@pytest.fixture
def prompt() -> ScriptedPrompt:
    return ScriptedPrompt()


@pytest.fixture
def shipping() -> FakeShipping:
    return FakeShipping()


@pytest.fixture
def rates() -> FakeRates:
    return FakeRates()


@pytest.fixture
def make_session(backend, prompt, shipping, rates, config):
    def _make(actor: PackingActor, order_id: str = "SO-1", **overrides) -> PackingSession:
        return PackingSession(
            order_id,
            actor,
            orders=overrides.get("orders", backend),
            shipping=overrides.get("shipping", shipping),
            rates=overrides.get("rates", rates),
            prompt=overrides.get("prompt", prompt),
            config=overrides.get("config", config),
        )

    return _make
