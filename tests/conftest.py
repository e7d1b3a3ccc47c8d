"""
Shared test setup. Environment is pinned before any app module is imported so
tests never call real providers or write security log files.
"""

import os

os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["SECURITY_LOG_DIR"] = ""
os.environ["ALLOW_PRIVATE_IMAGE_HOSTS"] = ""
os.environ["TRUST_FORWARDED_FOR"] = ""

import pytest  # noqa: E402

from app.agent.providers import ProviderOutcome  # noqa: E402
from app.services.image_validator import ValidatedImage  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Provider returning queued outcomes (the last one repeats) and recording calls."""

    def __init__(self, name: str, *outcomes: ProviderOutcome) -> None:
        self.name = name
        self.outcomes = list(outcomes) or [ProviderOutcome()]
        self.calls: list[tuple[str, ValidatedImage | None]] = []

    def send(self, message: str, image: ValidatedImage | None = None) -> ProviderOutcome:
        self.calls.append((message, image))
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
