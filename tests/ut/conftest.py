import pytest

from support import REQUIRED_ENV, FakePoolFactory


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    for name in ("DATABASE_ENABLED", "SHUTDOWN_TIMEOUT", "KILN_ENV_FILE", "HOST"):
        monkeypatch.delenv(name, raising=False)
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)
    return dict(REQUIRED_ENV)


@pytest.fixture
def pool_factory() -> FakePoolFactory:
    return FakePoolFactory()
