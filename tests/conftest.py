from datetime import datetime, timedelta, timezone

import pytest

from mnemo.application.progress_service import ProgressService
from mnemo.application.scheduling.fsrs import FsrsParameters, FsrsScheduler
from mnemo.application.scheduling.selector import AlgorithmSelector
from mnemo.infrastructure.adapters.progress import InMemoryProgressRepository

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def now():
    return T0


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fsrs():
    """Scheduler with fuzz disabled so intervals are exact."""
    return FsrsScheduler(FsrsParameters(enable_fuzz=False))


@pytest.fixture
def selector(fsrs):
    return AlgorithmSelector(fsrs)


@pytest.fixture
def repo():
    return InMemoryProgressRepository()


@pytest.fixture
def service(repo, selector, clock):
    return ProgressService(repo, selector, clock=clock)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    for var in ("MNEMO_BACKEND", "MNEMO_STORE_PATH", "MNEMO_REQUEST_RETENTION"):
        monkeypatch.delenv(var, raising=False)
    return home
