import pytest

from replaykit.dom.snapshot import SnapshotDocument
from replaykit.utils.config import get_settings
from replaykit.utils.timing import ManualClock


@pytest.fixture(autouse=True)
def fresh_settings():
    # env changes made by a test must be visible to get_settings()
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_doc():
    def _make(html: str, **kwargs) -> SnapshotDocument:
        return SnapshotDocument(html, **kwargs)

    return _make
