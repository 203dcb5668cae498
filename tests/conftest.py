import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
if SRC.exists():
    sys.path.insert(0, str(SRC))

# Register shared Hypothesis profiles for deterministic CI runs and fast local loops.
from tests.util import hypothesis_profiles  # noqa: E402,F401  pylint: disable=unused-import
from tests.util.factories import FakeClient, RecordingSink  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's CHTOP_*/CLICKHOUSE_* variables out of config tests."""

    for name in (
        "CHTOP_URL",
        "CHTOP_CLUSTER",
        "CHTOP_TIMEOUT",
        "CHTOP_DELAY_INTERVAL",
        "CHTOP_LOG_LEVEL",
        "CHTOP_CONFIG",
        "CLICKHOUSE_USER",
        "CLICKHOUSE_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(name="sink")
def _sink_fixture() -> RecordingSink:
    return RecordingSink()


@pytest.fixture(name="fake_client")
def _fake_client_fixture() -> FakeClient:
    return FakeClient()


def pytest_configure(config: pytest.Config) -> None:
    """Ensure custom marks remain registered even when pyproject.toml isn't picked up."""
    config.addinivalue_line("markers", "tui: tests that drive the Textual application headlessly")
