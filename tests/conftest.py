import io
import sys
from pathlib import Path

import pytest
import pytest_asyncio
import sqlalchemy as sa

ROOT = Path(__file__).resolve().parents[1]
PROJECT_PARENT = ROOT.parent

for path in (ROOT, PROJECT_PARENT):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from intermediator.common.db import dispose_engines  # noqa: E402
from intermediator.config import PlatformConfig, PlatformCredentials, PlatformSettings  # noqa: E402
from intermediator.db_tables import metadata  # noqa: E402
from intermediator.json_logger import JsonLogger  # noqa: E402


def _create_tables(database_url: str) -> None:
    engine = sa.create_engine(database_url.replace("+aiosqlite", ""))
    metadata.create_all(engine)
    engine.dispose()


@pytest.fixture
def database_url(tmp_path) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'intermediator.db'}"
    _create_tables(url)
    return url


@pytest_asyncio.fixture(autouse=True)
async def _dispose_cached_engines():
    yield
    await dispose_engines()


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(log_stream) -> JsonLogger:
    return JsonLogger(run_id="test_run", stream=log_stream, log_file_path=None)


def _make_platform(name: str = "plus", **settings) -> PlatformConfig:
    return PlatformConfig(
        name=name,
        credentials=PlatformCredentials(
            api_url=f"https://{name}.example.com/api",
            email=f"ops@{name}.example.com",
            senha="s3cret",
            api_secret=f"{name}-secret",
        ),
        settings=PlatformSettings(**settings),
    )


@pytest.fixture
def make_platform():
    return _make_platform
