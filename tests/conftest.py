import pytest

from beestats.app import create_app
from beestats.config import ServerConfig
from tests.helpers import API_KEY, Clock


@pytest.fixture
def config():
    return ServerConfig(api_key=API_KEY)


@pytest.fixture
def sql_config(tmp_path):
    return ServerConfig(api_key=API_KEY, database_url=f"sqlite:///{tmp_path / 'stats.db'}")


@pytest.fixture
def broken_config(tmp_path):
    # The parent directory does not exist, so every connect fails.
    return ServerConfig(api_key=API_KEY, database_url=f"sqlite:///{tmp_path / 'missing' / 'stats.db'}")


@pytest.fixture
def clock():
    return Clock(1500)


@pytest.fixture
def make_client(aiohttp_client, clock):
    async def make(cfg: ServerConfig):
        app = create_app(cfg)
        app["svc"].clock = clock
        return await aiohttp_client(app)

    return make
