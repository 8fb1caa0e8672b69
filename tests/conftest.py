import pytest

from gplaymusic_provider.exceptions import AuthFetchError
from gplaymusic_provider.models.config import Credentials, ProviderConfig

from tests.support import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credentials():
    return Credentials(username="user@example.com", password="secret", android_id="3a4b5c")


@pytest.fixture
def provider_config(tmp_path):
    return ProviderConfig(
        username="user@example.com",
        password="secret",
        android_id="3a4b5c",
        song_dir=str(tmp_path / "songs"),
        cache_time=5,
        cache_maximum_size=10,
    )


@pytest.fixture
def auth_failure():
    return AuthFetchError("BadAuthentication")
