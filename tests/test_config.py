from pathlib import Path

import pytest

from jamroom.config import Settings


def test_defaults():
    settings = Settings.from_env({})
    assert settings.host == "0.0.0.0"
    assert settings.port == 8080
    assert settings.static_dir == Path("./static")
    assert settings.shutdown_grace == 5.0
    assert settings.send_timeout == 5.0
    assert settings.log_level == "INFO"


def test_overrides():
    settings = Settings.from_env({
        "SERVER_HOST": "127.0.0.1",
        "PORT": "9000",
        "JAMROOM_SOUNDS_DIR": "/srv/sounds",
        "JAMROOM_SHUTDOWN_GRACE": "0.5",
        "JAMROOM_SEND_TIMEOUT": "2",
        "JAMROOM_LOG_LEVEL": "debug",
    })
    assert settings.host == "127.0.0.1"
    assert settings.port == 9000
    assert settings.sounds_dir == Path("/srv/sounds")
    assert settings.shutdown_grace == 0.5
    assert settings.send_timeout == 2.0
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("env", [
    {"PORT": "eighty"},
    {"JAMROOM_SHUTDOWN_GRACE": "soon"},
    {"JAMROOM_SHUTDOWN_GRACE": "-1"},
    {"JAMROOM_SEND_TIMEOUT": "0"},
])
def test_bad_numbers_refuse_to_start(env):
    with pytest.raises(ValueError):
        Settings.from_env(env)
