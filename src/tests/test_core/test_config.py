import inspect
import logging
import logging.handlers

import pytest
from amiya.__main__ import DEFAULT_CONFIG, ConfigManager, create_default_config
from amiya.core.app_state import AppState
from amiya.models.config import AmiyaConfig
from amiya.utils.exceptions import ConfigurationError
from amiya.utils.logging import setup_logging


def test_default_config_round_trips(tmp_path):
    path = tmp_path / "amiya" / "config.yml"
    assert create_default_config(path) is True
    assert create_default_config(path) is False

    config = ConfigManager.load_config(path)
    assert config.events.capacity == 256
    assert config.backends.battery.poll_interval == 30
    assert config.backends.bluetooth.timeout == 10
    assert config.compositor.poll_interval == 2


@pytest.mark.parametrize("name, timeout", [
    ("audio", 5.0),
    ("backlight", 5.0),
    ("battery", 5.0),
    ("bluetooth", 10.0),
    ("network", 10.0),
    ("media", 5.0),
    ("power", 10.0),
])
def test_backend_timeouts_agree(tmp_path, name, timeout):
    path = tmp_path / "config.yml"
    path.write_text(DEFAULT_CONFIG)
    from_file = getattr(ConfigManager.load_config(path).backends, name).timeout
    from_model = getattr(AmiyaConfig().backends, name).timeout
    adapter = AppState.from_config(AmiyaConfig()).adapters()[name]
    constructor_default = inspect.signature(type(adapter)).parameters["timeout"].default

    assert from_file == from_model == adapter.timeout == constructor_default == timeout


def test_partial_config_keeps_defaults(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("backends:\n  audio:\n    enabled: false\nlogging:\n  level: debug\n")
    config = ConfigManager.load_config(path)
    assert config.backends.audio.enabled is False
    assert config.backends.backlight.enabled is True
    assert config.logging.level == "DEBUG"


def test_empty_file_means_defaults(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("")
    assert ConfigManager.load_config(path) == AmiyaConfig()


@pytest.mark.parametrize("content", [
    "events: [unclosed",
    "- just\n- a list\n",
    "events:\n  capacity: 0\n",
    "logging:\n  level: LOUD\n",
])
def test_bad_config_raises(tmp_path, content):
    path = tmp_path / "config.yml"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        ConfigManager.load_config(path)


def test_missing_config_raises(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        ConfigManager.load_config(tmp_path / "nope.yml")


def test_setup_logging_with_rotating_file(tmp_path):
    log_file = tmp_path / "logs" / "amiya.log"
    setup_logging({"level": "WARNING", "file": str(log_file), "max_size": 1, "backup_count": 2})
    try:
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers)
        logging.getLogger("amiya.test").warning("written")
        for handler in root.handlers:
            handler.flush()
        assert "written" in log_file.read_text()
    finally:
        logging.getLogger().handlers.clear()
