import os

import pytest

# Ensure settings are resolved from test env before package modules import.
os.environ["ENVIRONMENT"] = "test"
os.environ["TELEGRAM_BOT_TOKEN"] = "123456:test-token"
os.environ.pop("TELEGRAM_WEBHOOK_SECRET", None)
os.environ.pop("UPDATE_MODE", None)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    from updatestream.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
