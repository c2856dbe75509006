import os

import pytest


# Environment variables that tests may modify
_ENV_VARS_TO_ISOLATE = [
    "FLAGCORE_DEFAULT_STORE",
    "FLAGCORE_DATABASE_PATH",
    "FLAGCORE_REDIS_URL",
    "FLAGCORE_CACHE_PREFIX",
    "FLAGCORE_CACHE_TTL",
    "FLAGCORE_EVENTS_ENABLED",
    "FLAGCORE_EXPIRY_WARN_DAYS",
    "FLAGCORE_LOG_LEVEL",
    "FLAGCORE_LOG_JSON",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture(autouse=True)
def settings_isolation():
    """Drop cached settings and the process-wide manager between tests."""
    from flagcore.config import reset_settings
    from flagcore.manager import reset_feature_manager

    reset_settings()
    reset_feature_manager()
    try:
        yield
    finally:
        reset_settings()
        reset_feature_manager()
