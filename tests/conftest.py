# tests/conftest.py

import os

import pytest

SYNC_ENV_VARS = (
    'NOTION_API_KEY',
    'NOTION_DATABASE_ID',
    'GOOGLE_CREDENTIALS_FILE',
    'GOOGLE_TOKEN_FILE',
    'SYNC_INTERVAL_SECONDS',
)


@pytest.fixture()
def isolated_env(monkeypatch):
    """
    Private copy of the process environment without sync settings.

    load_dotenv writes straight into os.environ, so tests that read .env
    files get a throwaway mapping instead of the real one.
    """
    env = {k: v for k, v in os.environ.items() if k not in SYNC_ENV_VARS}
    monkeypatch.setattr(os, 'environ', env)
    return env
