import os
import tempfile

import pytest

# Point the app at a throwaway database before anything imports critique.config
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="critique-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DATA_DIR}/test.sqlite3"


@pytest.fixture(autouse=True, scope="session")
def setup_test_db():
    import asyncio

    # Disable API key auth and every real backend for tests
    from critique.config import settings
    settings.api_key = ""
    settings.openai_api_key = ""
    settings.anthropic_api_key = ""
    settings.google_vision_api_key = ""
    settings.analyzer_retry_delay_seconds = 0.0

    from critique.database import create_tables, dispose_engine

    async def _setup():
        await create_tables()
        await dispose_engine()

    asyncio.run(_setup())
