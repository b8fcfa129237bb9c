"""
Test configuration for the objectives API tests.

sys.path gets the project root so 'from objectives...' resolves when pytest
runs from a checkout without an editable install.

Shared fixtures build a fully configured app around the in-memory fakes in
fakes.py. No network, no real Airtable, SMTP or Mistral.
"""
import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent.parent    # repo root, above objectives/

if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from objectives.tests.fakes import (  # noqa: E402
    FakeTable,
    SMTPRecorder,
    build_app,
    make_mistral,
    make_settings,
)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def smtp() -> SMTPRecorder:
    return SMTPRecorder()


@pytest.fixture
def mistral():
    return make_mistral("## Objectives\n- Ship the roadmap")


@pytest.fixture
def app(settings, mistral, table, smtp):
    return build_app(settings, mistral=mistral, table=table, smtp=smtp)


@pytest_asyncio.fixture
async def client(app):
    """Async httpx client over ASGITransport, no live server."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
