"""
Pytest fixtures for testing.
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from briefcast.models import Base, Report
from briefcast.services.audio_assembler import MixOptions
from briefcast.services.prompts import InMemoryPromptProvider
from briefcast.wiring import build_services

from fakes import FakeLLM, FakeSynthesizer, FakeToolchain


@pytest_asyncio.fixture(scope='function')
async def test_engine(tmp_path):
    """Create a test database engine on a fresh SQLite file."""
    engine = create_async_engine(f'sqlite+aiosqlite:///{tmp_path / "test.db"}', echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope='function')
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage_dir(tmp_path):
    path = tmp_path / 'podcasts'
    path.mkdir()
    return path


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def fake_toolchain():
    return FakeToolchain()


@pytest.fixture
def services(session_factory, storage_dir, fake_llm, fake_synthesizer, fake_toolchain):
    """Service graph wired to fake collaborators."""
    return build_services(
        session_factory,
        storage_dir=storage_dir,
        llm=fake_llm,
        synthesizer=fake_synthesizer,
        toolchain=fake_toolchain,
        prompts=InMemoryPromptProvider(),
        mix_options=MixOptions(include_background_music=False),
        max_concurrent_tts=3,
        poll_interval=0.05,
        max_concurrent=1,
        drain_timeout=1.0,
        cleanup_interval=3600,
    )


@pytest.fixture
def podcast_service(services):
    return services.podcast_service


@pytest.fixture
def make_report(session_factory):
    """Insert a source report and return its id."""
    async def _make(status='completed', title='Acme Corp Account Brief', content=None):
        report = Report(
            title=title,
            status=status,
            workflow_type='ACCOUNT_INTELLIGENCE',
            generated_content=content if content is not None else {
                'executive_summary': {'content': 'Acme grew revenue 12% year over year.'},
                'competitive_landscape': 'Acme competes with Globex and Initech.',
            },
        )
        async with session_factory() as session:
            session.add(report)
            await session.commit()
        return report.id

    return _make


@pytest_asyncio.fixture
async def client(services):
    """Create a test client with the service graph injected."""
    from server import app
    from briefcast.dependencies import get_podcast_service, get_job_processor, get_toolchain

    app.dependency_overrides[get_podcast_service] = lambda: services.podcast_service
    app.dependency_overrides[get_job_processor] = lambda: services.job_processor
    app.dependency_overrides[get_toolchain] = lambda: services.toolchain

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()
