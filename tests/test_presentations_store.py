"""SQLAlchemy store tests against a temporary SQLite database."""

import uuid
from collections.abc import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.exceptions import PersistenceError, PresentationNotFoundError
from crud import presentations as presentations_crud
from fakes import SLIDE_SCHEMA
from models import Base
from schemas.presentations import (
    LayoutPayload,
    LayoutSlide,
    OutlineItem,
    PrepareRequest,
    PresentationCreate,
)
from services.generation.job import JobState, SlideResult
from services.generation.store import SqlAlchemyPresentationStore


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'deckstream.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest.fixture
def sql_store(session_factory) -> SqlAlchemyPresentationStore:
    return SqlAlchemyPresentationStore(session_factory)


def make_results(*titles: str) -> list[SlideResult]:
    return [
        SlideResult(
            index=i,
            layout_id="layout-0",
            speaker_note=f"note {i}",
            content={"title": title, "bullets": ["a", "b"]},
            state=JobState.SUCCEEDED,
        )
        for i, title in enumerate(titles)
    ]


PREPARE = PrepareRequest(
    outlines=[OutlineItem(content="Intro"), OutlineItem(content="Market")],
    layout=LayoutPayload(
        name="general", slides=[LayoutSlide(id="layout-0", json_schema=SLIDE_SCHEMA)]
    ),
    structure=[0, 0],
)


@pytest.mark.asyncio
async def test_create_and_prepare(sql_store: SqlAlchemyPresentationStore) -> None:
    created = await sql_store.create_presentation(
        PresentationCreate(content="Widgets", n_slides=5)
    )
    assert created.is_ready is False
    assert created.slides == []

    prepared = await sql_store.prepare_presentation(created.id, PREPARE)

    assert prepared.is_ready is True
    assert prepared.n_slides == 2
    assert prepared.structure == [0, 0]
    assert prepared.layout is not None
    assert prepared.layout.slides[0].json_schema == SLIDE_SCHEMA
    assert await sql_store.get_presentation(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_commit_replaces_all_slides(
    sql_store: SqlAlchemyPresentationStore,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    created = await sql_store.create_presentation(PresentationCreate(content="Widgets"))
    await sql_store.prepare_presentation(created.id, PREPARE)
    first_ids = [uuid.uuid4(), uuid.uuid4()]

    first = await sql_store.commit_slides(
        created.id, "general", make_results("Intro", "Market"), slide_ids=first_ids
    )
    assert [slide.id for slide in first.slides] == first_ids
    assert first.slides[1].speaker_note == "note 1"

    second = await sql_store.commit_slides(
        created.id,
        "general",
        make_results("Intro v2", "Market v2"),
        outlines=[OutlineItem(content="Intro v2"), OutlineItem(content="Market v2")],
        title="Intro v2",
    )

    assert [slide.index for slide in second.slides] == [0, 1]
    assert [slide.content["title"] for slide in second.slides] == [
        "Intro v2",
        "Market v2",
    ]
    assert not set(first_ids) & {slide.id for slide in second.slides}
    assert second.title == "Intro v2"
    assert [o.content for o in second.outlines or []] == ["Intro v2", "Market v2"]

    async with session_factory() as db:
        stored = await presentations_crud.list_slides(db, created.id)
    assert len(stored) == 2


@pytest.mark.asyncio
async def test_list_slides_in_index_order(sql_store: SqlAlchemyPresentationStore) -> None:
    created = await sql_store.create_presentation(PresentationCreate(content="Widgets"))
    await sql_store.prepare_presentation(created.id, PREPARE)
    # Completion order, not slide order
    results = list(reversed(make_results("Intro", "Market", "Team")))

    await sql_store.commit_slides(created.id, "general", results)
    slides = await sql_store.list_slides(created.id)

    assert [slide.index for slide in slides] == [0, 1, 2]
    assert [slide.content["title"] for slide in slides] == ["Intro", "Market", "Team"]
    assert {slide.presentation_id for slide in slides} == {created.id}

    with pytest.raises(PresentationNotFoundError):
        await sql_store.list_slides(uuid.uuid4())


@pytest.mark.asyncio
async def test_save_outlines(sql_store: SqlAlchemyPresentationStore) -> None:
    created = await sql_store.create_presentation(PresentationCreate(n_slides=3))

    saved = await sql_store.save_outlines(
        created.id, [OutlineItem(content="One"), OutlineItem(content="Two")], "One"
    )

    assert saved.n_slides == 2
    assert saved.title == "One"
    assert [o.content for o in saved.outlines or []] == ["One", "Two"]


@pytest.mark.asyncio
async def test_missing_presentation(sql_store: SqlAlchemyPresentationStore) -> None:
    missing = uuid.uuid4()

    with pytest.raises(PresentationNotFoundError):
        await sql_store.prepare_presentation(missing, PREPARE)
    with pytest.raises(PresentationNotFoundError):
        await sql_store.save_outlines(missing, [OutlineItem(content="x")], None)
    with pytest.raises(PresentationNotFoundError):
        await sql_store.commit_slides(missing, "general", make_results("x"))


@pytest.mark.asyncio
async def test_database_errors_become_persistence_errors() -> None:
    failing_factory = MagicMock(
        side_effect=OperationalError("INSERT", {}, Exception("database is down"))
    )
    store = SqlAlchemyPresentationStore(failing_factory)

    with pytest.raises(PersistenceError):
        await store.commit_slides(uuid.uuid4(), "general", make_results("x"))
    with pytest.raises(PersistenceError):
        await store.save_outlines(uuid.uuid4(), [OutlineItem(content="x")], None)
