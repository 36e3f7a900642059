"""Property-based tests for cursor pagination."""

from __future__ import annotations

import string
from typing import TYPE_CHECKING

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from objcatalog.services.connection_service import create_connection
from objcatalog.services.query_service import get_objects
from tests.remote_fakes import FakeRemoteStore, connection_body, seed

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

PROPERTY_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

_NAME = st.text(alphabet=string.ascii_letters + string.digits + "-_.", min_size=1, max_size=6)
_KEY = st.builds(
    lambda parts, leaf, folder: "/".join([*parts, leaf]) + ("/" if folder else ""),
    st.lists(st.sampled_from(["a", "b"]), max_size=2),
    _NAME,
    st.booleans(),
)


async def _walk(
    session: AsyncSession, connection_id: int, dirname: str, keyword: str | None, limit: int
) -> list[str]:
    ids: list[str] = []
    after: str | None = None
    while True:
        page = await get_objects(
            session, connection_id, dirname, keyword=keyword, after=after, limit=limit
        )
        ids.extend(item.id for item in page.items)
        if not page.has_next_page:
            return ids
        assert page.items, "a page promising more results must not be empty"
        after = page.items[-1].id


class TestPaginationProperties:
    @pytest.mark.asyncio
    @PROPERTY_SETTINGS
    @given(
        keys=st.lists(_KEY, min_size=1, max_size=20, unique=True),
        limit=st.integers(min_value=1, max_value=7),
        dirname=st.sampled_from(["", "a", "a/b", "b"]),
        keyword=st.sampled_from([None, "a", "-b", ".", "a -_"]),
    )
    async def test_pages_partition_the_full_result(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        keys: list[str],
        limit: int,
        dirname: str,
        keyword: str | None,
    ) -> None:
        store = FakeRemoteStore()
        async with session_factory() as session:
            connection = await create_connection(session, connection_body())
            await seed(session, store, connection.id, keys)

            full = await get_objects(session, connection.id, dirname, keyword=keyword, limit=1000)
            walked = await _walk(session, connection.id, dirname, keyword, limit)

        expected = [item.id for item in full.items]
        assert walked == expected
        assert len(set(walked)) == len(walked)

    @pytest.mark.asyncio
    @PROPERTY_SETTINGS
    @given(keys=st.lists(_KEY, min_size=1, max_size=20, unique=True))
    async def test_order_is_folders_then_basename(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        keys: list[str],
    ) -> None:
        store = FakeRemoteStore()
        async with session_factory() as session:
            connection = await create_connection(session, connection_body())
            await seed(session, store, connection.id, keys)
            page = await get_objects(session, connection.id, "", keyword="a", limit=1000)

        order = [(item.type != "folder", item.basename, item.id) for item in page.items]
        assert order == sorted(order)
