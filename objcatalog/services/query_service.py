"""Hierarchy-aware, keyword-filtered, cursor-paginated catalog queries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, not_, or_, select

from objcatalog.exceptions import CursorNotFoundError
from objcatalog.models.catalog import CatalogEntry
from objcatalog.schemas.catalog import ObjectPage
from objcatalog.services.catalog_service import to_response
from objcatalog.services.paths import SEP, normalize_dirname

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class KeywordTerms:
    """Include (``plus``) and exclude (``minus``) substrings of a keyword."""

    plus: list[str] = field(default_factory=list)
    minus: list[str] = field(default_factory=list)


def parse_keyword(keyword: str | None) -> KeywordTerms:
    """Split a keyword on whitespace into include and exclude terms.

    ``"report -draft"`` includes paths containing ``report`` and excludes
    those containing ``draft``. A bare ``-`` is ignored.
    """
    terms = KeywordTerms()
    for word in (keyword or "").split():
        if word.startswith("-"):
            if len(word) > 1:
                terms.minus.append(word[1:])
        else:
            terms.plus.append(word)
    return terms


def _scope(connection_id: int, dirname: str, recursive: bool) -> ColumnElement[bool]:
    if not recursive:
        return and_(CatalogEntry.connection_id == connection_id, CatalogEntry.dirname == dirname)
    if not dirname:
        return CatalogEntry.connection_id == connection_id
    # exact prefix match; LIKE would fold ASCII case
    prefix = dirname + SEP
    return and_(
        CatalogEntry.connection_id == connection_id,
        or_(
            CatalogEntry.dirname == dirname,
            func.substr(CatalogEntry.dirname, 1, len(prefix)) == prefix,
        ),
    )


async def get_objects(
    session: AsyncSession,
    connection_id: int,
    dirname: str | None = "",
    keyword: str | None = None,
    after: str | None = None,
    limit: int = 50,
) -> ObjectPage:
    """Return one page of entries under ``dirname`` in (type, basename, id) order.

    Without a keyword only the direct children of ``dirname`` are listed;
    with one, the whole subtree is searched. ``after`` is the id of the
    last entry of the previous page.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    directory = normalize_dirname(dirname)
    terms = parse_keyword(keyword)
    searching = bool(terms.plus or terms.minus)

    stmt = select(CatalogEntry).where(_scope(connection_id, directory, searching))
    for term in terms.plus:
        stmt = stmt.where(CatalogEntry.path.contains(term, autoescape=True))
    for term in terms.minus:
        stmt = stmt.where(not_(CatalogEntry.path.contains(term, autoescape=True)))

    if after:
        cursor = (
            await session.execute(
                select(CatalogEntry).where(
                    CatalogEntry.connection_id == connection_id, CatalogEntry.id == after
                )
            )
        ).scalar_one_or_none()
        if cursor is None:
            raise CursorNotFoundError(after)
        stmt = stmt.where(
            or_(
                CatalogEntry.type > cursor.type,
                and_(CatalogEntry.type == cursor.type, CatalogEntry.basename > cursor.basename),
                and_(
                    CatalogEntry.type == cursor.type,
                    CatalogEntry.basename == cursor.basename,
                    CatalogEntry.id > cursor.id,
                ),
            )
        )

    stmt = stmt.order_by(CatalogEntry.type, CatalogEntry.basename, CatalogEntry.id).limit(
        limit + 1
    )
    rows = list((await session.execute(stmt)).scalars().all())
    has_next_page = len(rows) > limit
    return ObjectPage(
        has_next_page=has_next_page,
        items=[to_response(entry) for entry in rows[:limit]],
    )
