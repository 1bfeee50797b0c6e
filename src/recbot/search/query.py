"""Filtered, sorted, paginated queries over the recording index."""

from __future__ import annotations

from recbot.search.filters import RecordingFilters
from recbot.storage.database import Database
from recbot.storage.models import QueryResult
from recbot.storage.repository import FILE_COLUMNS, row_to_record


def query_files(db: Database, filters: RecordingFilters | None = None) -> QueryResult:
    """Return one page of matching rows plus the total match count.

    The page and the count share one WHERE fragment and run inside one
    transaction, so a concurrent sync cannot make them disagree.
    """
    if filters is None:
        filters = RecordingFilters()

    filter_clause, filter_params = filters.to_sql_clauses()
    where = f"WHERE {filter_clause}" if filter_clause else ""

    page_sql = f"""
        SELECT {FILE_COLUMNS}
        FROM files
        {where}
        ORDER BY {filters.order_by()}
        LIMIT ? OFFSET ?
    """
    count_sql = f"SELECT COUNT(*) FROM files {where}"

    limit = filters.limit if filters.limit is not None else -1

    with db.transaction() as conn:
        rows = conn.execute(page_sql, filter_params + [limit, filters.offset]).fetchall()
        total = conn.execute(count_sql, filter_params).fetchone()[0]

    has_more = filters.limit is not None and filters.offset + filters.limit < total
    return QueryResult(
        rows=[row_to_record(r) for r in rows],
        total_count=total,
        has_more=has_more,
    )
