"""Integration tests for the SQLite result store."""

from pathlib import Path

import pytest

from review_worker.models.assertion import AssertionRecord
from review_worker.reducer import RelevanceReducer
from review_worker.store.base import ResultStoreError
from review_worker.store.sqlite import SqliteResultStore
from review_worker.testing.factories import build_log
from review_worker.testing.store import create_results_database


@pytest.fixture
def database(tmp_path: Path) -> Path:
    """Create an assertion table with two test classes."""
    return create_results_database(
        tmp_path / "results.sqlite",
        [
            *build_log(["pass", "fail", "pass"], test_class="BlockTestCase"),
            *build_log(["pass", "exception"], test_class="NodeTestCase", first_id=4),
            *build_log(["debug"], test_class="BlockTestCase", first_id=6),
        ],
    )


async def test_select_pages_by_cursor(database: Path) -> None:
    """Returns ascending records after the cursor, capped at the limit."""
    store = SqliteResultStore(db_path=database)

    first = await store.select("BlockTestCase", 0, 2)
    second = await store.select("BlockTestCase", first[-1].message_id, 2)
    third = await store.select("BlockTestCase", second[-1].message_id, 2)

    assert [record.message_id for record in first] == [1, 2]
    assert [record.message_id for record in second] == [3, 6]
    assert third == []


async def test_select_maps_columns(database: Path) -> None:
    """Builds assertion records from table rows."""
    store = SqliteResultStore(db_path=database)

    (record,) = await store.select("NodeTestCase", 4, 10)

    assert isinstance(record, AssertionRecord)
    assert record.message_id == 5
    assert record.status == "exception"
    assert record.test_class == "NodeTestCase"
    assert record.message == "assertion 5"


async def test_grouped_status_counts(database: Path) -> None:
    """Counts records by test class and status."""
    store = SqliteResultStore(db_path=database)

    assert await store.grouped_status_counts() == [
        ("BlockTestCase", "debug", 1),
        ("BlockTestCase", "fail", 1),
        ("BlockTestCase", "pass", 2),
        ("NodeTestCase", "exception", 1),
        ("NodeTestCase", "pass", 1),
    ]
    assert await store.grouped_status_counts("NodeTestCase") == [
        ("NodeTestCase", "exception", 1),
        ("NodeTestCase", "pass", 1),
    ]


async def test_custom_table_name(tmp_path: Path) -> None:
    """Reads from the configured table."""
    database = create_results_database(
        tmp_path / "results.sqlite", build_log(["fail"]), table="assertions"
    )
    store = SqliteResultStore(db_path=database, table="assertions")

    assert len(await store.select("ExampleTestCase", 0, 10)) == 1


def test_rejects_invalid_table_name(tmp_path: Path) -> None:
    """Refuses table names that are not plain identifiers."""
    with pytest.raises(ValueError, match="Invalid table name"):
        SqliteResultStore(db_path=tmp_path / "db", table="results; DROP TABLE x")


async def test_missing_database_raises_store_error(tmp_path: Path) -> None:
    """Raises ResultStoreError when the file does not exist."""
    store = SqliteResultStore(db_path=tmp_path / "missing.sqlite")

    with pytest.raises(ResultStoreError, match="not found"):
        await store.select("BlockTestCase", 0, 10)
    with pytest.raises(ResultStoreError, match="not found"):
        await store.grouped_status_counts()


async def test_missing_table_raises_store_error(database: Path) -> None:
    """Wraps query failures in ResultStoreError."""
    store = SqliteResultStore(db_path=database, table="assertions")

    with pytest.raises(ResultStoreError, match="no such table"):
        await store.grouped_status_counts()


async def test_reads_database_with_uri_characters_in_path(tmp_path: Path) -> None:
    """Opens files whose path contains characters special to URIs."""
    directory = tmp_path / "run #1 ?50%"
    directory.mkdir()
    database = create_results_database(
        directory / "results.sqlite", build_log(["fail", "pass"])
    )
    store = SqliteResultStore(db_path=database)

    assert await store.grouped_status_counts() == [
        ("ExampleTestCase", "fail", 1),
        ("ExampleTestCase", "pass", 1),
    ]


async def test_reducer_over_sqlite(database: Path) -> None:
    """Reduces a real assertion table end to end."""
    reducer = RelevanceReducer(store=SqliteResultStore(db_path=database), page_size=2)

    reduction = await reducer.reduce(
        ["BlockTestCase", "NodeTestCase"], ["fail", "exception"], 1, 1000
    )

    assert {
        partition: [record.message for record in records]
        for partition, records in reduction.records.items()
    } == {
        "BlockTestCase": ["assertion 1", "assertion 2", "assertion 3"],
        "NodeTestCase": ["assertion 4", "assertion 5"],
    }
    assert reduction.overall == {"pass": 3, "fail": 1, "exception": 1, "debug": 1}
