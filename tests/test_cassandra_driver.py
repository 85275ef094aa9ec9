from unittest.mock import MagicMock

import pytest
from cassandra import InvalidRequest
from cassandra.query import dict_factory

from cqldao.db.cassandra import CassandraDriver
from cqldao.db.errors import DriverError
from cqldao.db.models import RowSet


class FakeResponseFuture:
    """Completes immediately with *result* or *error*."""

    def __init__(self, result=None, error=None):
        self._result = result
        self._error = error

    def add_callbacks(self, callback, errback):
        if self._error is not None:
            errback(self._error)
        else:
            callback(self._result)

    def result(self):
        if self._error is not None:
            raise self._error
        return self._result


def _handle(query="SELECT * FROM services WHERE id = ?", returns_rows=True):
    handle = MagicMock()
    handle.query_string = query
    handle.result_metadata = [("ks", "services", "id", None)] if returns_rows else None
    return handle


def _result(rows, paging_state=None):
    result = MagicMock()
    result.current_rows = rows
    result.paging_state = paging_state
    result.has_more_pages = paging_state is not None
    return result


@pytest.fixture
def session():
    return MagicMock()


def test_injected_session_returns_dict_rows(session):
    drv = CassandraDriver(session=session)
    assert session.row_factory is dict_factory
    assert drv.filtering_clause == "ALLOW FILTERING"


def test_session_required():
    with pytest.raises(DriverError):
        CassandraDriver().session


@pytest.mark.asyncio
async def test_prepare_uses_session(session):
    session.prepare.return_value = "prepared"
    drv = CassandraDriver(session=session)
    assert await drv.prepare("SELECT * FROM services") == "prepared"
    session.prepare.assert_called_once_with("SELECT * FROM services")


@pytest.mark.asyncio
async def test_prepare_failure_is_wrapped(session):
    session.prepare.side_effect = InvalidRequest("unconfigured table nowhere")
    drv = CassandraDriver(session=session)
    with pytest.raises(DriverError) as exc_info:
        await drv.prepare("SELECT * FROM nowhere")
    assert isinstance(exc_info.value.original_error, InvalidRequest)


@pytest.mark.asyncio
async def test_execute_returns_page_and_token(session):
    rows = [{"id": "a"}, {"id": "b"}]
    session.execute_async.return_value = FakeResponseFuture(_result(rows, paging_state=b"next"))
    handle = _handle()
    drv = CassandraDriver(session=session)

    result = await drv.execute(handle, ["a"], page_size=2, paging_state=b"prev")

    assert result == RowSet(rows=rows, paging_state=b"next")
    handle.bind.assert_called_once_with(["a"])
    bound = handle.bind.return_value
    assert bound.fetch_size == 2
    session.execute_async.assert_called_once_with(bound, paging_state=b"prev")


@pytest.mark.asyncio
async def test_last_page_has_no_token(session):
    session.execute_async.return_value = FakeResponseFuture(_result([{"id": "a"}]))
    drv = CassandraDriver(session=session)

    result = await drv.execute(_handle(), ["a"])
    assert result.paging_state is None
    assert len(result) == 1


@pytest.mark.asyncio
async def test_void_statement_acknowledges(session):
    session.execute_async.return_value = FakeResponseFuture(_result([]))
    drv = CassandraDriver(session=session)

    assert await drv.execute(_handle("DELETE FROM services WHERE id = ?", returns_rows=False), ["a"]) is True


@pytest.mark.asyncio
async def test_execute_failure_is_wrapped(session):
    session.execute_async.return_value = FakeResponseFuture(error=InvalidRequest("bad value"))
    drv = CassandraDriver(session=session)

    with pytest.raises(DriverError) as exc_info:
        await drv.execute(_handle(), ["a"])
    assert "SELECT * FROM services" in str(exc_info.value)
    assert isinstance(exc_info.value.original_error, InvalidRequest)


@pytest.mark.asyncio
async def test_bind_failure_is_wrapped(session):
    handle = _handle()
    handle.bind.side_effect = TypeError("Received an argument of invalid type")
    drv = CassandraDriver(session=session)

    with pytest.raises(DriverError):
        await drv.execute(handle, [object()])
    session.execute_async.assert_not_called()


@pytest.mark.asyncio
async def test_close_without_connect_is_noop(session):
    drv = CassandraDriver(session=session)
    await drv.close()
    assert drv.session is session
