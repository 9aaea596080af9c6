"""Tests for the row-store backends."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from conftest import EDIT_SECRET

from daily_closing.audit import Actor
from daily_closing.auth import SharedSecretAuthorizer
from daily_closing.backends import InMemoryBackend, RestBackend
from daily_closing.exceptions import PersistenceError, RecordNotFoundError
from daily_closing.store import ClosingDesk, ClosingRecordStore


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.content = b"x" if payload is not None else b""
    response.json.return_value = payload
    response.text = ""
    return response


@pytest.fixture
def rest():
    return RestBackend(base_url="http://store.test/", api_key="anon-key", timeout=5)


class TestInMemoryBackend:
    """Tests for the dict-backed store."""

    @pytest.mark.asyncio
    async def test_insert_and_fetch(self, backend):
        await backend.insert("things", {"id": "a", "n": 1})

        assert await backend.fetch("things", "a") == {"id": "a", "n": 1}
        assert await backend.fetch("things", "b") is None

    @pytest.mark.asyncio
    async def test_rows_are_copies(self, backend):
        row = {"id": "a", "nested": {"n": 1}}
        await backend.insert("things", row)
        row["nested"]["n"] = 2

        fetched = await backend.fetch("things", "a")
        assert fetched["nested"]["n"] == 1

    @pytest.mark.asyncio
    async def test_duplicate_insert_rejected(self, backend):
        await backend.insert("things", {"id": "a"})

        with pytest.raises(PersistenceError) as exc_info:
            await backend.insert("things", {"id": "a"})
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_update_and_delete_missing(self, backend):
        with pytest.raises(RecordNotFoundError):
            await backend.update("things", "nope", {"id": "nope"})
        with pytest.raises(RecordNotFoundError):
            await backend.delete("things", "nope")

    @pytest.mark.asyncio
    async def test_fail_next_fires_once(self, backend):
        backend.fail_next("insert", "disk full")

        with pytest.raises(PersistenceError, match="disk full") as exc_info:
            await backend.insert("things", {"id": "a"})
        assert exc_info.value.status_code == 503

        await backend.insert("things", {"id": "a"})
        assert len(backend.rows("things")) == 1

    @pytest.mark.asyncio
    async def test_fetch_all_ordering(self):
        backend = InMemoryBackend(
            {"days": [{"id": "1", "date": "2024-01-02"}, {"id": "2", "date": "2024-01-05"}]}
        )

        rows = await backend.fetch_all("days", order_by="date", descending=True)

        assert [r["id"] for r in rows] == ["2", "1"]


class TestRestBackendInit:
    """Tests for RestBackend initialization."""

    def test_init_strips_trailing_slash(self, rest):
        assert rest.base_url == "http://store.test"

    def test_init_from_settings(self):
        """Unset arguments fall back to configuration."""
        backend = RestBackend()
        assert backend.base_url == "http://store.test"

    def test_headers(self, rest):
        headers = rest._get_headers(returning=True)

        assert headers["apikey"] == "anon-key"
        assert headers["Authorization"] == "Bearer anon-key"
        assert headers["Prefer"] == "return=representation"
        assert "Prefer" not in rest._get_headers()


class TestRestBackendRequests:
    """Tests for RestBackend calls against a mocked HTTP client."""

    @pytest.mark.asyncio
    async def test_insert_posts_row(self, rest):
        row = {"id": "CLOSE-1", "totalSystem": 930}

        with patch.object(rest, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(201, [row]))
            mock_get.return_value = mock_http

            result = await rest.insert("dailyClosings", row)

            assert result == row
            call = mock_http.request.call_args.kwargs
            assert call["method"] == "POST"
            assert call["url"] == "/rest/v1/dailyClosings"
            assert call["json"] == row

    @pytest.mark.asyncio
    async def test_update_filters_by_id(self, rest):
        with patch.object(rest, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(200, [{"id": "CLOSE-1"}]))
            mock_get.return_value = mock_http

            await rest.update("dailyClosings", "CLOSE-1", {"id": "CLOSE-1"})

            call = mock_http.request.call_args.kwargs
            assert call["method"] == "PATCH"
            assert call["params"] == {"id": "eq.CLOSE-1"}

    @pytest.mark.asyncio
    async def test_update_matching_nothing_is_not_found(self, rest):
        with patch.object(rest, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(200, []))
            mock_get.return_value = mock_http

            with pytest.raises(RecordNotFoundError):
                await rest.update("dailyClosings", "CLOSE-1", {"id": "CLOSE-1"})

    @pytest.mark.asyncio
    async def test_fetch_missing_returns_none(self, rest):
        with patch.object(rest, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(200, []))
            mock_get.return_value = mock_http

            assert await rest.fetch("dailyClosings", "CLOSE-1") is None

    @pytest.mark.asyncio
    async def test_fetch_all_orders_on_server(self, rest):
        with patch.object(rest, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=_response(200, [{"id": "a"}]))
            mock_get.return_value = mock_http

            rows = await rest.fetch_all("dailyClosings", order_by="date", descending=True)

            assert rows == [{"id": "a"}]
            params = mock_http.request.call_args.kwargs["params"]
            assert params["order"] == "date.desc"

    @pytest.mark.asyncio
    async def test_server_error_raises(self, rest):
        """Error status codes surface as PersistenceError with details."""
        with patch.object(rest, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                return_value=_response(500, {"message": "internal"})
            )
            mock_get.return_value = mock_http

            with pytest.raises(PersistenceError) as exc_info:
                await rest.delete("dailyClosings", "CLOSE-1")

            assert exc_info.value.status_code == 500
            assert exc_info.value.details == {"message": "internal"}
            assert mock_http.request.await_count == 1

    @pytest.mark.asyncio
    async def test_connection_error_raises(self, rest):
        """Transport failures are not retried."""
        with patch.object(rest, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(side_effect=httpx.ConnectError("refused"))
            mock_get.return_value = mock_http

            with pytest.raises(PersistenceError, match="Request failed"):
                await rest.fetch("dailyClosings", "CLOSE-1")

            assert mock_http.request.await_count == 1

    @pytest.mark.asyncio
    async def test_close_releases_client(self, rest):
        client = await rest._get_client()
        assert isinstance(client, httpx.AsyncClient)

        await rest.close()

        assert rest._client is None


@pytest.mark.asyncio
async def test_unreadable_success_body_raises_persistence_error(rest):
    """A 2xx page that is not JSON, such as a proxy login page, is a store failure."""
    page = _response(200, "")
    page.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)
    page.text = "<html>Sign in</html>"

    with patch.object(rest, "_get_client") as mock_get:
        mock_http = AsyncMock()
        mock_http.request = AsyncMock(return_value=page)
        mock_get.return_value = mock_http

        with pytest.raises(PersistenceError, match="unreadable") as exc_info:
            await rest.insert("dailyClosings", {"id": "CLOSE-1"})

    assert exc_info.value.status_code == 200
    assert exc_info.value.details == {"raw": "<html>Sign in</html>"}


@pytest.mark.asyncio
async def test_desk_reports_unreadable_store_response(rest, engine, audit_log, scenario_draft):
    page = _response(201, "")
    page.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)
    store = ClosingRecordStore(
        rest, engine, SharedSecretAuthorizer(EDIT_SECRET), audit_log, collection="dailyClosings"
    )

    with patch.object(rest, "_get_client") as mock_get:
        mock_http = AsyncMock()
        mock_http.request = AsyncMock(return_value=page)
        mock_get.return_value = mock_http

        result = await ClosingDesk(store).save(scenario_draft, Actor(id="u-1", name="Sara"))

    assert result.success is False
    assert result.message == ClosingDesk.SAVE_FAILED
    assert isinstance(result.error, PersistenceError)
    assert audit_log.entries == []
