from unittest.mock import MagicMock, patch

import httpx
import pytest

from connectors.lead_store import (
    LeadNotFound,
    MemoryLeadStore,
    PersistenceError,
    SupabaseLeadStore,
    create_lead_store,
)

from conftest import make_settings

TABLE_URL = "https://test.supabase.co/rest/v1/social_media_contact_requests"


def json_response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.content = b"[]" if payload is not None else b""
    response.json.return_value = payload
    return response


class TestSupabaseLeadStore:
    """PostgREST access to the lead table."""

    def setup_method(self):
        self.store = SupabaseLeadStore("https://test.supabase.co/", "test-key", "social_media_contact_requests")

    @patch("connectors.lead_store.httpx.request")
    def test_insert(self, mock_request):
        mock_request.return_value = json_response([{"id": "abc", "email": "jane@acme.com"}])

        record = self.store.insert({"email": "jane@acme.com", "lead_score": 20})

        assert record == {"id": "abc", "email": "jane@acme.com"}
        args = mock_request.call_args
        assert args.args == ("POST", TABLE_URL)
        assert args.kwargs["json"] == {"email": "jane@acme.com", "lead_score": 20}
        assert args.kwargs["headers"]["Prefer"] == "return=representation"
        assert args.kwargs["headers"]["apikey"] == "test-key"
        assert args.kwargs["headers"]["Authorization"] == "Bearer test-key"

    @patch("connectors.lead_store.httpx.request")
    def test_insert_http_error(self, mock_request):
        response = json_response({"message": "violates check constraint"}, status_code=400)
        response.text = "violates check constraint"
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "400", request=MagicMock(), response=response
        )
        mock_request.return_value = response

        with pytest.raises(PersistenceError) as exc:
            self.store.insert({"email": "jane@acme.com"})
        assert "400" in str(exc.value)

    @patch("connectors.lead_store.httpx.request")
    def test_insert_network_error(self, mock_request):
        mock_request.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(PersistenceError):
            self.store.insert({"email": "jane@acme.com"})

    @patch("connectors.lead_store.httpx.request")
    def test_insert_without_representation(self, mock_request):
        mock_request.return_value = json_response([])

        with pytest.raises(PersistenceError):
            self.store.insert({"email": "jane@acme.com"})

    @patch("connectors.lead_store.httpx.request")
    def test_list_orders_newest_first(self, mock_request):
        mock_request.return_value = json_response([{"id": "b"}, {"id": "a"}])

        assert self.store.list(limit=10) == [{"id": "b"}, {"id": "a"}]
        assert mock_request.call_args.kwargs["params"] == {
            "select": "*", "order": "created_at.desc", "limit": 10
        }

    @patch("connectors.lead_store.httpx.request")
    def test_update_status(self, mock_request):
        mock_request.return_value = json_response([{"id": "abc", "status": "contacted"}])

        record = self.store.update_status("abc", "contacted")

        assert record["status"] == "contacted"
        args = mock_request.call_args
        assert args.args[0] == "PATCH"
        assert args.kwargs["params"] == {"id": "eq.abc"}
        assert args.kwargs["json"] == {"status": "contacted"}

    @patch("connectors.lead_store.httpx.request")
    def test_missing_lead(self, mock_request):
        mock_request.return_value = json_response([])

        with pytest.raises(LeadNotFound):
            self.store.get("nope")
        with pytest.raises(LeadNotFound):
            self.store.update_status("nope", "closed")
        with pytest.raises(LeadNotFound):
            self.store.delete("nope")


class TestMemoryLeadStore:
    """In-memory table used in mock mode."""

    def test_lifecycle(self):
        store = MemoryLeadStore()

        record = store.insert({"email": "jane@acme.com", "status": "new"})
        assert record["id"]
        assert store.get(record["id"])["email"] == "jane@acme.com"

        for status in ("contacted", "followed_up", "closed", "contacted"):
            assert store.update_status(record["id"], status)["status"] == status

        store.delete(record["id"])
        with pytest.raises(LeadNotFound):
            store.get(record["id"])

    def test_returned_rows_are_copies(self):
        store = MemoryLeadStore()
        record = store.insert({"email": "jane@acme.com", "lead_score": 40})

        record["lead_score"] = 99
        assert store.get(record["id"])["lead_score"] == 40


class TestCreateLeadStore:
    def test_supabase_when_configured(self):
        settings = make_settings(supabase_url="https://test.supabase.co", supabase_key="k")
        assert create_lead_store(settings).backend == "supabase"

    def test_mock_mode(self):
        assert create_lead_store(make_settings()).backend == "memory"
