"""Tests for routing queued operations and delta queries to the API client."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.leadsync.sync.dispatch import OperationDispatcher, UnknownEntityTypeError
from src.leadsync.sync.schemas import DEFAULT_ENTITY_RESOURCES, PendingOperation


@pytest.fixture
def dispatcher(api_client) -> OperationDispatcher:
    return OperationDispatcher(api_client, DEFAULT_ENTITY_RESOURCES)


class TestDispatch:
    async def test_create_passes_full_payload(self, dispatcher, api_client):
        op = PendingOperation(entity_type="calls", operation="create", data={"leadId": 1})

        await dispatcher.dispatch(op)

        api_client.create_call.assert_awaited_once_with({"leadId": 1})

    async def test_update_strips_id_from_payload(self, dispatcher, api_client):
        op = PendingOperation(entity_type="notes", operation="update", data={"id": "n1", "text": "x"})

        await dispatcher.dispatch(op)

        api_client.update_note.assert_awaited_once_with("n1", {"text": "x"})
        assert op.data == {"id": "n1", "text": "x"}

    async def test_delete_passes_only_id(self, dispatcher, api_client):
        op = PendingOperation(entity_type="leads", operation="delete", data={"id": 4})

        await dispatcher.dispatch(op)

        api_client.delete_lead.assert_awaited_once_with(4)

    async def test_unknown_entity_type(self, dispatcher, api_client):
        op = PendingOperation(entity_type="invoices", operation="create", data={})

        with pytest.raises(UnknownEntityTypeError, match="Unknown entity type: invoices"):
            await dispatcher.dispatch(op)

    async def test_api_errors_propagate(self, dispatcher, api_client):
        api_client.create_lead.side_effect = ConnectionError("reset by peer")
        op = PendingOperation(entity_type="leads", operation="create", data={})

        with pytest.raises(ConnectionError):
            await dispatcher.dispatch(op)

    async def test_custom_resource_table(self, api_client):
        dispatcher = OperationDispatcher(api_client, {"prospects": "lead"})
        op = PendingOperation(entity_type="prospects", operation="create", data={"a": 1})

        await dispatcher.dispatch(op)

        api_client.create_lead.assert_awaited_once_with({"a": 1})


class TestFetchUpdates:
    async def test_full_pull_without_watermark(self, dispatcher, api_client):
        await dispatcher.fetch_updates("leads", None)

        api_client.make_request.assert_awaited_once_with("/api/leads?since=")

    async def test_since_is_url_encoded(self, dispatcher, api_client):
        since = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)

        await dispatcher.fetch_updates("calls", since)

        api_client.make_request.assert_awaited_once_with(
            "/api/calls?since=2026-03-14T09%3A30%3A00%2B00%3A00"
        )

    @pytest.mark.parametrize(
        "response, expected",
        [
            ([{"id": 1}], [{"id": 1}]),
            ({"data": [{"id": 2}]}, [{"id": 2}]),
            ({"data": None}, []),
            (None, []),
        ],
    )
    async def test_response_shapes(self, dispatcher, api_client, response, expected):
        api_client.make_request.return_value = response

        assert await dispatcher.fetch_updates("notes", None) == expected

    async def test_unexpected_response_type(self, dispatcher, api_client):
        api_client.make_request.return_value = "<html>maintenance</html>"

        with pytest.raises(TypeError, match="Expected a list of notes"):
            await dispatcher.fetch_updates("notes", None)
