# Overview: Pytest coverage for the remote API client.

"""
Remote client tests use httpx.MockTransport; no server is started.
"""

import json

import httpx
import pytest

from sellomaster.client import ApiError, SealApiClient, StoreUnavailableError


class Recorder:
    """Mock transport handler that replays scripted responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_client(recorder, **kwargs):
    return SealApiClient(
        "http://sellos.test/",
        transport=httpx.MockTransport(recorder),
        backoff_base=0,
        **kwargs,
    )


class TestSealApiClient:
    def test_login_sets_bearer_token(self):
        recorder = Recorder(
            httpx.Response(200, json={"token": "abc", "user": {"username": "ANA"}}),
            httpx.Response(200, json={"seals": [{"id": "BOG-1"}], "count": 1}),
        )
        with make_client(recorder) as client:
            client.login("ana", "secreto1")
            seals = client.get_seals(status="ASIGNADO", city=None)

        assert seals == [{"id": "BOG-1"}]
        assert recorder.requests[1].headers["Authorization"] == "Bearer abc"
        assert recorder.requests[1].url.params["status"] == "ASIGNADO"
        assert "city" not in recorder.requests[1].url.params

    def test_movement_retried_with_same_date(self):
        recorder = Recorder(
            httpx.Response(503, json={"error": "busy"}),
            httpx.Response(200, json={"seals": [{"id": "BOG-1", "status": "ASIGNADO"}], "count": 1}),
        )
        client = make_client(recorder, token="abc")

        seals = client.move_seals(["BOG-1"], "ASIGNADO", {"assignedTo": "JUAN"})

        assert seals[0]["status"] == "ASIGNADO"
        first, second = (json.loads(r.content) for r in recorder.requests)
        assert first == second
        assert first["date"]
        assert recorder.requests[0].url.path == "/api/seals/movement"

    def test_transport_errors_surface_as_store_unavailable(self):
        recorder = Recorder(*[httpx.ConnectError("refused") for _ in range(3)])
        client = make_client(recorder, retries=2)

        with pytest.raises(StoreUnavailableError):
            client.get_cities()
        assert len(recorder.requests) == 3

    def test_server_error_after_retries(self):
        recorder = Recorder(httpx.Response(500), httpx.Response(502))
        client = make_client(recorder, retries=1)

        with pytest.raises(StoreUnavailableError) as exc:
            client.get_settings()
        assert exc.value.status_code == 502

    def test_client_errors_are_not_retried(self):
        recorder = Recorder(httpx.Response(404, json={
            "error": "Seals X do not exist", "kind": "NotFoundError", "ids": ["X"], "fields": [],
        }))
        client = make_client(recorder)

        with pytest.raises(ApiError) as exc:
            client.move_seals(["X"], "ASIGNADO", date="2026-01-05T08:00:00Z")

        assert exc.value.status_code == 404
        assert exc.value.kind == "NotFoundError"
        assert exc.value.ids == ["X"]
        assert len(recorder.requests) == 1

    def test_create_and_get_seal(self):
        recorder = Recorder(
            httpx.Response(201, json={"seal": {"id": "CAL-1", "city": "CALI"}}),
            httpx.Response(200, json={"seal": {"id": "CAL-1", "city": "CALI"}}),
        )
        client = make_client(recorder, token="abc")

        created = client.create_seal("CAL-1", "Cable", city="CALI")
        fetched = client.get_seal("CAL-1")

        assert created == fetched
        assert json.loads(recorder.requests[0].content) == {"id": "CAL-1", "type": "Cable", "city": "CALI"}
