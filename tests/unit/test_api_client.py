"""Tests for the retrying HTTP client."""

import httpx
import pytest

from collectors.lib.api_client import RETRYABLE_STATUS_CODES, ApiClient


class TestApiClientConstruction:
    def test_endpoint_required(self):
        with pytest.raises(ValueError, match="endpoint"):
            ApiClient("")

    def test_endpoint_gets_trailing_slash(self):
        with ApiClient("https://bitbucket.example.com/context") as client:
            assert client.endpoint == "https://bitbucket.example.com/context/"

    def test_max_retries_at_least_one(self):
        with ApiClient("https://x", max_retries=0) as client:
            assert client.max_retries == 1


class TestApiClientRequests:
    def test_bearer_token_and_user_agent(self, make_client):
        client = make_client(lambda request: httpx.Response(200, json={}))
        client.get("rest/api/1.0/projects")

        request = client.handler.requests[0]
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["Accept"] == "application/json"
        assert "bitbucket-collector" in request.headers["User-Agent"]

    def test_basic_auth(self, make_client):
        client = make_client(
            lambda request: httpx.Response(200, json={}),
            token=None,
            username="user",
            password="pass",
        )
        client.get("rest/api/1.0/projects")
        assert client.handler.requests[0].headers["Authorization"].startswith("Basic ")

    def test_path_is_joined_to_endpoint(self, make_client):
        client = make_client(lambda request: httpx.Response(200, json={}))
        client.get("/rest/api/1.0/projects/P/repos/r/branches")
        assert str(client.handler.requests[0].url) == (
            "https://bitbucket.example.com/rest/api/1.0/projects/P/repos/r/branches"
        )

    def test_params_merge_with_existing_query(self, make_client):
        client = make_client(lambda request: httpx.Response(200, json={}))
        client.get("commits?until=main", params={"page": "2", "pagelen": "100"})

        url = client.handler.requests[0].url
        assert url.params["until"] == "main"
        assert url.params["page"] == "2"
        assert url.params["pagelen"] == "100"

    def test_path_query_kept_without_params(self, make_client):
        client = make_client(lambda request: httpx.Response(200, json={}))
        client.get("commits?until=feature%2Fx")
        assert client.handler.requests[0].url.params["until"] == "feature/x"

    def test_params_override_same_key_in_path(self, make_client):
        client = make_client(lambda request: httpx.Response(200, json={}))
        client.get("commits?until=main&page=1", params={"page": "3"})

        url = client.handler.requests[0].url
        assert url.params["until"] == "main"
        assert url.params.get_list("page") == ["3"]

    def test_counts_requests(self, make_client):
        client = make_client(lambda request: httpx.Response(200, json={}))
        client.get("a")
        client.get("b")
        assert client.total_requests == 2


class TestApiClientRetry:
    def test_retries_server_errors_then_succeeds(self, make_client):
        statuses = iter([503, 502, 200])
        client = make_client(
            lambda request: httpx.Response(next(statuses), json={}), max_retries=3
        )
        response = client.get("x")
        assert response.status_code == 200
        assert client.total_requests == 3

    def test_returns_last_response_when_retries_run_out(self, make_client):
        client = make_client(lambda request: httpx.Response(500, text="boom"), max_retries=2)
        response = client.get("x")
        assert response.status_code == 500
        assert client.total_requests == 2

    @pytest.mark.parametrize("status", [401, 404, 400])
    def test_client_errors_are_not_retried(self, make_client, status):
        client = make_client(lambda request: httpx.Response(status), max_retries=3)
        assert client.get("x").status_code == status
        assert client.total_requests == 1

    def test_transport_errors_are_retried_then_raised(self, make_client):
        def fail(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(fail, max_retries=2)
        with pytest.raises(httpx.ConnectError):
            client.get("x")
        assert client.total_requests == 2

    def test_rate_limit_honours_retry_after(self, make_client, monkeypatch):
        slept = []
        monkeypatch.setattr("collectors.lib.api_client.time.sleep", slept.append)
        statuses = iter([429, 200])
        client = make_client(
            lambda request: httpx.Response(
                next(statuses), headers={"Retry-After": "2"}, json={}
            ),
            max_retries=2,
        )
        assert client.get("x").status_code == 200
        assert 2.0 in slept

    def test_retry_after_is_capped(self, make_client, monkeypatch):
        slept = []
        monkeypatch.setattr("collectors.lib.api_client.time.sleep", slept.append)
        client = make_client(
            lambda request: httpx.Response(429, headers={"Retry-After": "600"}),
            max_retries=1,
            max_backoff=5,
        )
        client.get("x")
        assert slept == [5]


def test_retryable_statuses():
    assert {429, 500, 502, 503, 504} == RETRYABLE_STATUS_CODES
