"""Tests for Bitbucket Server query builders and response decoders."""

from datetime import datetime, timezone

import httpx
import pytest

from collectors.bitbucket_server.api_common import (
    BitbucketServerPagination,
    get_next_page_custom_data,
    get_query,
    get_query_created_and_updated,
    get_query_fields,
    get_raw_messages_from_response,
    get_total_pages_from_response,
    total_pages,
)
from collectors.lib.collector import ApiCollectorArgs, ignore_http_status_404
from collectors.lib.errors import (
    AuthenticationError,
    DecodeError,
    FinishCollect,
    IgnoreAndContinue,
)
from collectors.lib.models import CollectionParams, CollectorState, Pager, RequestData

PARAMS = CollectionParams(connection_id=1, full_name="PROJ/repos/app")
URL = "https://bitbucket.example.com/rest/api/1.0/projects/PROJ/repos/app/branches"


def request_data(page=1, size=100) -> RequestData:
    return RequestData(pager=Pager(page=page, size=size), params=PARAMS)


def json_response(body, status=200) -> httpx.Response:
    return httpx.Response(status, json=body, request=httpx.Request("GET", URL))


class StubCollector:
    def __init__(self, since=None, is_incremental=False):
        self.state = CollectorState(since=since, is_incremental=is_incremental)


# ============================================================================
# Query builders
# ============================================================================


class TestGetQuery:
    def test_base_query(self):
        assert get_query(request_data(page=2, size=100)) == {
            "state": "all",
            "page": "2",
            "pagelen": "100",
        }

    def test_cursor_token_is_used_as_page(self):
        assert get_query(request_data(page="abc"))["page"] == "abc"

    def test_query_fields(self):
        query = get_query_fields("values.id,next")(request_data())
        assert query["fields"] == "values.id,next"
        assert query["state"] == "all"


class TestGetQueryCreatedAndUpdated:
    def test_full_run_has_no_filter(self):
        query = get_query_created_and_updated("values.id", StubCollector())(request_data())
        assert query["sort"] == "created_on"
        assert query["fields"] == "values.id"
        assert "q" not in query

    def test_incremental_run_filters_on_since(self):
        since = datetime(2023, 1, 1, tzinfo=timezone.utc)
        collector = StubCollector(since=since, is_incremental=True)
        query = get_query_created_and_updated("values.id", collector)(request_data())
        assert query["q"] == "updated_on>=2023-01-01T00:00:00Z"
        assert query["sort"] == "created_on"

    def test_time_after_alone_does_not_filter(self):
        since = datetime(2023, 1, 1, tzinfo=timezone.utc)
        collector = StubCollector(since=since, is_incremental=False)
        query = get_query_created_and_updated("values.id", collector)(request_data())
        assert "q" not in query

    def test_reads_state_at_request_time(self):
        collector = StubCollector()
        query = get_query_created_and_updated("values.id", collector)
        collector.state = CollectorState(
            since=datetime(2024, 6, 1, 12, tzinfo=timezone.utc), is_incremental=True
        )
        assert query(request_data())["q"] == "updated_on>=2024-06-01T12:00:00Z"


# ============================================================================
# Response decoders
# ============================================================================


class TestTotalPages:
    @pytest.mark.parametrize(
        "size, page_size, expected",
        [(250, 100, 3), (300, 100, 3), (0, 100, 0), (1, 100, 1), (99, 50, 2)],
    )
    def test_rounds_remainder_up(self, size, page_size, expected):
        assert total_pages(size, page_size) == expected

    def test_from_response(self):
        args = ApiCollectorArgs(
            api_client=object(), url_template="x", response_parser=list, page_size=100
        )
        response = json_response({"size": 250, "values": []})
        assert get_total_pages_from_response(response, args) == 3

    def test_missing_size_means_no_pages(self):
        args = ApiCollectorArgs(api_client=object(), url_template="x", response_parser=list)
        assert get_total_pages_from_response(json_response({"values": []}), args) == 0


class TestNextPageCustomData:
    def test_extracts_page_from_next_link(self):
        response = json_response({"values": [], "next": f"{URL}?page=7&other=x"})
        assert get_next_page_custom_data(request_data(), response) == "7"

    def test_empty_next_finishes(self):
        with pytest.raises(FinishCollect):
            get_next_page_custom_data(request_data(), json_response({"values": [], "next": ""}))

    def test_missing_next_finishes(self):
        with pytest.raises(FinishCollect):
            get_next_page_custom_data(request_data(), json_response({"values": []}))

    def test_next_without_page_is_decode_error(self):
        response = json_response({"values": [], "next": f"{URL}?start=25"})
        with pytest.raises(DecodeError):
            get_next_page_custom_data(request_data(), response)

    def test_malformed_body(self):
        response = httpx.Response(200, text="<html>oops</html>", request=httpx.Request("GET", URL))
        with pytest.raises(DecodeError) as exc_info:
            get_next_page_custom_data(request_data(), response)
        assert exc_info.value.url == URL
        assert exc_info.value.body == "<html>oops</html>"


class TestRawMessages:
    def test_returns_values_unchanged(self):
        values = [{"id": 1, "nested": {"a": [1, 2]}}, {"id": 2}]
        assert get_raw_messages_from_response(json_response({"values": values})) == values

    def test_missing_values(self):
        assert get_raw_messages_from_response(json_response({"size": 0})) == []

    def test_non_array_values(self):
        with pytest.raises(DecodeError):
            get_raw_messages_from_response(json_response({"values": {"id": 1}}))

    def test_non_object_body(self):
        with pytest.raises(DecodeError):
            get_raw_messages_from_response(json_response([1, 2, 3]))

    def test_invalid_json_keeps_url_and_body(self):
        response = httpx.Response(200, text="{not json", request=httpx.Request("GET", URL))
        with pytest.raises(DecodeError) as exc_info:
            get_raw_messages_from_response(response)
        assert exc_info.value.url == URL
        assert exc_info.value.body == "{not json"


class TestPaginationEnvelope:
    def test_from_dict(self):
        body = BitbucketServerPagination.from_dict(
            {"values": [1], "size": 1, "limit": 25, "isLastPage": True, "next": ""}
        )
        assert body.values == [1]
        assert body.limit == 25
        assert body.is_last_page is True

    def test_defaults(self):
        body = BitbucketServerPagination.from_dict({})
        assert body.values == []
        assert body.next == ""


class TestStatusClassification:
    def test_401_aborts(self):
        with pytest.raises(AuthenticationError) as exc_info:
            ignore_http_status_404(json_response({}, status=401))
        assert exc_info.value.url == URL
        assert "access token" in str(exc_info.value)

    def test_404_skips_seed(self):
        with pytest.raises(IgnoreAndContinue):
            ignore_http_status_404(json_response({}, status=404))

    @pytest.mark.parametrize("status", [200, 500, 403])
    def test_other_statuses_pass_through(self, status):
        assert ignore_http_status_404(json_response({}, status=status)) is None
