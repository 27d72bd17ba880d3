"""Collect the commits of every known pull request."""

from __future__ import annotations

from typing import Any, Dict

from collectors.bitbucket_server.api_common import (
    get_next_page_custom_data,
    get_pull_requests_iterator,
    get_query,
    get_raw_messages_from_response,
)
from collectors.lib.collector import ApiCollectorArgs, StatefulApiCollector, TaskContext

RAW_PULL_REQUEST_COMMITS_TABLE = "bitbucket_server_api_pull_request_commits"


def collect_api_pr_commits(ctx: TaskContext, **execute_kwargs: Any) -> Dict[str, Any]:
    collector = StatefulApiCollector(ctx, RAW_PULL_REQUEST_COMMITS_TABLE)
    with get_pull_requests_iterator(ctx, collector.state) as pull_requests:
        collector.init_collector(
            ApiCollectorArgs(
                api_client=ctx.api_client,
                page_size=100,
                input=pull_requests,
                url_template=(
                    "rest/api/1.0/projects/{{ .Params.FullName }}"
                    "/pull-requests/{{ .Input.BitbucketId }}/commits"
                ),
                query=get_query,
                get_next_page_custom_data=get_next_page_custom_data,
                response_parser=get_raw_messages_from_response,
            )
        )
        return collector.execute(**execute_kwargs)
