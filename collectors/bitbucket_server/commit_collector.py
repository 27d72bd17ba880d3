"""Collect commits, one page sequence per known branch."""

from __future__ import annotations

from typing import Any, Dict

from collectors.bitbucket_server.api_common import (
    get_branches_iterator,
    get_query,
    get_raw_messages_from_response,
    get_total_pages_from_response,
)
from collectors.lib.collector import ApiCollectorArgs, StatefulApiCollector, TaskContext

RAW_COMMITS_TABLE = "bitbucket_server_api_commits"


def collect_api_commits(ctx: TaskContext, **execute_kwargs: Any) -> Dict[str, Any]:
    collector = StatefulApiCollector(ctx, RAW_COMMITS_TABLE)
    with get_branches_iterator(ctx, collector.state) as branches:
        collector.init_collector(
            ApiCollectorArgs(
                api_client=ctx.api_client,
                page_size=100,
                input=branches,
                url_template="rest/api/1.0/projects/{{ .Params.FullName }}/commits?until={{ .Input.Branch }}",
                query=get_query,
                get_total_pages=get_total_pages_from_response,
                response_parser=get_raw_messages_from_response,
            )
        )
        return collector.execute(**execute_kwargs)
