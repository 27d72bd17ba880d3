"""Collect pull requests, asking only for those updated since the last run."""

from __future__ import annotations

from typing import Any, Dict

from collectors.bitbucket_server.api_common import (
    get_next_page_custom_data,
    get_query_created_and_updated,
    get_raw_messages_from_response,
)
from collectors.lib.collector import ApiCollectorArgs, StatefulApiCollector, TaskContext

RAW_PULL_REQUESTS_TABLE = "bitbucket_server_api_pull_requests"

PULL_REQUEST_FIELDS = (
    "values.id,values.title,values.state,values.author,values.fromRef,values.toRef,"
    "values.createdDate,values.updatedDate,values.closedDate,size,next,isLastPage"
)


def collect_api_pull_requests(ctx: TaskContext, **execute_kwargs: Any) -> Dict[str, Any]:
    collector = StatefulApiCollector(ctx, RAW_PULL_REQUESTS_TABLE)
    collector.init_collector(
        ApiCollectorArgs(
            api_client=ctx.api_client,
            page_size=50,
            url_template="rest/api/1.0/projects/{{ .Params.FullName }}/pull-requests",
            query=get_query_created_and_updated(PULL_REQUEST_FIELDS, collector),
            get_next_page_custom_data=get_next_page_custom_data,
            response_parser=get_raw_messages_from_response,
        )
    )
    return collector.execute(**execute_kwargs)
