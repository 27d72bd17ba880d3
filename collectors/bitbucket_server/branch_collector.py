"""Collect the branches of a repository."""

from __future__ import annotations

from typing import Any, Dict

from collectors.bitbucket_server.api_common import (
    get_next_page_custom_data,
    get_query,
    get_raw_messages_from_response,
)
from collectors.lib.collector import ApiCollectorArgs, StatefulApiCollector, TaskContext

RAW_BRANCHES_TABLE = "bitbucket_server_api_branches"


def collect_api_branches(ctx: TaskContext, **execute_kwargs: Any) -> Dict[str, Any]:
    collector = StatefulApiCollector(ctx, RAW_BRANCHES_TABLE)
    collector.init_collector(
        ApiCollectorArgs(
            api_client=ctx.api_client,
            page_size=100,
            url_template="rest/api/1.0/projects/{{ .Params.FullName }}/branches",
            query=get_query,
            get_next_page_custom_data=get_next_page_custom_data,
            response_parser=get_raw_messages_from_response,
        )
    )
    return collector.execute(**execute_kwargs)
