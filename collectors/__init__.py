"""Stateful, incremental collectors for code-hosting REST APIs.

This package pages through API resources (commits, branches, pull requests,
comments), persists every record as raw JSON, and remembers a watermark so
the next run only asks for what changed.

Usage:
    from collectors.lib.config_loader import load_collector_config, build_task_context
    from collectors.bitbucket_server import collect_api_commits

    ctx = build_task_context(load_collector_config("bitbucket.yaml"))
    collect_api_commits(ctx)
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
