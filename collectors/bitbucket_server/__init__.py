"""Bitbucket Server resource collectors."""

from collectors.bitbucket_server.branch_collector import collect_api_branches
from collectors.bitbucket_server.commit_collector import collect_api_commits
from collectors.bitbucket_server.pr_collector import collect_api_pull_requests
from collectors.bitbucket_server.pr_comment_collector import collect_api_pr_comments
from collectors.bitbucket_server.pr_commit_collector import collect_api_pr_commits

__all__ = [
    "collect_api_branches",
    "collect_api_commits",
    "collect_api_pull_requests",
    "collect_api_pr_comments",
    "collect_api_pr_commits",
]
