"""Issue lookup with embedded, breadth-limited comment threads."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from commentbuddy import linear_api
from commentbuddy.config import get_config
from commentbuddy.errors import IssueNotFoundError
from commentbuddy.models import IssueDetails
from commentbuddy.threads import build_comment_tree, truncate_tree
from commentbuddy.tools.comments import fetch_comments

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

_ISSUE_DETAILS_QUERY = """
query($id: String!) {
  issue(id: $id) {
    id
    identifier
    title
    description
    url
    priority
    createdAt
    updatedAt
    state { name }
    assignee { name }
    team { key }
    labels { nodes { name } }
  }
}
"""


def _parse_issue_details(node: dict[str, Any]) -> IssueDetails:
    """Flatten the nested GraphQL issue node into IssueDetails."""
    labels = (node.get("labels") or {}).get("nodes") or []
    return IssueDetails(
        id=node["id"],
        identifier=node.get("identifier") or "",
        title=node.get("title") or "",
        description=node.get("description"),
        url=node.get("url") or "",
        state=(node.get("state") or {}).get("name"),
        priority=node.get("priority"),
        assignee=(node.get("assignee") or {}).get("name"),
        team=(node.get("team") or {}).get("key"),
        labels=[label["name"] for label in labels if label.get("name")],
        created_at=node.get("createdAt"),
        updated_at=node.get("updatedAt"),
    )


async def get_issue(
    identifier: str,
    *,
    include_comments: bool = True,
    limit: int | None = None,
) -> IssueDetails:
    """Fetch an issue, embedding its first comment threads.

    Args:
        identifier: Issue identifier (e.g. ``ENG-123``) or UUID.
        include_comments: Embed comment threads and the total comment count.
        limit: Top-level threads to embed; defaults to ``[comments] embed_limit``.
            ``0`` embeds every thread.

    Returns:
        IssueDetails. ``comments`` and ``total_comments`` stay ``None`` when
        comments are not included.
    """
    try:
        data = await linear_api.graphql(_ISSUE_DETAILS_QUERY, {"id": identifier})
    except linear_api.LinearNotFoundError as exc:
        raise IssueNotFoundError(identifier) from exc
    node = data.get("issue")
    if not node:
        raise IssueNotFoundError(identifier)
    details = _parse_issue_details(node)

    if not include_comments:
        return details

    config = get_config().comments
    if limit is None:
        limit = config.embed_limit

    fetched = await fetch_comments(details.id)
    truncated = truncate_tree(build_comment_tree(fetched.comments), limit, preview_length=config.preview_length)
    details.comments = truncated.threads
    details.total_comments = len(fetched.comments)
    details.omitted_count = truncated.omitted_count
    details.collapsed = truncated.collapsed
    logger.debug(
        "Embedded %d of %d thread(s) on %s",
        len(truncated.threads),
        len(truncated.threads) + truncated.omitted_count,
        details.identifier,
    )
    return details
