"""Comment operations: fetch, list, reply-target resolution and mutations.

Each operation is a short linear sequence of backend calls: an optional fresh
fetch, at most one mutating call, then classification into a tagged
:class:`~commentbuddy.models.MutationResult`. Nothing is cached between calls.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from commentbuddy import linear_api
from commentbuddy.config import get_config
from commentbuddy.errors import (
    BackendError,
    CommentNotFoundError,
    EmptyBodyError,
    IssueNotFoundError,
    NoCommentsToReplyToError,
    NotCommentOwnerError,
    TargetNotFoundError,
)
from commentbuddy.models import (
    CommentList,
    CommentNode,
    CommentRecord,
    IssueComments,
    IssueRef,
    MutationOutcome,
    MutationResult,
)
from commentbuddy.threads import build_comment_tree, find_node, truncate_tree

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import TextIO

logger = logging.getLogger(__name__)

REPLY_TO_LAST = "last"

_COMMENT_FIELDS = """
fragment CommentFields on Comment {
  id
  body
  createdAt
  updatedAt
  editedAt
  url
  parent { id }
  user { id name email }
  botActor { name }
  resolvedAt
  resolvingUser { id name email }
}
"""

_ISSUE_QUERY = """
query($id: String!) {
  issue(id: $id) { id identifier title url }
}
"""

_ISSUE_COMMENTS_QUERY = (
    """
query($id: String!, $first: Int!, $cursor: String) {
  issue(id: $id) {
    id
    identifier
    title
    url
    comments(first: $first, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes { ...CommentFields }
    }
  }
}
"""
    + _COMMENT_FIELDS
)

_COMMENT_QUERY = (
    """
query($id: String!) {
  comment(id: $id) {
    ...CommentFields
    issue { identifier }
  }
}
"""
    + _COMMENT_FIELDS
)

_CREATE_MUTATION = (
    """
mutation($input: CommentCreateInput!) {
  commentCreate(input: $input) {
    success
    comment { ...CommentFields }
  }
}
"""
    + _COMMENT_FIELDS
)

_UPDATE_MUTATION = (
    """
mutation($id: String!, $input: CommentUpdateInput!) {
  commentUpdate(id: $id, input: $input) {
    success
    comment { ...CommentFields }
  }
}
"""
    + _COMMENT_FIELDS
)

_RESOLVE_MUTATION = (
    """
mutation($id: String!) {
  commentResolve(id: $id) {
    success
    comment { ...CommentFields }
  }
}
"""
    + _COMMENT_FIELDS
)

_UNRESOLVE_MUTATION = (
    """
mutation($id: String!) {
  commentUnresolve(id: $id) {
    success
    comment { ...CommentFields }
  }
}
"""
    + _COMMENT_FIELDS
)

_DELETE_MUTATION = """
mutation($id: String!) {
  commentDelete(id: $id) { success }
}
"""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_comment(node: dict[str, Any]) -> CommentRecord:
    """Parse a raw GraphQL comment node into a CommentRecord."""
    parent = node.get("parent") or {}
    issue = node.get("issue") or {}
    return CommentRecord.model_validate({
        "id": node["id"],
        "body": node.get("body") or "",
        "createdAt": node["createdAt"],
        "updatedAt": node.get("updatedAt"),
        "editedAt": node.get("editedAt"),
        "url": node.get("url") or "",
        "user": node.get("user"),
        "botActor": node.get("botActor"),
        "parentId": parent.get("id") or node.get("parentId"),
        "resolvingUser": node.get("resolvingUser"),
        "resolvedAt": node.get("resolvedAt"),
        "issueIdentifier": issue.get("identifier"),
    })


def _parse_issue(node: dict[str, Any]) -> IssueRef:
    return IssueRef(
        id=node["id"],
        identifier=node.get("identifier") or "",
        title=node.get("title") or "",
        url=node.get("url") or "",
    )


def _payload_comment(data: dict[str, Any], mutation: str, comment_id: str = "") -> CommentRecord:
    """Extract the comment from a ``{success, comment}`` mutation payload."""
    payload = data.get(mutation) or {}
    comment = payload.get("comment")
    if not payload.get("success") or not comment:
        target = f" {comment_id}" if comment_id else ""
        msg = f"{mutation} failed for comment{target}"
        raise BackendError(msg)
    return _parse_comment(comment)


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


async def fetch_issue(identifier: str) -> IssueRef:
    """Look up an issue by identifier or UUID.

    Raises:
        IssueNotFoundError: If the backend has no such issue.
    """
    try:
        data = await linear_api.graphql(_ISSUE_QUERY, {"id": identifier})
    except linear_api.LinearNotFoundError as exc:
        raise IssueNotFoundError(identifier) from exc
    node = data.get("issue")
    if not node:
        raise IssueNotFoundError(identifier)
    return _parse_issue(node)


async def fetch_comments(identifier: str) -> IssueComments:
    """Fetch every comment currently stored on an issue, following pagination.

    Raises:
        IssueNotFoundError: If the backend has no such issue.
    """
    page_size = get_config().api.page_size
    records: list[CommentRecord] = []
    issue: IssueRef | None = None
    cursor: str | None = None
    page = 0

    while True:
        page += 1
        variables: dict[str, Any] = {"id": identifier, "first": page_size}
        if cursor:
            variables["cursor"] = cursor
        try:
            data = await linear_api.graphql(_ISSUE_COMMENTS_QUERY, variables)
        except linear_api.LinearNotFoundError as exc:
            raise IssueNotFoundError(identifier) from exc

        node = data.get("issue")
        if not node:
            raise IssueNotFoundError(identifier)
        if issue is None:
            issue = _parse_issue(node)

        comments_data = node.get("comments") or {}
        records.extend(_parse_comment(c) for c in comments_data.get("nodes") or [])

        page_info = comments_data.get("pageInfo") or {}
        if page_info.get("hasNextPage") and page_info.get("endCursor"):
            cursor = page_info["endCursor"]
        else:
            break

    logger.debug("Fetched %d comment(s) on %s in %d page(s)", len(records), identifier, page)
    return IssueComments(issue=issue, comments=records)


async def fetch_comment(comment_id: str) -> CommentRecord:
    """Fetch a single comment by id.

    Raises:
        CommentNotFoundError: If the backend has no such comment.
    """
    try:
        data = await linear_api.graphql(_COMMENT_QUERY, {"id": comment_id})
    except linear_api.LinearNotFoundError as exc:
        raise CommentNotFoundError(comment_id) from exc
    node = data.get("comment")
    if not node:
        raise CommentNotFoundError(comment_id)
    return _parse_comment(node)


async def list_comments(identifier: str, limit: int | None = None) -> CommentList:
    """List an issue's comment threads, oldest first, limited to *limit* top-level threads.

    Args:
        identifier: Issue identifier (e.g. ``ENG-123``) or UUID.
        limit: Maximum top-level threads to keep; ``None`` falls back to
            ``[comments] list_limit``, and ``None``/``<= 0`` keeps all.

    Returns:
        CommentList whose ``total_count`` counts every comment on the issue,
        including replies inside omitted threads.
    """
    config = get_config().comments
    if limit is None:
        limit = config.list_limit

    fetched = await fetch_comments(identifier)
    tree = build_comment_tree(fetched.comments)
    truncated = truncate_tree(tree, limit, preview_length=config.preview_length)

    return CommentList(
        issue=fetched.issue,
        comments=truncated.threads,
        total_count=len(fetched.comments),
        omitted_count=truncated.omitted_count,
        collapsed=truncated.collapsed,
    )


# ---------------------------------------------------------------------------
# Reply targets
# ---------------------------------------------------------------------------


def resolve_reply_target(tree: list[CommentNode], target: str, identifier: str = "") -> str:
    """Translate a reply-to specifier into a concrete parent comment id.

    ``target`` is either an explicit comment id, which must exist somewhere in
    *tree*, or ``"last"``, meaning the newest **top-level** comment regardless
    of its resolved state. Replies never count as "last".

    Linear threads only one level deep, so an explicit target that is itself a
    reply resolves to the top-level comment of its thread.

    *tree* must be built from a fetch taken right before the mutating call.

    Raises:
        TargetNotFoundError: Explicit id not among the issue's comments.
        NoCommentsToReplyToError: ``"last"`` on an issue without comments.
    """
    if target == REPLY_TO_LAST:
        if not tree:
            raise NoCommentsToReplyToError(identifier)
        newest = max(tree, key=lambda n: (n.created_at.timestamp(), n.id))
        return newest.id

    for root in tree:
        if find_node([root], target) is not None:
            return root.id
    raise TargetNotFoundError(target, identifier)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def _check_owner(record: CommentRecord, action: str) -> None:
    """Refuse to touch a comment the authenticated user did not write."""
    viewer = await linear_api.get_viewer()
    author_id = record.user.id if record.user else None
    if author_id is None or author_id != viewer.get("id"):
        logger.info("Refusing to %s comment %s owned by %s", action, record.id, author_id or "a bot")
        raise NotCommentOwnerError(action, record.id)


def _read_body(body: str | None, stdin: TextIO | None) -> str:
    """Take the body from the argument, else from a blocking read of *stdin*.

    Returns the trimmed body.

    Raises:
        EmptyBodyError: If neither source yields non-whitespace text.
    """
    if body is None and stdin is not None:
        body = stdin.read()
    if body is None or not body.strip():
        raise EmptyBodyError
    return body.strip()


async def add_comment(
    identifier: str,
    body: str | None = None,
    *,
    reply_to: str | None = None,
    stdin: TextIO | None = None,
) -> MutationResult:
    """Add a comment to an issue, optionally as a reply.

    Args:
        identifier: Issue identifier (e.g. ``ENG-123``) or UUID.
        body: Comment text. When ``None``, read from *stdin*.
        reply_to: Parent comment id, or ``"last"`` for the newest top-level comment.
        stdin: Stream to read the body from when *body* is omitted.

    Returns:
        MutationResult with outcome ``CREATED`` and the canonical created comment.
    """
    text = _read_body(body, stdin)

    parent_id: str | None = None
    if reply_to:
        fetched = await fetch_comments(identifier)
        issue = fetched.issue
        parent_id = resolve_reply_target(build_comment_tree(fetched.comments), reply_to, issue.identifier)
    else:
        issue = await fetch_issue(identifier)

    comment_input: dict[str, Any] = {"issueId": issue.id, "body": text}
    if parent_id:
        comment_input["parentId"] = parent_id

    data = await linear_api.graphql(_CREATE_MUTATION, {"input": comment_input})
    created = _payload_comment(data, "commentCreate")
    logger.info("Added comment %s on %s%s", created.id, issue.identifier, f" (reply to {parent_id})" if parent_id else "")
    return MutationResult(outcome=MutationOutcome.CREATED, comment_id=created.id, comment=created)


async def edit_comment(
    comment_id: str,
    body: str | None = None,
    *,
    stdin: TextIO | None = None,
) -> MutationResult:
    """Replace a comment's body.

    A body equal to the current one after trimming is not sent to the backend;
    the outcome is then ``UNCHANGED`` and the current record is returned as-is.
    Only the comment's author may edit it.
    """
    text = _read_body(body, stdin)
    current = await fetch_comment(comment_id)
    await _check_owner(current, "edit")

    if text == current.body.strip():
        logger.debug("Comment %s unchanged, skipping update", comment_id)
        return MutationResult(outcome=MutationOutcome.UNCHANGED, comment_id=comment_id, comment=current)

    try:
        data = await linear_api.graphql(_UPDATE_MUTATION, {"id": comment_id, "input": {"body": text}})
    except linear_api.LinearNotFoundError as exc:
        raise CommentNotFoundError(comment_id) from exc
    updated = _payload_comment(data, "commentUpdate", comment_id)
    logger.info("Updated comment %s", comment_id)
    return MutationResult(outcome=MutationOutcome.UPDATED, comment_id=comment_id, comment=updated)


async def _set_resolved(comment_id: str, *, resolved: bool) -> MutationResult:
    """Move a comment thread into the requested resolution state, idempotently."""
    current = await fetch_comment(comment_id)

    if current.is_resolved == resolved:
        outcome = MutationOutcome.ALREADY_RESOLVED if resolved else MutationOutcome.NOT_RESOLVED
        logger.debug("Comment %s already %s", comment_id, "resolved" if resolved else "unresolved")
        return MutationResult(outcome=outcome, comment_id=comment_id, comment=current)

    mutation, query = ("commentResolve", _RESOLVE_MUTATION) if resolved else ("commentUnresolve", _UNRESOLVE_MUTATION)
    try:
        data = await linear_api.graphql(query, {"id": comment_id})
    except linear_api.LinearNotFoundError as exc:
        raise CommentNotFoundError(comment_id) from exc
    changed = _payload_comment(data, mutation, comment_id)
    logger.info("%s comment %s", "Resolved" if resolved else "Unresolved", comment_id)
    outcome = MutationOutcome.RESOLVED if resolved else MutationOutcome.UNRESOLVED
    return MutationResult(outcome=outcome, comment_id=comment_id, comment=changed)


async def resolve_comment(comment_id: str) -> MutationResult:
    """Mark a comment thread resolved by the acting user.

    Resolving an already-resolved thread is a no-op (``ALREADY_RESOLVED``)
    that keeps the original resolver.
    """
    return await _set_resolved(comment_id, resolved=True)


async def unresolve_comment(comment_id: str) -> MutationResult:
    """Clear a comment thread's resolved state (``NOT_RESOLVED`` if it was not resolved)."""
    return await _set_resolved(comment_id, resolved=False)


async def delete_comment(
    comment_id: str,
    *,
    confirmed: bool = False,
    confirm: Callable[[CommentRecord], bool | Awaitable[bool]] | None = None,
) -> MutationResult:
    """Delete a single comment. Replies are not deleted by this call.

    Deletion needs explicit confirmation: either ``confirmed=True`` or a
    positive answer from the interactive *confirm* callback, which receives
    the comment about to be deleted. Without either, the outcome is
    ``CANCELLED`` and nothing is sent to the backend.
    Only the comment's author may delete it.
    """
    current = await fetch_comment(comment_id)
    await _check_owner(current, "delete")

    if not confirmed and confirm is not None:
        answer = confirm(current)
        if not isinstance(answer, bool):
            answer = await answer
        confirmed = answer

    if not confirmed:
        logger.info("Delete of comment %s cancelled", comment_id)
        return MutationResult(outcome=MutationOutcome.CANCELLED, comment_id=comment_id, comment=current)

    try:
        data = await linear_api.graphql(_DELETE_MUTATION, {"id": comment_id})
    except linear_api.LinearNotFoundError as exc:
        raise CommentNotFoundError(comment_id) from exc
    if not (data.get("commentDelete") or {}).get("success"):
        msg = f"Failed to delete comment {comment_id}"
        raise BackendError(msg)

    logger.info("Deleted comment %s", comment_id)
    return MutationResult(outcome=MutationOutcome.DELETED, comment_id=comment_id)
