"""FastMCP server for commentbuddy.

Exposes tools for reading and managing comment threads on Linear issues.
Authentication comes from ``LINEAR_API_KEY`` or ``LINEAR_OAUTH_TOKEN``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Annotated

from fastmcp import FastMCP
from fastmcp.server.lifespan import lifespan
from fastmcp.server.middleware.error_handling import ErrorHandlingMiddleware
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.server.middleware.timing import TimingMiddleware
from pydantic import Field

from commentbuddy import linear_api
from commentbuddy.config import get_config, get_config_path, load_config, set_config
from commentbuddy.errors import (
    CommentNotFoundError,
    EmptyBodyError,
    IssueNotFoundError,
    NoCommentsToReplyToError,
    NotCommentOwnerError,
    TargetNotFoundError,
)
from commentbuddy.models import CommentList, ConfigInfo, IssueResult, MutationResult
from commentbuddy.tools import comments, issues

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@lifespan
async def load_settings(server: FastMCP) -> AsyncIterator[dict[str, object] | None]:  # noqa: ARG001, RUF029
    """Load configuration and check for Linear credentials on server startup."""
    config, path = load_config()
    set_config(config, config_path=path)
    check_credentials()
    yield {}


mcp = FastMCP(
    "commentbuddy",
    lifespan=load_settings,
    instructions="""\
Comment thread manager for Linear issues: list, add, reply to, edit, resolve
and delete issue comments.

## Reading threads

`list_comments(identifier)` returns top-level threads oldest first, each with
its full reply tree in `children`. `total_count` counts every comment on the
issue, even when `limit` hides some threads. Resolved threads are listed under
`collapsed` with a one-line preview; expand them only when the user asks.

`get_issue(identifier)` returns issue details with the first few threads
embedded (see `show_config` for the embed limit).

## Replying

Pass `reply_to` to `add_comment` with either a comment ID or `"last"`.
`"last"` means the newest **top-level** comment, resolved or not; a reply is
never picked as "last". An ID that is not a comment on the issue is rejected.
Replying to a reply adds to that thread: the new comment is parented to the
thread's top-level comment.

## Idempotent operations

`resolve_comment`, `unresolve_comment` and `edit_comment` report no-ops in
`outcome` (`already_resolved`, `not_resolved`, `unchanged`). These are
successes; do not retry them.

## Deleting

`delete_comment` only deletes when `confirmed=true`. Ask the user before
confirming. Replies of a deleted comment are not deleted. `edit_comment` and
`delete_comment` only work on comments written by the authenticated user.
""",
)


def _recovery_error(  # noqa: PLR0911
    exc: Exception,
    *,
    tool_name: str,
    identifier: str | None = None,
    comment_id: str | None = None,
) -> str:
    """Build an actionable error message with recovery hints.

    Classifies errors into categories and suggests specific next steps
    so agents can self-correct instead of retrying blindly.
    """
    msg = str(exc)

    if isinstance(exc, linear_api.LinearAuthError):
        return f"{tool_name} failed: {msg}"

    if isinstance(exc, EmptyBodyError):
        return f"{tool_name} failed: {msg}. Pass a non-empty body."

    if isinstance(exc, NoCommentsToReplyToError):
        return f"{tool_name} failed: {msg}. Call add_comment without reply_to to start a thread."

    if isinstance(exc, TargetNotFoundError):
        return f"{tool_name} failed: {msg}. Call list_comments('{identifier}') to find a valid comment ID."

    if isinstance(exc, NotCommentOwnerError):
        return f"{tool_name} failed: {msg}. Only the author can change this comment; add a reply with add_comment instead."

    if isinstance(exc, IssueNotFoundError):
        return f"{tool_name} failed: {msg}. Verify the issue identifier (e.g. ENG-123)."

    if isinstance(exc, CommentNotFoundError):
        target = f"'{comment_id}'" if comment_id else "The comment"
        return f"{tool_name} failed: {msg}. {target} may have been deleted; call list_comments to get current comment IDs."

    if isinstance(exc, linear_api.LinearError) and "rate limit" in msg.lower():
        return f"{tool_name} failed: Linear API rate limit hit. Wait 60 seconds and retry."

    if isinstance(exc, linear_api.LinearError):
        return f"{tool_name} failed: Linear API error: {msg}. This may be a transient issue; retry once."

    return f"{tool_name} failed: {msg}."


mcp.add_middleware(ErrorHandlingMiddleware(include_traceback=True, transform_errors=True))
mcp.add_middleware(TimingMiddleware())
mcp.add_middleware(LoggingMiddleware(include_payloads=True, max_payload_length=500))


@mcp.tool(tags={"query"})
async def list_comments(
    identifier: str,
    limit: Annotated[int | None, Field(ge=1)] = None,
) -> CommentList:
    """List comment threads on a Linear issue, oldest first.

    Args:
        identifier: Issue identifier (e.g. "ENG-123") or UUID.
        limit: Keep only the first N top-level threads (replies are always kept in full).

    Returns:
        Threads with nested replies, total comment count, and collapse hints for resolved threads.
    """
    try:
        return await comments.list_comments(identifier, limit)
    except Exception as exc:
        logger.exception("list_comments failed for %s", identifier)
        return CommentList(error=_recovery_error(exc, tool_name="list_comments", identifier=identifier))
    except asyncio.CancelledError:
        logger.warning("list_comments cancelled for %s", identifier)
        return CommentList(error="Cancelled")


@mcp.tool(tags={"command"})
async def add_comment(
    identifier: str,
    body: str,
    reply_to: str | None = None,
) -> MutationResult:
    """Add a comment to a Linear issue, optionally as a reply.

    Args:
        identifier: Issue identifier (e.g. "ENG-123") or UUID.
        body: Markdown body of the comment.
        reply_to: Comment ID to reply to, or "last" for the newest top-level comment.
    """
    try:
        return await comments.add_comment(identifier, body, reply_to=reply_to)
    except Exception as exc:
        logger.exception("add_comment failed for %s", identifier)
        return MutationResult(error=_recovery_error(exc, tool_name="add_comment", identifier=identifier))


@mcp.tool(tags={"command"})
async def edit_comment(comment_id: str, body: str) -> MutationResult:
    """Replace the body of a comment. An identical body is reported as ``unchanged``.

    Args:
        comment_id: The comment ID.
        body: New markdown body.
    """
    try:
        return await comments.edit_comment(comment_id, body)
    except Exception as exc:
        logger.exception("edit_comment failed for %s", comment_id)
        return MutationResult(
            comment_id=comment_id, error=_recovery_error(exc, tool_name="edit_comment", comment_id=comment_id)
        )


@mcp.tool(tags={"command"})
async def resolve_comment(comment_id: str) -> MutationResult:
    """Mark a comment thread as resolved. Already-resolved threads are left untouched.

    Args:
        comment_id: ID of the thread's top-level comment.
    """
    try:
        return await comments.resolve_comment(comment_id)
    except Exception as exc:
        logger.exception("resolve_comment failed for %s", comment_id)
        return MutationResult(
            comment_id=comment_id, error=_recovery_error(exc, tool_name="resolve_comment", comment_id=comment_id)
        )


@mcp.tool(tags={"command"})
async def unresolve_comment(comment_id: str) -> MutationResult:
    """Reopen a resolved comment thread.

    Args:
        comment_id: ID of the thread's top-level comment.
    """
    try:
        return await comments.unresolve_comment(comment_id)
    except Exception as exc:
        logger.exception("unresolve_comment failed for %s", comment_id)
        return MutationResult(
            comment_id=comment_id, error=_recovery_error(exc, tool_name="unresolve_comment", comment_id=comment_id)
        )


@mcp.tool(tags={"command"})
async def delete_comment(comment_id: str, confirmed: bool = False) -> MutationResult:  # noqa: FBT001, FBT002
    """Delete a single comment (replies are kept).

    Nothing is deleted unless ``confirmed`` is true; the outcome is then ``cancelled``.

    Args:
        comment_id: The comment ID.
        confirmed: Set to true once the user has approved the deletion.
    """
    try:
        return await comments.delete_comment(comment_id, confirmed=confirmed)
    except Exception as exc:
        logger.exception("delete_comment failed for %s", comment_id)
        return MutationResult(
            comment_id=comment_id, error=_recovery_error(exc, tool_name="delete_comment", comment_id=comment_id)
        )


@mcp.tool(tags={"query"})
async def get_issue(
    identifier: str,
    include_comments: bool = True,  # noqa: FBT001, FBT002
    limit: Annotated[int | None, Field(ge=0)] = None,
) -> IssueResult:
    """Get a Linear issue with its first comment threads embedded.

    Args:
        identifier: Issue identifier (e.g. "ENG-123") or UUID.
        include_comments: Embed comment threads and the total comment count.
        limit: Threads to embed (0 = all). Defaults to the configured embed limit.
    """
    try:
        details = await issues.get_issue(identifier, include_comments=include_comments, limit=limit)
        return IssueResult(issue=details)
    except Exception as exc:
        logger.exception("get_issue failed for %s", identifier)
        return IssueResult(error=_recovery_error(exc, tool_name="get_issue", identifier=identifier))
    except asyncio.CancelledError:
        logger.warning("get_issue cancelled for %s", identifier)
        return IssueResult(error="Cancelled")


@mcp.tool(tags={"discovery"})
def show_config() -> ConfigInfo:
    """Show the active commentbuddy configuration.

    Configuration is loaded from ``.commentbuddy.toml`` at server startup.
    """
    config = get_config()
    path = get_config_path()

    limit = config.comments.list_limit
    parts = [
        f"get_issue embeds {config.comments.embed_limit or 'all'} thread(s).",
        f"list_comments shows {limit if limit and limit > 0 else 'all'} thread(s) by default.",
        f"Collapsed previews are clipped to {config.comments.preview_length} characters.",
        f"API endpoint: {config.api.url}.",
    ]

    return ConfigInfo(
        config=config.model_dump(mode="json"),
        source=str(path) if path else "defaults",
        explanation=" ".join(parts),
    )


def check_credentials() -> None:
    """Log whether Linear credentials are available. Missing credentials are reported per tool call."""
    try:
        linear_api.get_auth_header()
        logger.info("Linear credentials found")
    except linear_api.LinearAuthError:
        logger.warning("No Linear credentials: set LINEAR_API_KEY or LINEAR_OAUTH_TOKEN")
