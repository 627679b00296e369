"""Text and JSON rendering for CLI output.

Rendering never changes results: every function here takes an already
computed model and only decides how it looks on stdout.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from commentbuddy.models import MutationOutcome
from commentbuddy.threads import count_comments

if TYPE_CHECKING:
    from commentbuddy.models import (
        CollapseHint,
        CommentList,
        CommentNode,
        CommentRecord,
        IssueDetails,
        MutationResult,
    )

_SECTION_RULE = "━" * 50


def format_relative_time(value: datetime, now: datetime | None = None) -> str:
    """Human-friendly age of a timestamp, falling back to a date after a week."""
    now = now or datetime.now(UTC)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    seconds = (now - value).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"
    if hours < 24:
        return f"{hours} hour{'' if hours == 1 else 's'} ago"
    if days < 7:
        return f"{days} day{'' if days == 1 else 's'} ago"
    return value.date().isoformat()


def author_display(comment: CommentRecord) -> str:
    if comment.bot_actor is not None:
        return f"Bot: {comment.bot_actor.name}"
    if comment.user is not None and comment.user.name:
        return comment.user.name
    return "Unknown"


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def format_comment_tree(
    nodes: list[CommentNode],
    collapsed: dict[str, CollapseHint] | None = None,
    *,
    now: datetime | None = None,
    depth: int = 0,
) -> list[str]:
    """Render a comment forest as indented text lines.

    Top-level nodes with a collapse hint render as a single summary line and
    their replies are not expanded.
    """
    collapsed = collapsed or {}
    indent = "  " * depth
    lines: list[str] = []

    for node in nodes:
        author = author_display(node)
        age = format_relative_time(node.created_at, now)
        hint = collapsed.get(node.id) if depth == 0 else None

        if hint is not None:
            noun = "reply" if hint.reply_count == 1 else "replies"
            replies = f" (+ {hint.reply_count} {noun})" if hint.reply_count else ""
            lines.extend((f'{indent}✓ {author} · {age} "{hint.preview}"{replies}', ""))
            continue

        tags = ""
        if depth > 0:
            tags += " (reply)"
        if node.edited_at is not None:
            tags += " (edited)"
        if node.is_resolved:
            tags += " [resolved]"
        lines.append(f"{indent}--- {author} · {age}{tags} ---")
        lines.extend(f"{indent}{line}" for line in node.body.rstrip().splitlines())

        if node.children:
            lines.append("")
            lines.extend(format_comment_tree(node.children, now=now, depth=depth + 1))

        if depth == 0:
            lines.append("")

    return lines


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))  # noqa: T201


def print_comment_list(result: CommentList, *, as_json: bool = False, now: datetime | None = None) -> None:
    """Print the threads of an issue, oldest first."""
    if as_json:
        print_json(result.to_json_dict())
        return

    lines = [""]
    if result.issue is not None:
        lines.extend((f"{result.issue.identifier}: {result.issue.title}", result.issue.url, ""))

    if not result.comments:
        lines.append("No comments")
        print("\n".join(lines))  # noqa: T201
        return

    lines.extend((f"{_plural(result.total_count, 'comment')}:", ""))
    lines.extend(format_comment_tree(result.comments, result.collapsed, now=now))
    if result.omitted_count:
        lines.append(f"... {_plural(result.omitted_count, 'more thread')} not shown (use --limit to see more)")
    print("\n".join(lines))  # noqa: T201


def _format_date(value: datetime | None) -> str:
    return value.date().isoformat() if value else "-"


def print_issue(details: IssueDetails, *, as_json: bool = False, now: datetime | None = None) -> None:
    """Print issue details followed by the embedded comment threads, if any."""
    if as_json:
        print_json(details.to_json_dict())
        return

    lines = [f"{details.identifier}: {details.title}", ""]
    if details.state:
        lines.append(f"State:     {details.state}")
    if details.priority is not None:
        lines.append(f"Priority:  {details.priority}")
    if details.assignee:
        lines.append(f"Assignee:  {details.assignee}")
    if details.team:
        lines.append(f"Team:      {details.team}")
    if details.labels:
        lines.append(f"Labels:    {', '.join(details.labels)}")
    lines.extend((f"Created:   {_format_date(details.created_at)}", f"Updated:   {_format_date(details.updated_at)}"))

    if details.description:
        lines.extend(("", "Description:", details.description.rstrip()))
    lines.extend(("", f"URL: {details.url}"))

    if details.comments is not None:
        lines.extend(("", _SECTION_RULE))
        if not details.comments:
            lines.append("No comments")
        else:
            total = details.total_comments or 0
            lines.extend((f"Comments ({total}):", ""))
            lines.extend(format_comment_tree(details.comments, details.collapsed, now=now))
            if details.omitted_count:
                shown = count_comments(details.comments)
                remaining = total - shown
                lines.extend((
                    f"... {_plural(remaining, 'more comment')}",
                    f"Run 'commentbuddy issues comments {details.identifier}' to see all",
                ))

    print("\n".join(lines))  # noqa: T201


# -- Mutation results ---------------------------------------------------------

_STATUS_TEXT = {
    MutationOutcome.RESOLVED: "Resolved comment",
    MutationOutcome.ALREADY_RESOLVED: "Comment is already resolved",
    MutationOutcome.UNRESOLVED: "Unresolved comment",
    MutationOutcome.NOT_RESOLVED: "Comment is not resolved",
    MutationOutcome.UPDATED: "Updated comment",
}


def mutation_json(result: MutationResult) -> dict[str, Any]:
    """JSON document for a mutation outcome."""
    outcome = result.outcome
    comment = result.comment
    if outcome is MutationOutcome.DELETED:
        return {"success": True, "deleted": result.comment_id}
    if outcome is MutationOutcome.CANCELLED:
        return {"success": False, "deleted": None, "cancelled": True}
    if outcome is MutationOutcome.UNCHANGED:
        return {"id": result.comment_id, "outcome": outcome.value, "url": comment.url if comment else ""}
    if outcome in {
        MutationOutcome.RESOLVED,
        MutationOutcome.ALREADY_RESOLVED,
        MutationOutcome.UNRESOLVED,
        MutationOutcome.NOT_RESOLVED,
    }:
        resolving_user = comment.resolving_user if comment else None
        return {
            "id": result.comment_id,
            "resolvingUser": resolving_user.to_json_dict() if resolving_user else None,
            "url": comment.url if comment else "",
            "outcome": outcome.value,
        }
    return comment.to_json_dict() if comment else {"id": result.comment_id}


def mutation_text(result: MutationResult) -> str:
    """One-line text notice for a mutation outcome."""
    outcome = result.outcome
    url = result.comment.url if result.comment else ""
    if outcome is MutationOutcome.CREATED:
        return url
    if outcome is MutationOutcome.UNCHANGED:
        return "No changes to apply"
    if outcome is MutationOutcome.DELETED:
        return "Comment deleted"
    if outcome is MutationOutcome.CANCELLED:
        return "Delete cancelled"
    return f"{_STATUS_TEXT[outcome]}: {url}"  # type: ignore[index]


def print_mutation(result: MutationResult, *, as_json: bool = False, quiet: bool = False) -> None:
    """Print a mutation outcome. ``quiet`` wins over ``as_json``, except for cancellation."""
    if result.outcome is MutationOutcome.CANCELLED and not as_json:
        print(mutation_text(result))  # noqa: T201
        return
    if quiet:
        return
    if as_json:
        print_json(mutation_json(result))
        return
    print(mutation_text(result))  # noqa: T201
