"""Error taxonomy for the comment thread engine.

Every error carries a stable, greppable message so callers (and scripts
wrapping the CLI) can match on it.
"""

from __future__ import annotations


class CommentBuddyError(Exception):
    """Base class for all errors surfaced by commentbuddy."""


class EmptyBodyError(CommentBuddyError):
    """Raised when a comment body is missing or whitespace-only."""

    def __init__(self) -> None:
        super().__init__("Comment body cannot be empty")


class CommentNotFoundError(CommentBuddyError):
    """Raised when a comment id does not exist on the backend."""

    def __init__(self, comment_id: str) -> None:
        super().__init__(f"Comment not found: {comment_id}")
        self.comment_id = comment_id


class IssueNotFoundError(CommentBuddyError):
    """Raised when an issue identifier does not resolve to an issue."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Issue '{identifier}' not found")
        self.identifier = identifier


class TargetNotFoundError(CommentBuddyError):
    """Raised when an explicit reply target is not among the issue's comments."""

    def __init__(self, target: str, identifier: str = "") -> None:
        where = f" on issue {identifier}" if identifier else ""
        super().__init__(f"Reply target comment not found{where}: {target}")
        self.target = target


class NoCommentsToReplyToError(CommentBuddyError):
    """Raised when replying to the most recent comment of an issue without comments."""

    def __init__(self, identifier: str = "") -> None:
        msg = "No comments to reply to"
        if identifier:
            msg = f"{msg} on issue {identifier}"
        super().__init__(msg)


class BackendError(CommentBuddyError):
    """Opaque wrapper for any transport or API failure."""


class NotCommentOwnerError(CommentBuddyError):
    """Raised when the acting user tries to edit or delete someone else's comment."""

    def __init__(self, action: str, comment_id: str = "") -> None:
        super().__init__(f"You can only {action} your own comments")
        self.action = action
        self.comment_id = comment_id
