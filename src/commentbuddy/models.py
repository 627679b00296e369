"""Pydantic models for commentbuddy."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Dump using the camelCase wire names, as emitted by ``--json``."""
        return self.model_dump(mode="json", by_alias=True)


class CommentUser(_CamelModel):
    """A user that authored or resolved a comment."""

    id: str = Field(description="Backend user ID")
    name: str = Field(default="", description="Display name")
    email: str | None = Field(default=None, description="Email address, when the backend exposes it")


class BotActor(_CamelModel):
    """An integration that posted a comment on behalf of no user."""

    name: str = Field(default="", description="Integration name (e.g. GitHub, Slack)")


class CommentRecord(_CamelModel):
    """A comment as stored by the backend.

    ``id``, ``created_at`` and ``parent_id`` are fixed at creation time.
    ``body`` changes through edit, ``resolving_user`` through resolve/unresolve.
    """

    id: str = Field(description="Server-assigned comment ID")
    body: str = Field(default="", description="Markdown body")
    created_at: datetime = Field(description="Creation timestamp; defines thread ordering")
    updated_at: datetime | None = Field(default=None, description="Last modification timestamp")
    edited_at: datetime | None = Field(default=None, description="Set when the body was edited")
    url: str = Field(default="", description="Web URL of the comment")
    user: CommentUser | None = Field(default=None, description="Author; None for bot comments")
    bot_actor: BotActor | None = Field(default=None, description="Integration author, if any")
    parent_id: str | None = Field(default=None, description="ID of the comment this one replies to")
    resolving_user: CommentUser | None = Field(default=None, description="Set when the thread is resolved")
    resolved_at: datetime | None = Field(default=None, description="When the thread was resolved")
    issue_identifier: str | None = Field(
        default=None,
        description="Owning issue identifier (only when the comment was fetched individually)",
        exclude=True,
    )

    @property
    def is_resolved(self) -> bool:
        return self.resolving_user is not None


class CommentNode(CommentRecord):
    """A comment plus its ordered replies. Rebuilt from scratch on every fetch."""

    children: list[CommentNode] = Field(default_factory=list, description="Replies, oldest first")

    @classmethod
    def from_record(cls, record: CommentRecord) -> CommentNode:
        return cls.model_validate({**dict(record), "children": []})


class IssueRef(_CamelModel):
    """Minimal issue identity attached to comment listings."""

    id: str = Field(description="Backend issue UUID")
    identifier: str = Field(description="Human identifier, e.g. ENG-123")
    title: str = Field(default="", description="Issue title")
    url: str = Field(default="", description="Web URL of the issue")

    def to_json_dict(self) -> dict[str, Any]:
        return {"identifier": self.identifier, "title": self.title, "url": self.url}


class IssueComments(BaseModel):
    """Flat fetch result: one issue and every comment currently stored on it."""

    issue: IssueRef
    comments: list[CommentRecord] = Field(default_factory=list)


class CollapseHint(BaseModel):
    """Presentation hint for a resolved top-level thread."""

    preview: str = Field(description="First line of the body, clipped")
    reply_count: int = Field(default=0, description="Total number of descendants in the thread")


class TruncatedTree(BaseModel):
    """Top-level threads kept after applying a breadth limit."""

    threads: list[CommentNode] = Field(default_factory=list, description="Kept top-level nodes, full depth")
    omitted_count: int = Field(default=0, description="Top-level threads dropped by the limit")
    collapsed: dict[str, CollapseHint] = Field(
        default_factory=dict, description="Collapse hints for resolved kept threads, keyed by comment ID"
    )


class CommentList(BaseModel):
    """Result of listing the comments of an issue."""

    issue: IssueRef | None = Field(default=None, description="The issue the comments belong to")
    comments: list[CommentNode] = Field(default_factory=list, description="Kept top-level threads")
    total_count: int = Field(default=0, description="All comments on the issue, before truncation")
    omitted_count: int = Field(default=0, description="Top-level threads hidden by the limit")
    collapsed: dict[str, CollapseHint] = Field(default_factory=dict, description="Collapse hints by comment ID")
    error: str | None = Field(default=None, description="Error message if the request failed")

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "issue": self.issue.to_json_dict() if self.issue else None,
            "comments": [node.to_json_dict() for node in self.comments],
            "totalCount": self.total_count,
        }


class MutationOutcome(StrEnum):
    """What a mutating operation did. Each variant is rendered exactly once."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    RESOLVED = "resolved"
    ALREADY_RESOLVED = "already_resolved"
    UNRESOLVED = "unresolved"
    NOT_RESOLVED = "not_resolved"
    DELETED = "deleted"
    CANCELLED = "cancelled"


class OutcomeKind(StrEnum):
    """Coarse classification of a mutation outcome."""

    CHANGED = "changed"
    NOOP = "noop"
    CANCELLED = "cancelled"


_NOOP_OUTCOMES = frozenset({MutationOutcome.UNCHANGED, MutationOutcome.ALREADY_RESOLVED, MutationOutcome.NOT_RESOLVED})


class MutationResult(BaseModel):
    """Tagged result of add/edit/resolve/unresolve/delete."""

    outcome: MutationOutcome | None = Field(default=None, description="What happened; None only when error is set")
    comment_id: str = Field(default="", description="ID of the comment the operation targeted")
    comment: CommentRecord | None = Field(
        default=None, description="Canonical record after the operation (None after delete/cancel)"
    )
    error: str | None = Field(default=None, description="Error message if the request failed")

    @property
    def kind(self) -> OutcomeKind | None:
        if self.outcome is None:
            return None
        if self.outcome is MutationOutcome.CANCELLED:
            return OutcomeKind.CANCELLED
        if self.outcome in _NOOP_OUTCOMES:
            return OutcomeKind.NOOP
        return OutcomeKind.CHANGED

    @property
    def changed(self) -> bool:
        return self.kind is OutcomeKind.CHANGED


class IssueDetails(_CamelModel):
    """An issue with its embedded, breadth-limited comment threads."""

    id: str = Field(description="Backend issue UUID")
    identifier: str = Field(description="Human identifier, e.g. ENG-123")
    title: str = Field(default="", description="Issue title")
    description: str | None = Field(default=None, description="Markdown description")
    url: str = Field(default="", description="Web URL of the issue")
    state: str | None = Field(default=None, description="Workflow state name")
    priority: int | None = Field(default=None, description="Priority (0 = none, 1 = urgent … 4 = low)")
    assignee: str | None = Field(default=None, description="Assignee display name")
    team: str | None = Field(default=None, description="Team key")
    labels: list[str] = Field(default_factory=list, description="Label names")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")
    comments: list[CommentNode] | None = Field(default=None, description="Embedded top-level threads")
    total_comments: int | None = Field(default=None, description="All comments on the issue")
    omitted_count: int = Field(default=0, exclude=True)
    collapsed: dict[str, CollapseHint] = Field(default_factory=dict, exclude=True)

    def to_json_dict(self) -> dict[str, Any]:
        exclude = set() if self.comments is not None else {"comments", "total_comments"}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)


class IssueResult(BaseModel):
    """MCP wrapper for ``get_issue``."""

    issue: IssueDetails | None = None
    error: str | None = Field(default=None, description="Error message if the request failed")


class ConfigInfo(BaseModel):
    """Active commentbuddy configuration with metadata."""

    config: dict = Field(description="Full configuration as a dictionary")
    source: str = Field(default="defaults", description="Path of the loaded .commentbuddy.toml, or 'defaults'")
    explanation: str = Field(default="", description="Human-readable summary of the active settings")
