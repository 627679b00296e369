"""In-memory stand-in for the Linear GraphQL API.

Answers the operations commentbuddy issues (issue lookup, paginated comment
listing, single comment lookup and the comment mutations) from a dict of
records, so engine behaviour can be tested end-to-end without HTTP.
Install it with ``mocker.patch("commentbuddy.linear_api.graphql", fake.graphql)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from commentbuddy import linear_api

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

VIEWER = {"id": "user-viewer", "name": "Vera Viewer", "email": "vera@example.com"}
OTHER_USER = {"id": "user-other", "name": "Otto Other", "email": "otto@example.com"}


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


@dataclass
class FakeLinear:
    """A single-workspace fake backend. Every call is recorded in ``calls``."""

    issues: dict[str, dict[str, Any]] = field(default_factory=dict)
    comments: dict[str, dict[str, Any]] = field(default_factory=dict)
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    viewer: dict[str, Any] = field(default_factory=lambda: dict(VIEWER))
    _next_id: int = 0

    # -- setup -------------------------------------------------------------

    def add_issue(self, identifier: str = "ENG-1", title: str = "Fix the widget") -> dict[str, Any]:
        issue = {
            "id": f"issue-{identifier.lower()}",
            "identifier": identifier,
            "title": title,
            "url": f"https://linear.app/acme/issue/{identifier}",
            "description": "The widget is broken.",
            "priority": 2,
            "createdAt": _iso(BASE_TIME - timedelta(days=3)),
            "updatedAt": _iso(BASE_TIME - timedelta(days=1)),
            "state": {"name": "In Progress"},
            "assignee": {"name": "Vera Viewer"},
            "team": {"key": identifier.split("-")[0]},
            "labels": {"nodes": [{"name": "bug"}]},
        }
        self.issues[identifier] = issue
        return issue

    def add_comment(  # noqa: PLR0913
        self,
        comment_id: str,
        *,
        issue: str = "ENG-1",
        body: str = "A comment",
        minutes: int = 0,
        parent: str | None = None,
        user: dict[str, Any] | None = None,
        bot: str | None = None,
        resolved_by: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Seed a comment created *minutes* after BASE_TIME, written by the viewer unless *user* says otherwise."""
        created = _iso(BASE_TIME + timedelta(minutes=minutes))
        record = {
            "id": comment_id,
            "issueIdentifier": issue,
            "body": body,
            "createdAt": created,
            "updatedAt": created,
            "editedAt": None,
            "url": f"https://linear.app/acme/issue/{issue}#comment-{comment_id}",
            "parentId": parent,
            "user": None if bot else (user or dict(VIEWER)),
            "botActor": {"name": bot} if bot else None,
            "resolvedAt": created if resolved_by else None,
            "resolvingUser": resolved_by,
        }
        self.comments[comment_id] = record
        return record

    # -- inspection --------------------------------------------------------

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]

    def mutations(self) -> list[str]:
        return [op for op in self.ops() if op.startswith("comment") and op not in {"comment", "comments"}]

    # -- GraphQL entry point -----------------------------------------------

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:  # noqa: RUF029
        variables = variables or {}
        for marker, op, handler in (
            ("commentCreate(", "commentCreate", self._create),
            ("commentUpdate(", "commentUpdate", self._update),
            ("commentUnresolve(", "commentUnresolve", self._unresolve),
            ("commentResolve(", "commentResolve", self._resolve),
            ("commentDelete(", "commentDelete", self._delete),
            ("comment(id:", "comment", self._comment),
            ("comments(first:", "comments", self._issue_comments),
            ("issue(id:", "issue", self._issue),
            ("viewer", "viewer", self._viewer),
        ):
            if marker in query:
                self.calls.append((op, variables))
                return handler(variables)
        msg = f"Unhandled query: {query}"
        raise AssertionError(msg)

    # -- helpers -----------------------------------------------------------

    def _find_issue(self, key: str) -> dict[str, Any]:
        for issue in self.issues.values():
            if key in {issue["identifier"], issue["id"]}:
                return issue
        msg = "Entity not found: Issue"
        raise linear_api.LinearNotFoundError(msg, status_code=404)

    def _find_comment(self, comment_id: str) -> dict[str, Any]:
        record = self.comments.get(comment_id)
        if record is None:
            msg = "Entity not found: Comment"
            raise linear_api.LinearNotFoundError(msg, status_code=404)
        return record

    def _tick(self) -> str:
        self._next_id += 1
        return _iso(BASE_TIME + timedelta(days=1, minutes=self._next_id))

    @staticmethod
    def _node(record: dict[str, Any], *, with_issue: bool = False) -> dict[str, Any]:
        node = {k: v for k, v in record.items() if k not in {"issueIdentifier", "parentId"}}
        node["parent"] = {"id": record["parentId"]} if record["parentId"] else None
        if with_issue:
            node["issue"] = {"identifier": record["issueIdentifier"]}
        return node

    # -- handlers ----------------------------------------------------------

    def _viewer(self, _variables: dict[str, Any]) -> dict[str, Any]:
        return {"viewer": self.viewer}

    def _issue(self, variables: dict[str, Any]) -> dict[str, Any]:
        return {"issue": self._find_issue(variables["id"])}

    def _issue_comments(self, variables: dict[str, Any]) -> dict[str, Any]:
        issue = self._find_issue(variables["id"])
        records = [c for c in self.comments.values() if c["issueIdentifier"] == issue["identifier"]]
        start = int(variables.get("cursor") or 0)
        page = records[start : start + variables["first"]]
        end = start + len(page)
        return {
            "issue": {
                **{k: issue[k] for k in ("id", "identifier", "title", "url")},
                "comments": {
                    "pageInfo": {"hasNextPage": end < len(records), "endCursor": str(end) if page else None},
                    "nodes": [self._node(c) for c in page],
                },
            }
        }

    def _comment(self, variables: dict[str, Any]) -> dict[str, Any]:
        return {"comment": self._node(self._find_comment(variables["id"]), with_issue=True)}

    def _create(self, variables: dict[str, Any]) -> dict[str, Any]:
        data = variables["input"]
        issue = self._find_issue(data["issueId"])
        parent = data.get("parentId")
        if parent:
            self._find_comment(parent)
        self._next_id += 1
        comment_id = f"new-{self._next_id}"
        created = self._tick()
        record = {
            "id": comment_id,
            "issueIdentifier": issue["identifier"],
            "body": data["body"],
            "createdAt": created,
            "updatedAt": created,
            "editedAt": None,
            "url": f"{issue['url']}#comment-{comment_id}",
            "parentId": parent,
            "user": dict(self.viewer),
            "botActor": None,
            "resolvedAt": None,
            "resolvingUser": None,
        }
        self.comments[comment_id] = record
        return {"commentCreate": {"success": True, "comment": self._node(record)}}

    def _update(self, variables: dict[str, Any]) -> dict[str, Any]:
        record = self._find_comment(variables["id"])
        now = self._tick()
        record.update(body=variables["input"]["body"], updatedAt=now, editedAt=now)
        return {"commentUpdate": {"success": True, "comment": self._node(record)}}

    def _resolve(self, variables: dict[str, Any]) -> dict[str, Any]:
        record = self._find_comment(variables["id"])
        record.update(resolvingUser=dict(self.viewer), resolvedAt=self._tick())
        return {"commentResolve": {"success": True, "comment": self._node(record)}}

    def _unresolve(self, variables: dict[str, Any]) -> dict[str, Any]:
        record = self._find_comment(variables["id"])
        record.update(resolvingUser=None, resolvedAt=None)
        return {"commentUnresolve": {"success": True, "comment": self._node(record)}}

    def _delete(self, variables: dict[str, Any]) -> dict[str, Any]:
        self._find_comment(variables["id"])
        del self.comments[variables["id"]]
        return {"commentDelete": {"success": True}}
