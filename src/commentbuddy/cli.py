"""CLI for commentbuddy, built on cyclopts (same framework as FastMCP's CLI)."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import TYPE_CHECKING, Annotated, Any, NoReturn

import cyclopts
from cyclopts import Parameter

from commentbuddy import output
from commentbuddy.errors import CommentBuddyError

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from commentbuddy.models import CommentRecord

logger = logging.getLogger(__name__)

app = cyclopts.App(
    name="commentbuddy",
    help="commentbuddy: manage comment threads on Linear issues.",
)

issues_app = cyclopts.App(name="issues", help="Work with Linear issues.")
comments_app = cyclopts.App(name="comments", help="List and add comments on an issue.")
comment_app = cyclopts.App(name="comment", help="Manage a specific comment (edit, resolve, unresolve, delete).")

app.command(issues_app)
issues_app.command(comments_app)
issues_app.command(comment_app)

JsonFlag = Annotated[bool, Parameter(name="--json", negative="", help="Output as JSON")]
QuietFlag = Annotated[bool, Parameter(name="--quiet", negative="", help="Suppress output")]

LOG_LEVEL_ENV = "COMMENTBUDDY_LOG_LEVEL"
_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Runtime helpers
# ---------------------------------------------------------------------------


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)  # noqa: T201
    sys.exit(1)


def configure_logging(level: str | None = None) -> None:
    """Send log records to stderr at *level*, overridden by ``COMMENTBUDDY_LOG_LEVEL``."""
    name = (os.environ.get(LOG_LEVEL_ENV) or level or "WARNING").strip().upper()
    logging.basicConfig(level=getattr(logging, name, logging.WARNING), format=_LOG_FORMAT, stream=sys.stderr, force=True)


def _prepare() -> None:
    """Load ``.commentbuddy.toml`` and set up logging for one invocation."""
    from commentbuddy.config import load_config, set_config  # noqa: PLC0415

    try:
        config, path = load_config()
    except ValueError as exc:
        _fail(str(exc))
    set_config(config, config_path=path)
    configure_logging(config.logging.level)


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run an engine coroutine, turning domain errors into ``Error: ...`` and exit code 1."""
    try:
        return asyncio.run(coro)
    except CommentBuddyError as exc:
        logger.debug("Command failed", exc_info=True)
        _fail(str(exc))


def _body_source(body: str | None) -> Any:
    if body is not None:
        return None
    if sys.stdin.isatty():
        print("Enter the comment body, then press Ctrl-D to finish:", file=sys.stderr)  # noqa: T201
    return sys.stdin


_PREVIEW_LINES = 3


def _confirm_delete(record: CommentRecord) -> bool:
    """Show the comment and ask for a y/N answer on the terminal.

    Everything goes to stderr so ``--json`` output on stdout stays parseable.
    """
    print(f"Comment on {record.issue_identifier or 'issue'}:", file=sys.stderr)  # noqa: T201
    print(file=sys.stderr)  # noqa: T201
    lines = record.body.split("\n")
    for line in lines[:_PREVIEW_LINES]:
        print(f"  {line}", file=sys.stderr)  # noqa: T201
    if len(lines) > _PREVIEW_LINES:
        print("  ...", file=sys.stderr)  # noqa: T201
    print(file=sys.stderr)  # noqa: T201
    print("Delete this comment? [y/N] ", end="", file=sys.stderr, flush=True)  # noqa: T201
    try:
        answer = input()
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


# ---------------------------------------------------------------------------
# issues comments
# ---------------------------------------------------------------------------


@comments_app.default
def list_comments(
    identifier: str,
    *,
    json: JsonFlag = False,
    limit: Annotated[int | None, Parameter(help="Show only the first N top-level threads (replies included)")] = None,
) -> None:
    """List comments on an issue, oldest thread first."""
    from commentbuddy.tools import comments  # noqa: PLC0415

    _prepare()
    result = _run(comments.list_comments(identifier, limit))
    output.print_comment_list(result, as_json=json)


@comments_app.command(name="add")
def add_comment(
    identifier: str,
    body: str | None = None,
    *,
    reply_to: Annotated[str | None, Parameter(name="--reply-to", help='Comment ID, or "last" for the newest thread')] = None,
    json: JsonFlag = False,
    quiet: QuietFlag = False,
) -> None:
    """Add a comment to an issue. Reads the body from stdin when omitted. Prints the comment URL."""
    from commentbuddy.tools import comments  # noqa: PLC0415

    _prepare()
    result = _run(comments.add_comment(identifier, body, reply_to=reply_to, stdin=_body_source(body)))
    output.print_mutation(result, as_json=json, quiet=quiet)


# ---------------------------------------------------------------------------
# issues comment
# ---------------------------------------------------------------------------


@comment_app.command(name="edit")
def edit_comment(
    comment_id: str,
    body: str | None = None,
    *,
    json: JsonFlag = False,
    quiet: QuietFlag = False,
) -> None:
    """Replace a comment's body. Reads the new body from stdin when omitted."""
    from commentbuddy.tools import comments  # noqa: PLC0415

    _prepare()
    result = _run(comments.edit_comment(comment_id, body, stdin=_body_source(body)))
    output.print_mutation(result, as_json=json, quiet=quiet)


@comment_app.command(name="resolve")
def resolve_comment(comment_id: str, *, json: JsonFlag = False, quiet: QuietFlag = False) -> None:
    """Mark a comment thread as resolved."""
    from commentbuddy.tools import comments  # noqa: PLC0415

    _prepare()
    result = _run(comments.resolve_comment(comment_id))
    output.print_mutation(result, as_json=json, quiet=quiet)


@comment_app.command(name="unresolve")
def unresolve_comment(comment_id: str, *, json: JsonFlag = False, quiet: QuietFlag = False) -> None:
    """Reopen a resolved comment thread."""
    from commentbuddy.tools import comments  # noqa: PLC0415

    _prepare()
    result = _run(comments.unresolve_comment(comment_id))
    output.print_mutation(result, as_json=json, quiet=quiet)


@comment_app.command(name="delete")
def delete_comment(
    comment_id: str,
    *,
    yes: Annotated[bool, Parameter(name="--yes", negative="", help="Skip confirmation")] = False,
    json: JsonFlag = False,
    quiet: QuietFlag = False,
) -> None:
    """Delete a comment. Asks for confirmation on a terminal unless --yes is given."""
    from commentbuddy.tools import comments  # noqa: PLC0415

    _prepare()
    confirm = _confirm_delete if sys.stdin.isatty() else None
    result = _run(comments.delete_comment(comment_id, confirmed=yes, confirm=confirm))
    output.print_mutation(result, as_json=json, quiet=quiet)


# ---------------------------------------------------------------------------
# issues get
# ---------------------------------------------------------------------------


@issues_app.command(name="get")
def get_issue(
    identifier: str,
    *,
    comments: Annotated[bool, Parameter(help="Embed comment threads (--no-comments to skip)")] = True,
    json: JsonFlag = False,
) -> None:
    """Show an issue with its first comment threads."""
    from commentbuddy.tools import issues  # noqa: PLC0415

    _prepare()
    details = _run(issues.get_issue(identifier, include_comments=comments))
    output.print_issue(details, as_json=json)


# ---------------------------------------------------------------------------
# Ambient commands
# ---------------------------------------------------------------------------


@app.command(name="serve")
def serve() -> None:
    """Run the commentbuddy MCP server (stdio)."""
    from commentbuddy.server import mcp  # noqa: PLC0415

    configure_logging()
    mcp.run()


@app.command(name="config")
def config_cmd(
    *,
    init: Annotated[bool, Parameter(name="--init", negative="", help="Create .commentbuddy.toml here")] = False,
    clean: Annotated[bool, Parameter(name="--clean", negative="", help="Remove unknown keys")] = False,
) -> None:
    """Show, create, or clean the project configuration file."""
    from commentbuddy.config import clean_config, init_config, load_config  # noqa: PLC0415

    if init and clean:
        _fail("--init and --clean are mutually exclusive")
    if init:
        init_config()
        return
    if clean:
        clean_config()
        return

    try:
        config, path = load_config()
    except ValueError as exc:
        _fail(str(exc))
    print(f"Source: {path or 'defaults'}")  # noqa: T201
    output.print_json(config.model_dump(mode="json"))


@app.command(name="check-env")
def check_env() -> None:
    """Validate LINEAR_* / COMMENTBUDDY_* environment variables and print a diagnostic summary.

    Lists all recognized variables and their current values (masking
    sensitive ones), validates the config file, and checks that the
    credentials are accepted by Linear.
    """
    print("commentbuddy check-env")  # noqa: T201
    print("=" * 40)  # noqa: T201

    # 1. Collect relevant env vars
    env_vars = {k: v for k, v in sorted(os.environ.items()) if k.startswith(_ENV_PREFIXES)}

    if not env_vars:
        print("\nNo LINEAR_* or COMMENTBUDDY_* environment variables set.")  # noqa: T201
    else:
        print(f"\nFound {len(env_vars)} variable(s):\n")  # noqa: T201
        for key, value in env_vars.items():
            display = _mask_value(key, value)
            marker = "" if _is_known_var(key) else "  ⚠️  UNRECOGNIZED"
            print(f"  {key} = {display}{marker}")  # noqa: T201

    # 2. Check for unrecognized vars
    unknown = [k for k in env_vars if not _is_known_var(k)]
    if unknown:
        print(f"\n⚠️  {len(unknown)} unrecognized variable(s) (possible typos):")  # noqa: T201
        for k in unknown:
            print(f"  - {k}")  # noqa: T201

    # 3. Try loading config and validate
    print("\n" + "-" * 40)  # noqa: T201
    print("Validating configuration...\n")  # noqa: T201
    try:
        from commentbuddy.config import load_config, set_config  # noqa: PLC0415

        config, path = load_config()
    except Exception as exc:
        print(f"❌ Configuration error: {exc}")  # noqa: T201
        sys.exit(1)

    set_config(config, config_path=path)
    print(f"  Source: {path or 'defaults'}")  # noqa: T201
    print(f"  API: {config.api.url} (timeout {config.api.timeout_seconds:g}s, page size {config.api.page_size})")  # noqa: T201
    print(f"  Embedded threads: {config.comments.embed_limit or 'all'}")  # noqa: T201
    print()  # noqa: T201

    # 4. Check credentials
    print("-" * 40)  # noqa: T201
    print("Checking Linear credentials...\n")  # noqa: T201
    try:
        from commentbuddy import linear_api  # noqa: PLC0415

        viewer = asyncio.run(linear_api.get_viewer())
        print(f"  ✅ Authenticated as: {viewer.get('name') or viewer.get('email') or viewer.get('id')}")  # noqa: T201
    except Exception as exc:
        print(f"  ❌ Linear API error: {exc}")  # noqa: T201

    print()  # noqa: T201


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_MASK_MIN_LENGTH = 4
_TRUNCATE_LENGTH = 80

_ENV_PREFIXES = ("LINEAR_", "COMMENTBUDDY_")

_KNOWN_ENV_VARS = frozenset({
    "LINEAR_API_KEY",
    "LINEAR_OAUTH_TOKEN",
    LOG_LEVEL_ENV,
})


def _is_known_var(key: str) -> bool:
    """Check if a variable is one commentbuddy reads."""
    return key in _KNOWN_ENV_VARS


def _mask_value(key: str, value: str) -> str:
    """Mask sensitive values."""
    sensitive_keywords = ("token", "secret", "key", "password")
    if any(kw in key.lower() for kw in sensitive_keywords):
        if len(value) > _MASK_MIN_LENGTH:
            return value[:2] + "*" * (len(value) - _MASK_MIN_LENGTH) + value[-2:]
        return "****"
    if len(value) > _TRUNCATE_LENGTH:
        return value[: _TRUNCATE_LENGTH - 3] + "..."
    return value


def main() -> None:
    """Console-script entry point."""
    app()
