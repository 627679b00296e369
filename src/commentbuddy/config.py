"""Project configuration.

Loads ``.commentbuddy.toml`` from the project root (walking up to ``.git``),
validates with Pydantic, and provides sensible defaults so zero-config still works.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".commentbuddy.toml"

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class CommentsConfig(BaseModel):
    """Display policy for comment threads."""

    model_config = ConfigDict(extra="ignore")

    embed_limit: int = Field(
        default=3,
        ge=0,
        description="Top-level threads embedded in 'issues get' (0 = all)",
    )
    list_limit: int | None = Field(
        default=None,
        description="Default --limit for 'issues comments' (unset or <= 0 = all)",
    )
    preview_length: int = Field(
        default=60,
        ge=10,
        description="Maximum characters of the preview shown for collapsed resolved threads",
    )


class ApiConfig(BaseModel):
    """Backend connection settings."""

    model_config = ConfigDict(extra="ignore")

    url: str = Field(default="https://api.linear.app/graphql", min_length=1, description="GraphQL endpoint")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    page_size: int = Field(default=100, ge=1, le=250, description="Comments fetched per GraphQL page")


class LoggingConfig(BaseModel):
    """Logging settings for the CLI."""

    model_config = ConfigDict(extra="ignore")

    level: str = Field(default="WARNING", description="Root log level (DEBUG, INFO, WARNING, ERROR)")

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        upper = value.strip().upper()
        if upper not in _LOG_LEVELS:
            msg = f"Unknown log level {value!r}. Expected one of: {', '.join(sorted(_LOG_LEVELS))}"
            raise ValueError(msg)
        return upper


class Config(BaseModel):
    """Top-level commentbuddy configuration."""

    model_config = ConfigDict(extra="ignore")

    comments: CommentsConfig = Field(default_factory=CommentsConfig, description="Comment display policy")
    api: ApiConfig = Field(default_factory=ApiConfig, description="Backend connection settings")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging settings")


def _collect_unknown_keys(
    data: dict[str, Any],
    model_cls: type[BaseModel],
    prefix: str = "",
) -> list[str]:
    """Recursively find keys in *data* that don't match any field in *model_cls*.

    Returns dotted key paths like ``comments.embed_limt``.
    """
    known = set(model_cls.model_fields)
    unknown: list[str] = []

    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if key not in known:
            unknown.append(dotted)
            continue
        annotation = model_cls.model_fields[key].annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel) and isinstance(value, dict):
            unknown.extend(_collect_unknown_keys(value, annotation, prefix=f"{dotted}."))

    return unknown


def _find_config_file(start: Path) -> Path | None:
    """Walk up from *start* looking for ``.commentbuddy.toml``, stopping at ``.git`` root."""
    current = start.resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        if (current / ".git").exists():
            return None
        current = current.parent


def load_config(cwd: str | Path | None = None) -> tuple[Config, Path | None]:
    """Load configuration from ``.commentbuddy.toml``.

    Walks up from *cwd* (defaulting to the current directory) looking for the
    config file.  If not found, returns a ``Config`` with all defaults.

    Returns:
        (config, config_path): the parsed config and the file path (or None
        if no config file was found).

    Raises ``ValueError`` on invalid TOML or validation errors so commands
    refuse to run with a broken config.
    """
    start = Path(cwd) if cwd else Path.cwd()
    config_path = _find_config_file(start)

    if config_path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILENAME)
        return Config(), None

    logger.info("Loading config from %s", config_path)
    try:
        raw = config_path.read_text(encoding="utf-8")
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {config_path}: {exc}"
        raise ValueError(msg) from exc

    try:
        config = Config.model_validate(data)
    except Exception as exc:
        msg = f"Invalid config in {config_path}: {exc}"
        raise ValueError(msg) from exc

    for key in _collect_unknown_keys(data, Config):
        logger.warning(
            "Unknown config key '%s' in %s; run 'commentbuddy config --clean' to remove it",
            key,
            config_path,
        )

    return config, config_path


class _ConfigState:
    """Holds the active config and where it came from."""

    __slots__ = ("config", "path")

    def __init__(self) -> None:
        self.config: Config = Config()
        self.path: Path | None = None


_state = _ConfigState()


def get_config() -> Config:
    """Return the active configuration."""
    return _state.config


def set_config(config: Config, *, config_path: Path | None = None) -> None:
    """Set the active configuration (called once per CLI invocation or server start)."""
    _state.config = config
    _state.path = config_path


def get_config_path() -> Path | None:
    """Return the path to the active config file, or None if using defaults."""
    return _state.path


# -- Template for ``commentbuddy config --init`` -------------------------------

DEFAULT_CONFIG_TEMPLATE = """\
# .commentbuddy.toml: configuration for commentbuddy
# All settings are optional. Omitted values use sensible defaults.
# Place this file in your project root (next to .git/).

[comments]
embed_limit = 3                   # Threads shown by 'issues get' (0 = all)
# list_limit = 10                 # Default --limit for 'issues comments'
preview_length = 60               # Preview length for collapsed resolved threads

[api]
url = "https://api.linear.app/graphql"
timeout_seconds = 30
page_size = 100                   # Comments fetched per page (max 250)

[logging]
level = "WARNING"                 # Or set COMMENTBUDDY_LOG_LEVEL
"""


def init_config(cwd: Path | None = None) -> Path:
    """Create a new ``.commentbuddy.toml`` in the given directory.

    Raises ``SystemExit(1)`` if the file already exists.

    Returns:
        Path to the created file.
    """
    target = (cwd or Path.cwd()) / CONFIG_FILENAME
    if target.exists():
        print(f"Error: {CONFIG_FILENAME} already exists in {target.parent}")  # noqa: T201
        print("Hint: use 'commentbuddy config --clean' to drop unknown keys")  # noqa: T201
        raise SystemExit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    print(f"Created {target}")  # noqa: T201
    return target


def _remove_unknown_keys(target: Path) -> list[str]:
    """Remove unknown keys from a config file using tomlkit (style-preserving).

    Returns list of dotted key paths that were removed.
    """
    import tomlkit  # noqa: PLC0415

    raw = target.read_text(encoding="utf-8")
    data = tomllib.loads(raw)
    unknown = _collect_unknown_keys(data, Config)
    if not unknown:
        return []

    doc = tomlkit.loads(raw)
    for dotted in unknown:
        parts = dotted.split(".")
        container = doc
        for part in parts[:-1]:
            container = container[part]  # type: ignore[index]
        del container[parts[-1]]  # type: ignore[attr-defined]

    target.write_text(tomlkit.dumps(doc), encoding="utf-8")
    return unknown


def clean_config(cwd: Path | None = None) -> tuple[Path, list[str]]:
    """Remove unknown keys from an existing ``.commentbuddy.toml``.

    Raises ``SystemExit(1)`` if the config file doesn't exist.

    Returns:
        Tuple of (config path, list of removed key paths).
    """
    target = (cwd or Path.cwd()) / CONFIG_FILENAME
    if not target.exists():
        print(f"Error: {CONFIG_FILENAME} not found in {target.parent}")  # noqa: T201
        print("Hint: use 'commentbuddy config --init' to create one")  # noqa: T201
        raise SystemExit(1)

    removed = _remove_unknown_keys(target)
    if removed:
        print(f"Removed {len(removed)} unknown key(s) from {target}:")  # noqa: T201
        for r in removed:
            print(f"  - {r}")  # noqa: T201
    else:
        print(f"{CONFIG_FILENAME} is clean, no unknown keys found")  # noqa: T201

    return target, removed
