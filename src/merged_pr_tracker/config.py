"""
Configuration for the merged PR tracker.

Values come from built-in defaults, then an optional config.yaml, then
PR_BOT_* environment variables (a .env file is honoured).
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from ..shared_utilities import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "PR_BOT_"
CONFIG_SEARCH_PATHS = (
    Path("config.yaml"),
    Path("config") / "config.yaml",
    Path.home() / ".merged-pr-tracker" / "config.yaml",
)

# Repositories whose snapshot component carries their own name
ASSISTED_INSTALLER_COMPONENTS = (
    "assisted-installer",
    "assisted-installer-agent",
    "assisted-installer-ui",
)
DEFAULT_COMPONENT = "assisted-service"


@dataclass
class TrackerConfig:
    """Settings for one analysed repository."""

    owner: str = "openshift"
    repository: str = "assisted-service"
    github_token: str | None = None
    concurrency_limit: int = 10
    request_timeout: int = 30
    calendar_path: str | None = None
    ui_repository: str = "assisted-installer-ui"
    ticket_pattern: str = r"MGMT-\d+"
    tag_history_limit: int | None = None

    def __post_init__(self):
        if not self.owner or not self.repository:
            raise ValueError("owner and repository are required")
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be positive")
        if self.request_timeout < 1:
            raise ValueError("request_timeout must be positive")
        if self.tag_history_limit is not None and self.tag_history_limit < 1:
            raise ValueError("tag_history_limit must be positive")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repository}"

    @property
    def is_ui_repository(self) -> bool:
        return self.repository == self.ui_repository

    @property
    def component_name(self) -> str:
        """Name of this repository's component in build snapshots."""
        if self.repository in ASSISTED_INSTALLER_COMPONENTS:
            return self.repository
        return DEFAULT_COMPONENT

    def for_repository(self, owner: str, repository: str) -> "TrackerConfig":
        return replace(self, owner=owner, repository=repository)


# Environment variable suffix -> (field, converter)
_ENV_FIELDS = {
    "GITHUB_OWNER": ("owner", str),
    "GITHUB_REPOSITORY": ("repository", str),
    "GITHUB_TOKEN": ("github_token", str),
    "CONCURRENCY_LIMIT": ("concurrency_limit", int),
    "REQUEST_TIMEOUT": ("request_timeout", int),
    "CALENDAR_PATH": ("calendar_path", str),
    "UI_REPOSITORY": ("ui_repository", str),
    "TICKET_PATTERN": ("ticket_pattern", str),
    "TAG_HISTORY_LIMIT": ("tag_history_limit", int),
}

# Nested YAML keys -> field
_YAML_FIELDS = {
    ("github", "owner"): "owner",
    ("github", "repository"): "repository",
    ("github", "token"): "github_token",
    ("tracker", "concurrency_limit"): "concurrency_limit",
    ("tracker", "request_timeout"): "request_timeout",
    ("tracker", "tag_history_limit"): "tag_history_limit",
    ("calendar", "path"): "calendar_path",
    ("tickets", "pattern"): "ticket_pattern",
    ("ui", "repository"): "ui_repository",
}


def _find_config_file() -> Path | None:
    for candidate in CONFIG_SEARCH_PATHS:
        if candidate.is_file():
            return candidate
    return None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ValueError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    values = {}
    for (section, key), field_name in _YAML_FIELDS.items():
        section_data = data.get(section)
        if isinstance(section_data, dict) and section_data.get(key) is not None:
            values[field_name] = section_data[key]
    return values


def _read_env(env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for suffix, (field_name, convert) in _ENV_FIELDS.items():
        raw = env.get(f"{ENV_PREFIX}{suffix}")
        if raw is None or raw == "":
            continue
        try:
            values[field_name] = convert(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {ENV_PREFIX}{suffix}: {raw!r}") from e

    if "github_token" not in values and env.get("GITHUB_TOKEN"):
        values["github_token"] = env["GITHUB_TOKEN"]
    return values


def load_config(
    config_file: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> TrackerConfig:
    """
    Build the effective configuration.

    Args:
        config_file: YAML file to read; searched for in the usual places when None
        env: Environment mapping, defaults to os.environ after loading .env
        **overrides: Explicit values (e.g. from CLI flags), applied last

    Raises:
        ValueError: For unreadable config files or invalid values
    """
    if env is None:
        load_dotenv()
        env = os.environ

    values: dict[str, Any] = {}

    path = Path(config_file) if config_file else _find_config_file()
    if path is not None:
        values.update(_read_yaml(path))
        logger.debug(f"Loaded configuration file {path}")

    values.update(_read_env(env))
    values.update({key: value for key, value in overrides.items() if value is not None})

    return TrackerConfig(**values)
