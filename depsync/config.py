"""Sync configuration: managed repositories, tracked packages, endpoints."""

import os
from pathlib import Path

import tomlkit
from pydantic import BaseModel, Field, ValidationError
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError
from .registry import DEFAULT_REGISTRY_URL, DEFAULT_USER_AGENT

DEFAULT_CONFIG_FILE = "depsync.toml"

# Environment variable -> config field
ENV_OVERRIDES = {
    "GITHUB_ORG": "org",
    "GITHUB_TOKEN": "github_token",
    "DEPSYNC_CHECKOUTS_DIR": "checkouts_dir",
    "DEPSYNC_CONFIG_SYNC_URL": "config_sync_url",
    "DEPSYNC_REGISTRY_URL": "registry_url",
}


class RepoSpec(BaseModel):
    """A managed repository."""

    name: str
    local: str | None = None  # folder under checkouts_dir, defaults to name
    manifests: list[str] = Field(default_factory=lambda: ["Cargo.toml"])
    workflows: list[str] = Field(default_factory=list)

    @property
    def local_dir(self) -> str:
        return self.local or self.name


class SyncConfig(BaseModel):
    """Everything a sync run needs to know."""

    org: str
    tracked_packages: list[str]
    repos: list[RepoSpec] = Field(default_factory=list)
    checkouts_dir: Path = Path("..")
    config_sync_url: str | None = None
    registry_url: str = DEFAULT_REGISTRY_URL
    github_api_url: str = "https://api.github.com"
    github_token: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0

    def repo_slug(self, repo: RepoSpec) -> str:
        return f"{self.org}/{repo.name}"

    def checkout_path(self, repo: RepoSpec) -> Path:
        return self.checkouts_dir / repo.local_dir


def load_config(path: str | Path | None = None, environ: dict | None = None) -> SyncConfig:
    """Load configuration from a TOML file with environment overrides.

    Args:
        path: Config file; defaults to ``depsync.toml`` in the working directory
        environ: Environment mapping (defaults to ``os.environ``)

    Raises:
        ConfigError: The file is missing, unparsable or invalid
    """
    environ = os.environ if environ is None else environ
    config_path = Path(path or DEFAULT_CONFIG_FILE)

    try:
        raw = tomlkit.parse(config_path.read_text(encoding="utf-8")).unwrap()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file {config_path} not found", file_path=str(config_path)) from e
    except (OSError, TOMLKitError) as e:
        raise ConfigError(f"Cannot read {config_path}: {e}", file_path=str(config_path)) from e

    for env_name, field_name in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            raw[field_name] = value

    try:
        return SyncConfig(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {config_path}: {e}", file_path=str(config_path)) from e
