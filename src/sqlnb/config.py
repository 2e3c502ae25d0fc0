"""Project configuration: sqlnb.yml parsing and defaults."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sqlnb.engine.dialects import DIALECTS
from sqlnb.engine.errors import ConfigError
from sqlnb.engine.persistence import STORAGE_TABLES

CONFIG_FILE = "sqlnb.yml"


class OutputConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")
    directory: str = "generated"


class TablesConfig(BaseModel):
    """Names of the storage tables used for persisted cells."""
    model_config = ConfigDict(extra="ignore")

    code_cell: str = STORAGE_TABLES["code_cell"].name
    files: str = STORAGE_TABLES["files"].name
    navigation: str = STORAGE_TABLES["navigation"].name

    def overrides(self) -> dict[str, str]:
        return self.model_dump()


class EnvironmentConfig(BaseModel):
    """A single environment override (e.g. dev, prod)."""
    model_config = ConfigDict(extra="ignore")

    dialect: str | None = None
    provenance: bool | None = None
    tables: dict[str, str] = Field(default_factory=dict)


class ProjectConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    name: str = "default"
    description: str = ""
    dialect: str = "sqlite"
    provenance: bool = True
    notebooks: list[str] = Field(default_factory=list)  # module:Class references
    output: OutputConfig = Field(default_factory=OutputConfig)
    tables: TablesConfig = Field(default_factory=TablesConfig)
    environments: dict[str, EnvironmentConfig] = Field(default_factory=dict)
    active_environment: str | None = None
    project_dir: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None  # set when sqlnb.yml exists

    @property
    def output_dir(self) -> Path:
        return self.project_dir / self.output.directory


def _expand_env_vars(value: Any) -> Any:
    """Expand ${ENV_VAR} references in string values."""
    if isinstance(value, str):
        return re.sub(
            r"\$\{(\w+)\}",
            lambda m: os.environ.get(m.group(1), m.group(0)),
            value,
        )
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    return value


def load_env(project_dir: Path) -> dict[str, str]:
    """Load KEY=value lines from a .env file into os.environ. Returns loaded keys."""
    env_path = project_dir / ".env"
    loaded: dict[str, str] = {}
    if not env_path.exists():
        return loaded

    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        # Strip surrounding quotes
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        os.environ[key] = value
        loaded[key] = value

    return loaded


def _check_dialect(dialect: str, where: str) -> str:
    if dialect.lower() not in DIALECTS:
        raise ConfigError(
            f"Unknown dialect {dialect!r} in {where} (supported: {', '.join(sorted(DIALECTS))})"
        )
    return dialect.lower()


def load_project(project_dir: Path | None = None, env: str | None = None) -> ProjectConfig:
    """Load sqlnb.yml from the given directory (or cwd).

    Args:
        project_dir: Path to the project directory.
        env: Environment name to activate (e.g. "dev", "prod").
             If environments are defined and env is None, defaults to "dev".
    """
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    config_path = project_dir / CONFIG_FILE

    # Load .env before expanding vars
    load_env(project_dir)

    if not config_path.exists():
        return ProjectConfig(project_dir=project_dir)

    try:
        raw = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")
    raw = _expand_env_vars(raw)

    environments_raw = raw.get("environments") or {}
    if not isinstance(environments_raw, dict):
        raise ConfigError(f"'environments' in {config_path} must be a mapping of name to overrides")

    try:
        environments = {
            name: EnvironmentConfig.model_validate(env_raw or {})
            for name, env_raw in environments_raw.items()
        }
        tables = TablesConfig(**(raw.get("tables") or {}))
        output = OutputConfig(**(raw.get("output") or {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    dialect = _check_dialect(str(raw.get("dialect", "sqlite")), CONFIG_FILE)
    provenance = bool(raw.get("provenance", True))

    # Apply environment overrides
    active_env = env
    if environments and active_env is None:
        active_env = "dev" if "dev" in environments else None
    if active_env and active_env in environments:
        env_cfg = environments[active_env]
        if env_cfg.dialect:
            dialect = _check_dialect(env_cfg.dialect, f"environment {active_env!r}")
        if env_cfg.provenance is not None:
            provenance = env_cfg.provenance
        if env_cfg.tables:
            tables = tables.model_copy(update=env_cfg.tables)

    notebooks = raw.get("notebooks", [])
    if isinstance(notebooks, str):
        notebooks = [notebooks]

    return ProjectConfig(
        name=raw.get("name", project_dir.name),
        description=raw.get("description", ""),
        dialect=dialect,
        provenance=provenance,
        notebooks=notebooks,
        output=output,
        tables=tables,
        environments=environments,
        active_environment=active_env if active_env and active_env in environments else None,
        project_dir=project_dir,
        config_path=config_path,
    )
