"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for specforge:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.specforge/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~specforge.models.GlobalConfig`
  JSON file storing user defaults (git initialisation, output format).
* **Project config** -- ``specforge.json`` at a project root, deserialised
  into a :class:`~specforge.models.ProjectConfig`. See
  :func:`load_project_config` and :func:`dump_project_config`.
* **Precedence resolution** -- :func:`resolve_project_config` merges CLI
  flags, environment variables, the project file and defaults.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so that an interrupted run never leaves a
half-written file behind. The generator's file writer uses the same helper.
"""

from __future__ import annotations

import json
import os
import platform
import re
import tempfile
from pathlib import Path
from typing import Optional

from specforge.exceptions import ConfigError
from specforge.models import GlobalConfig, ProjectConfig

_APP_NAME = "specforge"
_CONFIG_FILENAME = "config.json"
PROJECT_CONFIG_FILENAME = "specforge.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/specforge/`` (default ``~/.config/specforge/``).
    On macOS/Windows: ``~/.specforge/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/specforge/`` (default ``~/.local/share/specforge/``).
    On macOS/Windows: ``~/.specforge/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    Text is written without newline translation so that content produced by
    the merger keeps its exact bytes. On any failure the temp file is
    cleaned up and the exception propagates.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
            newline="",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~specforge.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


# --- Project config ---


def project_config_path(root: Path) -> Path:
    """Path to ``specforge.json`` under *root*."""
    return root / PROJECT_CONFIG_FILENAME


def load_project_config(root: Path) -> ProjectConfig:
    """Load ``specforge.json`` from a project root.

    Args:
        root: Project root directory.

    Returns:
        The deserialised :class:`~specforge.models.ProjectConfig`.

    Raises:
        ConfigError: If the file is missing, contains invalid JSON, or fails
            Pydantic validation.
    """
    path = project_config_path(root)
    if not path.is_file():
        raise ConfigError(
            f"No {PROJECT_CONFIG_FILENAME} found in {root}. "
            "Is this a specforge project?"
        )
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ProjectConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc


def dump_project_config(config: ProjectConfig) -> str:
    """Serialise a project config the way it is stored on disk."""
    data = config.model_dump(mode="json", exclude_none=True)
    return json.dumps(data, indent=2) + "\n"


def package_name_for(project_name: str) -> str:
    """Derive a Python package name from a project name (``my-shop`` -> ``my_shop``)."""
    slug = re.sub(r"[^a-z0-9]+", "_", project_name.lower()).strip("_")
    if not slug:
        return "app"
    if slug[0].isdigit():
        slug = f"app_{slug}"
    return slug


# --- Precedence resolution ---


def resolve_project_config(
    root: Path,
    cli_api_dir: Optional[str] = None,
    cli_openapi_output: Optional[str] = None,
) -> ProjectConfig:
    """Resolve the effective project config with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_api_dir``, ``cli_openapi_output``)
        2. Environment variables (``SPECFORGE_API_DIR``,
           ``SPECFORGE_OPENAPI_OUTPUT``)
        3. Project config (``<root>/specforge.json``)
        4. Defaults

    The package name is filled in from the project name when the file does
    not set one.

    Raises:
        ConfigError: If the project config is missing or invalid.
    """
    config = load_project_config(root)

    api_dir = config.api_dir
    env_api_dir = os.environ.get("SPECFORGE_API_DIR")
    if env_api_dir:
        api_dir = env_api_dir
    if cli_api_dir is not None:
        api_dir = cli_api_dir

    openapi_output = config.openapi_output
    env_output = os.environ.get("SPECFORGE_OPENAPI_OUTPUT")
    if env_output:
        openapi_output = env_output
    if cli_openapi_output is not None:
        openapi_output = cli_openapi_output

    return config.model_copy(
        update={
            "api_dir": api_dir,
            "openapi_output": openapi_output,
            "package": config.package or package_name_for(config.name),
        }
    )
