"""This module contains general utility functions."""

from importlib import resources
from pathlib import Path

import yaml


def find_project_root() -> Path:
    """Find project root by looking for marker files.

    The base root location is based on the presence of a pyproject.toml file.

    ```
    project-root
    ├── pyproject.toml
    ├── config
    └── ...
    ```

    Returns:
        Path: Detected root path, or current parent if not detected.
    """
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").exists():
            return parent
    return current.parents[2]  # Fallback


def resolve_config_path(config_filename: str) -> Path:
    """Locate a parameter file.

    A file in the project's root-level `config` directory takes precedence over the default shipped with the
    package, so that parameters can be customized without touching the installed package.

    Args:
        config_filename (str): Name of the params yaml file.

    Returns:
        Path: Path to the parameter file.
    """
    local_path = find_project_root() / "config" / config_filename
    if local_path.exists():
        return local_path
    return Path(str(resources.files("strata_extraction").joinpath("config", config_filename)))


def read_params(config_filename: str) -> dict:
    """Read parameters from a yaml file.

    Args:
        config_filename (str): Name of the params yaml file.

    Returns:
        dict: The parameters.
    """
    config_path = resolve_config_path(config_filename)

    if not config_path.exists():
        raise FileNotFoundError(f"Provided parameter file not found: {config_path}")

    if not config_path.is_file():
        raise ValueError(f"Provided path does not point to a file: {config_path}")

    try:
        with open(config_path) as f:
            params = yaml.safe_load(f)

        return params
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Invalid YAML format in {config_path}: {str(e)}") from e
