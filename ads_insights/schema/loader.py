"""Config loader - YAML files for AnalysisConfig.

Windows and thresholds live in a small YAML document with one section per
component (``lag``, ``pacing``, ``recommendations``) plus ``product_limit``.
Sections or keys left out of the file take their defaults.
"""

from pathlib import Path

import yaml

from .config import AnalysisConfig


def save_config(config: AnalysisConfig, path: str | Path) -> None:
    """Write *config* as YAML, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)


def load_config(path: str | Path) -> AnalysisConfig:
    """Read an AnalysisConfig from a YAML file.

    An empty file yields the default configuration.

    Raises:
        ValueError: If the document is not a mapping of sections.
    """
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return AnalysisConfig()
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {path} must contain a mapping, got {type(data).__name__}"
        )
    return AnalysisConfig.from_dict(data)
