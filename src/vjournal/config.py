"""Configuration management for vjournal."""

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG = {
    "database_path": "~/.vjournal/journal.db",
    "storage_backend": "sqlite",
    "embedding_backend": "sentence-transformers",
    "embedding_model": "intfloat/e5-large-v2",
    "claude_model": "claude-sonnet-4-20250514",
    "log_level": "INFO",
    "clustering": {
        "cluster_count": 5,
        "cluster_threshold": 10,
        "initial_threshold": 5,
        "min_entries": 3,
        "min_cluster_size": 2,
        "sample_size": 3,
        "max_iterations": 10,
        "seed": None,
        "lease_seconds": 600,
    },
    "search": {
        "mode": "hybrid",
        "semantic_weight": 0.6,
        "keyword_weight": 0.4,
        "min_score": 0.1,
        "max_results": 50,
        "timeout": None,
        "degrade_on_semantic_failure": False,
    },
    "enrichment": {"max_chars": 8000},
}

# Settings keys persisted in the entry store
CLUSTER_COUNT = "cluster_count"
CLUSTER_THRESHOLD = "cluster_threshold"
LAST_CLUSTERING_DATE = "last_clustering_date"


def _find_config_file() -> Path | None:
    """Look for config.yaml in standard locations."""
    candidates = [
        Path.cwd() / "config" / "config.yaml",
        Path.cwd() / "config.yaml",
        Path.home() / ".vjournal" / "config.yaml",
    ]
    for p in candidates:
        if p.exists():
            return p
    return None


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration, merging defaults with file and env vars."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path) if config_path else _find_config_file()
    if path and path.exists():
        with open(path) as f:
            file_cfg = yaml.safe_load(f) or {}
        _deep_merge(cfg, file_cfg)

    # Env overrides
    if api_key := os.environ.get("ANTHROPIC_API_KEY"):
        cfg["claude_api_key"] = api_key
    if db_path := os.environ.get("VJOURNAL_DB_PATH"):
        cfg["database_path"] = db_path

    cfg["database_path"] = str(Path(cfg["database_path"]).expanduser().resolve())

    return cfg


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in-place."""
    for k, v in override.items():
        # An empty section in yaml ("clustering:") keeps the defaults
        if v is None and isinstance(base.get(k), dict):
            continue
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v


def _int_setting(store, key: str, default: int) -> int:
    if store is None:
        return default
    value = store.get_setting(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class ClusteringConfig:
    """Knobs for the cluster lifecycle, passed explicitly to the manager."""
    cluster_count: int = 5
    cluster_threshold: int = 10
    initial_threshold: int = 5
    min_entries: int = 3
    min_cluster_size: int = 2
    sample_size: int = 3
    max_iterations: int = 10
    seed: int | None = None
    # A crashed run stops blocking others after this long
    lease_seconds: float = 600

    def __post_init__(self):
        if self.cluster_count < 1:
            raise ValueError(f"cluster_count must be at least 1, got {self.cluster_count}")

    @classmethod
    def from_config(cls, config: dict[str, Any], store=None) -> "ClusteringConfig":
        """Build from the config dict; stored settings win over file values."""
        section = {**DEFAULT_CONFIG["clustering"], **(config.get("clustering") or {})}
        return cls(
            cluster_count=_int_setting(store, CLUSTER_COUNT, int(section["cluster_count"])),
            cluster_threshold=_int_setting(store, CLUSTER_THRESHOLD, int(section["cluster_threshold"])),
            initial_threshold=int(section["initial_threshold"]),
            min_entries=int(section["min_entries"]),
            min_cluster_size=int(section["min_cluster_size"]),
            sample_size=int(section["sample_size"]),
            max_iterations=int(section["max_iterations"]),
            seed=section.get("seed"),
            lease_seconds=float(section["lease_seconds"]),
        )


@dataclass
class SearchConfig:
    """Defaults for the search engine; any field can be overridden per call."""
    mode: str = "hybrid"
    semantic_weight: float = 0.6
    keyword_weight: float = 0.4
    min_score: float = 0.1
    max_results: int | None = 50
    timeout: float | None = None
    degrade_on_semantic_failure: bool = False

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "SearchConfig":
        section = {**DEFAULT_CONFIG["search"], **(config.get("search") or {})}
        return cls(
            mode=section["mode"],
            semantic_weight=float(section["semantic_weight"]),
            keyword_weight=float(section["keyword_weight"]),
            min_score=float(section["min_score"]),
            max_results=section["max_results"],
            timeout=section["timeout"],
            degrade_on_semantic_failure=bool(section["degrade_on_semantic_failure"]),
        )
