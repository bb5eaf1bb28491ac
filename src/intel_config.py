"""
Configuration for the related-products engine.

Defaults live in config/default.yaml; environment variables (optionally from a
.env file) override the YAML so operators can tune the recall/latency
trade-off without a code change:

    INTEL_SAMPLE_SIZE        candidates scored per query
    INTEL_MIN_SCORE          minimum score a candidate needs to be returned
    INTEL_DEFAULT_LIMIT      results returned when the caller passes no limit
    INTEL_SAMPLER_SEED       fixed seed -> identical samples on every query
    INTEL_SAMPLING_STRATEGY  'uniform' or 'bucketed'
    INTEL_QUERY_DEADLINE_MS  0 disables the scoring deadline
    INTEL_CATALOG_PATH       snapshot file used for lazy / startup builds
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

SAMPLING_STRATEGIES = ("uniform", "bucketed")


def _project_root() -> Path:
    """Return the repository root (parent of src/)."""
    return Path(__file__).resolve().parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"


@dataclass
class IntelConfig:
    """Tunable settings for sampling, scoring and cache lifecycle."""

    # Sampling
    sample_size: int = 500              # Upper bound on candidates scored per query
    sampler_seed: Optional[str] = None  # None = fresh random draw per query
    sampling_strategy: str = "uniform"

    # Scoring
    min_score: int = 55                 # 55 == strictly above a lone manufacturer match (50)
    default_limit: int = 8
    scoring_workers: int = 1            # 1 = sequential scoring
    query_deadline_ms: int = 0          # 0 = no deadline

    # Cache
    build_workers: int = 1
    build_on_startup: bool = False

    # Data
    catalog_path: str = ""
    registry_path: str = ""

    def __post_init__(self):
        if self.sample_size <= 0:
            raise ValueError("sample_size must be positive")
        if self.default_limit <= 0:
            raise ValueError("default_limit must be positive")
        if self.min_score < 0:
            raise ValueError("min_score must be >= 0")
        if self.scoring_workers <= 0 or self.build_workers <= 0:
            raise ValueError("worker counts must be positive")
        if self.query_deadline_ms < 0:
            raise ValueError("query_deadline_ms must be >= 0")
        if self.sampling_strategy not in SAMPLING_STRATEGIES:
            raise ValueError(
                f"sampling_strategy must be one of {SAMPLING_STRATEGIES}, got {self.sampling_strategy!r}"
            )

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "IntelConfig":
        """Load configuration from a YAML file, then apply environment overrides."""
        path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        data = {}
        if path.exists():
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}

        sampling = data.get('sampling', {}) or {}
        scoring = data.get('scoring', {}) or {}
        cache = data.get('cache', {}) or {}
        data_config = data.get('data', {}) or {}

        seed = _env('INTEL_SAMPLER_SEED', sampling.get('seed'))

        return cls(
            sample_size=int(_env('INTEL_SAMPLE_SIZE', sampling.get('sample_size', 500))),
            sampler_seed=str(seed) if seed not in (None, '') else None,
            sampling_strategy=_env('INTEL_SAMPLING_STRATEGY', sampling.get('strategy', 'uniform')),
            min_score=int(_env('INTEL_MIN_SCORE', scoring.get('min_score', 55))),
            default_limit=int(_env('INTEL_DEFAULT_LIMIT', scoring.get('default_limit', 8))),
            scoring_workers=int(scoring.get('workers', 1)),
            query_deadline_ms=int(_env('INTEL_QUERY_DEADLINE_MS', scoring.get('deadline_ms', 0))),
            build_workers=int(cache.get('build_workers', 1)),
            build_on_startup=bool(cache.get('build_on_startup', False)),
            catalog_path=_env('INTEL_CATALOG_PATH', data_config.get('catalog_path', '')) or '',
            registry_path=data_config.get('registry_path', '') or '',
        )


def _env(name: str, default):
    """Environment value if set and non-empty, else default."""
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return value.strip()


# Global config instance
_config: Optional[IntelConfig] = None


def get_config() -> IntelConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = IntelConfig.from_yaml()
    return _config


def set_config(config: IntelConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
