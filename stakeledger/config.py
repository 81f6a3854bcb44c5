from __future__ import annotations
"""
stakeledger.config — configuration for the staking ledger engine

Covers:
- The principal asset reference and the bootstrap admin identity
- Continuous emission rate (units per second per staked unit, scaled by 1e18)
- Annual-rate withdrawal parameters (basis points, seconds per year)

Environment overrides (all optional; sensible defaults provided):

  STAKELEDGER_ASSET=principal
  STAKELEDGER_ADMIN=admin
  STAKELEDGER_REWARD_RATE=1_000_000_000_000_000_000
  STAKELEDGER_ANNUAL_RATE_BPS=500
  STAKELEDGER_SECONDS_PER_YEAR=31536000
  STAKELEDGER_TOKEN_DECIMALS=18

You can also load from a JSON or YAML file via
`STAKELEDGER_CONFIG_FILE=/path/to/config.(json|yaml|yml)`.
File values override defaults; environment overrides the file.
"""


from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional
import json
import os
from pathlib import Path

try:
    import yaml  # type: ignore
except ImportError:  # pragma: no cover - yaml is optional
    yaml = None  # type: ignore


SCALE = 10**18
DEFAULT_ANNUAL_RATE_BPS = 500
DEFAULT_SECONDS_PER_YEAR = 31_536_000


# -------------------------- Data classes --------------------------


@dataclass
class RewardConfig:
    """Emission rate (scaled by SCALE) and annual-path parameters."""
    reward_rate: int = SCALE                       # 1 unit / second / staked unit
    annual_rate_bps: int = DEFAULT_ANNUAL_RATE_BPS  # 5% APR
    seconds_per_year: int = DEFAULT_SECONDS_PER_YEAR

    def validate(self) -> None:
        if self.reward_rate < 0:
            raise ValueError(f"reward_rate must be non-negative (got {self.reward_rate}).")
        if not (0 <= self.annual_rate_bps <= 10_000):
            raise ValueError(f"annual_rate_bps must be between 0 and 10000 (got {self.annual_rate_bps}).")
        if self.seconds_per_year <= 0:
            raise ValueError("seconds_per_year must be positive.")


@dataclass
class EngineConfig:
    """Top-level configuration container."""
    asset: str = "principal"
    admin: str = "admin"
    reward: RewardConfig = field(default_factory=RewardConfig)
    token_decimals: int = 18  # informational

    def validate(self) -> None:
        if not self.asset:
            raise ValueError("asset must be a non-empty reference.")
        if not self.admin:
            raise ValueError("admin must be a non-empty identity.")
        self.reward.validate()
        if self.token_decimals <= 0:
            raise ValueError("token_decimals must be positive.")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# -------------------------- Loaders --------------------------


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""))
    except ValueError as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _getenv_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v == "" else v


def from_env(base: Optional[EngineConfig] = None, prefix: str = "STAKELEDGER_") -> EngineConfig:
    """
    Build an EngineConfig from environment variables, optionally layering on top of `base`.
    """
    cfg = base or EngineConfig()

    new_cfg = EngineConfig(
        asset=_getenv_str(f"{prefix}ASSET", cfg.asset),
        admin=_getenv_str(f"{prefix}ADMIN", cfg.admin),
        reward=RewardConfig(
            reward_rate=_getenv_int(f"{prefix}REWARD_RATE", cfg.reward.reward_rate),
            annual_rate_bps=_getenv_int(f"{prefix}ANNUAL_RATE_BPS", cfg.reward.annual_rate_bps),
            seconds_per_year=_getenv_int(f"{prefix}SECONDS_PER_YEAR", cfg.reward.seconds_per_year),
        ),
        token_decimals=_getenv_int(f"{prefix}TOKEN_DECIMALS", cfg.token_decimals),
    )
    new_cfg.validate()
    return new_cfg


def from_file(path: str | os.PathLike[str]) -> EngineConfig:
    """
    Load configuration from a JSON or YAML file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        if yaml is None:
            raise RuntimeError("YAML config requested but PyYAML is not installed.")
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")

    reward = data.get("reward", {})
    defaults = RewardConfig()

    cfg = EngineConfig(
        asset=str(data.get("asset", EngineConfig().asset)),
        admin=str(data.get("admin", EngineConfig().admin)),
        reward=RewardConfig(
            reward_rate=int(reward.get("reward_rate", defaults.reward_rate)),
            annual_rate_bps=int(reward.get("annual_rate_bps", defaults.annual_rate_bps)),
            seconds_per_year=int(reward.get("seconds_per_year", defaults.seconds_per_year)),
        ),
        token_decimals=int(data.get("token_decimals", EngineConfig().token_decimals)),
    )
    cfg.validate()
    return cfg


def load() -> EngineConfig:
    """
    Load configuration using the following precedence:
      1) File at $STAKELEDGER_CONFIG_FILE (JSON/YAML)
      2) Environment variables (STAKELEDGER_*), applied on top of defaults or file values
    """
    file_path = os.getenv("STAKELEDGER_CONFIG_FILE")
    base = from_file(file_path) if file_path else EngineConfig()
    return from_env(base=base)


# -------------------------- Utilities --------------------------


def pretty(cfg: Optional[EngineConfig] = None) -> str:
    """Return a human-readable JSON string of the current config."""
    obj = (cfg or load()).to_dict()
    return json.dumps(obj, indent=2, sort_keys=True)


__all__ = [
    "SCALE",
    "DEFAULT_ANNUAL_RATE_BPS",
    "DEFAULT_SECONDS_PER_YEAR",
    "RewardConfig",
    "EngineConfig",
    "from_env",
    "from_file",
    "load",
    "pretty",
]
