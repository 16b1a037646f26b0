"""
Configuration for SkinBet.

Values come from config.json (or the file named by SKINBET_CONFIG), then from
environment variables, which win. A .env file is loaded into the environment
first. Relative paths resolve against the project root.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Tuple
from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

# Project root directory (parent of 'skinbet' folder)
PROJECT_ROOT = Path(__file__).parent.parent


# ==================== Configuration Models ====================

class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = True
    name: str = "SkinBet"


class EconomyConfig(BaseModel):
    starting_balance: float = 1000.0


class GameConfig(BaseModel):
    enabled: bool = True
    min_bet: float = 0.01
    max_bet: float = 10000.0


class GamesConfig(BaseModel):
    coinflip: GameConfig = Field(default_factory=GameConfig)
    crash: GameConfig = Field(default_factory=GameConfig)
    roulette: GameConfig = Field(default_factory=GameConfig)
    jackpot: GameConfig = Field(default_factory=GameConfig)
    blackjack: GameConfig = Field(default_factory=GameConfig)

    def get(self, game_type: str) -> GameConfig:
        return getattr(self, game_type, None) or GameConfig()


class CrashConfig(BaseModel):
    """Crash game tuning. Growth rate matches the client animation (0.01x per 100ms)."""
    max_cash_out: float = 1000.0
    growth_per_second: float = 0.10
    round_timeout_seconds: int = 600


class StorageConfig(BaseModel):
    backend: str = "sqlite"  # "memory" or "sqlite"
    database: str = "data/skinbet.db"

    def get_db_path(self) -> Path:
        return PROJECT_ROOT / self.database


class RateLimitConfig(BaseModel):
    enabled: bool = True
    game_requests: str = "30/minute"  # bets and crash round starts


class IdempotencyConfig(BaseModel):
    max_keys: int = 10000  # receipts kept in memory


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_to_file: bool = False
    formatter: str = "color"  # color, plain or json
    log_file: str = "data/skinbet.log"

    def get_log_path(self) -> Path:
        return PROJECT_ROOT / self.log_file


class AppConfig(BaseModel):
    """Main application configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    economy: EconomyConfig = Field(default_factory=EconomyConfig)
    games: GamesConfig = Field(default_factory=GamesConfig)
    crash: CrashConfig = Field(default_factory=CrashConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    idempotency: IdempotencyConfig = Field(default_factory=IdempotencyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ==================== Configuration Loading ====================

def parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


# env var -> (section, field, parser)
ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "SERVER_HOST": ("server", "host", str),
    "SERVER_PORT": ("server", "port", int),
    "DEBUG": ("server", "debug", parse_bool),
    "STARTING_BALANCE": ("economy", "starting_balance", float),
    "CRASH_MAX_CASH_OUT": ("crash", "max_cash_out", float),
    "STORAGE_BACKEND": ("storage", "backend", str),
    "DB_PATH": ("storage", "database", str),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_TO_FILE": ("logging", "log_to_file", parse_bool),
    "LOG_FORMATTER": ("logging", "formatter", str),
    "RATE_LIMIT_ENABLED": ("rate_limit", "enabled", parse_bool),
    "RATE_LIMIT_GAME_REQUESTS": ("rate_limit", "game_requests", str),
}


def apply_env_overrides(data: Dict) -> Dict:
    """Overlay set environment variables onto raw config data. Unparseable values are ignored."""
    for key, (section, name, parse) in ENV_OVERRIDES.items():
        raw = os.environ.get(key)
        if not raw:
            continue
        try:
            value = parse(raw)
        except ValueError:
            continue
        data.setdefault(section, {})[name] = value
    return data


def load_config(config_path: Path = None) -> AppConfig:
    """
    Load configuration from config.json with environment variable overrides.
    Environment variables take precedence over config.json values.
    """
    if config_path is None:
        config_path = PROJECT_ROOT / os.environ.get("SKINBET_CONFIG", "config.json")

    data = {}
    if config_path.exists():
        with open(config_path, "r") as f:
            data = json.load(f)

    return AppConfig(**apply_env_overrides(data))


# Global config instance
settings = load_config()
