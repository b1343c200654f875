"""
Configuration module for Forest
API key lookup, data paths, provider settings and scoring weights
"""

import logging
import json
import os
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Optional, Dict
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Constants
APP_NAME = "forest"
DATA_DIR = Path(os.environ.get("FOREST_DATA_DIR") or Path.home() / f".{APP_NAME}")
CONFIG_FILE = DATA_DIR / ".env.json"
DB_PATH = DATA_DIR / "forest.db"

# Provider settings
DEFAULT_PROVIDER = "openai"
SUPPORTED_PROVIDERS = ["openai", "openrouter"]

# Model configurations per provider
PROVIDER_MODELS = {
    "openai": {
        "chat": "gpt-4o-mini",
        "base_url": None,  # Use default OpenAI base URL
    },
    "openrouter": {
        "chat": "anthropic/claude-3.5-haiku",
        "base_url": "https://openrouter.ai/api/v1",
    }
}

# Environment variables checked when no key is stored in the config file
PROVIDER_ENV_KEYS = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}

# Intelligence requests must never block an operation for long
INTELLIGENCE_TIMEOUT = float(os.environ.get("FOREST_INTELLIGENCE_TIMEOUT", "20"))  # seconds
INTELLIGENCE_MAX_RETRIES = 2
INTELLIGENCE_RETRY_DELAY = 1  # seconds

# Planning defaults
DEFAULT_PATH = "general"
DEFAULT_WAKE_TIME = "7:00 AM"
DEFAULT_SLEEP_TIME = "10:00 PM"
DEFAULT_MEAL_TIMES = ["8:00 AM", "12:00 PM", "6:00 PM"]
DEFAULT_DURATION_MINUTES = 30
MAX_SCHEDULE_BLOCKS = 50

# App Attribution settings for OpenRouter
APP_TITLE = "Forest Learning Planner"
APP_URL = "https://github.com/forest-planner/forest"


@dataclass(frozen=True)
class ScoringWeights:
    """Hand-tuned constants used by the task selector"""
    energy_weight: float = 20
    time_fit_bonus: float = 30
    time_miss_penalty: float = -50
    context_bonus: float = 50
    breakthrough_bonus: float = 100
    generated_bonus: float = 25
    default_priority: float = 200
    default_difficulty: int = 3

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict] = None) -> "ScoringWeights":
        """Build weights from a (possibly partial) dict, ignoring unknown keys"""
        if not overrides:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in overrides.items() if k in known})

    def to_dict(self) -> Dict:
        return asdict(self)


def load_config() -> Dict:
    """Load configuration from config file"""
    if CONFIG_FILE.exists():
        try:
            with open(CONFIG_FILE, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"[load_config] Ignoring unreadable settings file {CONFIG_FILE}: {e}")

    return {}


def load_api_key(provider: str = None) -> Optional[str]:
    """Load API key for a provider from the config file, then the environment"""
    config = load_config()

    if provider is None:
        provider = config.get("provider", DEFAULT_PROVIDER)

    api_key = config.get(f"{provider}_api_key")
    if not api_key and provider in PROVIDER_ENV_KEYS:
        api_key = os.environ.get(PROVIDER_ENV_KEYS[provider])

    return api_key


def get_current_provider() -> str:
    """Get the currently configured provider"""
    config = load_config()
    return config.get("provider", DEFAULT_PROVIDER)


def get_provider_config(provider: str = None) -> Dict:
    """Get model configuration for a specific provider"""
    if provider is None:
        provider = get_current_provider()

    if provider not in PROVIDER_MODELS:
        raise ValueError(f"No configuration found for provider: {provider}")

    return PROVIDER_MODELS[provider]


def get_scoring_weights(project_overrides: Optional[Dict] = None) -> ScoringWeights:
    """
    Resolve scoring weights: defaults, then the settings file, then the project.

    Args:
        project_overrides: Partial weights from a project's config document

    Returns:
        ScoringWeights with every override applied
    """
    merged = dict(load_config().get("scoring_weights") or {})
    merged.update(project_overrides or {})
    return ScoringWeights.from_overrides(merged)
