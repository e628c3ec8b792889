import json
from typing import Dict, Any
from pathlib import Path

DEFAULT_REFERRAL_BONUS = 10
DEFAULT_INFLUENCER_MULTIPLIER = 2


class Config:
    """Configuration manager for the points economy tunables"""

    def __init__(self, config_file: str = "config.json"):
        self.config_file = config_file
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from JSON file"""
        config_path = Path(__file__).parent / self.config_file

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                config = json.load(f)

            return config
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key (supports dot notation)"""
        keys = key.split('.')
        value = self._config

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def get_referral_config(self) -> Dict[str, Any]:
        """Get the whole referral section"""
        return self.get("referral", {}) or {}

    def get_referral_bonus(self) -> int:
        """Base bonus credited to both sides of a referral"""
        return int(self.get_referral_config().get("base_bonus", DEFAULT_REFERRAL_BONUS))

    def get_influencer_multiplier(self) -> int:
        """Multiplier applied to the referrer's bonus when the referrer is an Influencer"""
        return int(self.get_referral_config().get("influencer_multiplier", DEFAULT_INFLUENCER_MULTIPLIER))

    def get_referral_code_settings(self) -> Dict[str, Any]:
        """Get referral code generation settings"""
        referral_config = self.get_referral_config()
        return {
            "prefix": str(referral_config.get("code_prefix", "ST")),
            "length": int(referral_config.get("code_length", 8)),
            "max_attempts": int(referral_config.get("max_code_attempts", 10)),
        }

    def set_referral_settings(self, referral_settings: Dict[str, Any]):
        """Merge referral settings and persist to disk"""
        current = dict(self.get_referral_config())
        current.update(referral_settings)
        self._config["referral"] = current
        self._save_config()

    def _save_config(self):
        """Persist current configuration to JSON file"""
        config_path = Path(__file__).parent / self.config_file
        with open(config_path, 'w') as f:
            json.dump(self._config, f, indent=2)

# Global configuration instance
config = Config()
