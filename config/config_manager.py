"""
Configuration management for the pelada system.
"""

import copy
import logging
import yaml
from typing import Dict, Any

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages configuration loading and provides default values."""

    @staticmethod
    def load_config(config_file: str) -> Dict[str, Any]:
        """Load configuration from YAML file, filling missing sections with defaults."""
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning(f"Configuration file '{config_file}' not found. Using default configuration.")
            return ConfigManager.get_default_config()
        except yaml.YAMLError as e:
            logger.warning(f"Error parsing configuration file: {e}. Using default configuration.")
            return ConfigManager.get_default_config()

        return ConfigManager.merge_with_defaults(loaded)

    @staticmethod
    def merge_with_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
        """Merge a (possibly partial) configuration over the defaults, one section deep."""
        merged = ConfigManager.get_default_config()
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key].update(value)
            else:
                merged[key] = value
        return merged

    @staticmethod
    def get_default_config() -> Dict[str, Any]:
        """Return default configuration if config file is not available."""
        return copy.deepcopy({
            'database_path': 'pelada.db',
            'match_ratings': {
                'vote_weight': 0.7,
                'stats_weight': 0.3,
                'confidence_votes': 3,
                'default_global_mean': 2.5
            },
            'overall': {
                'band_min': 60,
                'band_max': 95,
                'match_window': 10
            },
            'rankings': {
                'cache_ttl_seconds': 60,
                'recent_match_window': 10,
                'weighted_weights': {'goals': 4, 'assists': 2, 'rating': 4},
                'recent_weights': {'goals': 3, 'assists': 2, 'rating': 5}
            },
            'team_colors': ['Azul', 'Vermelho', 'Preto', 'Branco'],
            'legacy_color_wins': None,
            'achievements': {
                'revocable_unlocks': True
            },
            'voting': {
                'match_invalid_candidate': 'null_out',
                'monthly_invalid_candidate': 'reject'
            },
            'monthly_vote': {
                'min_matches': 2,
                'max_candidates': 6,
                'weights': {'goals': 0.3, 'assists': 0.2, 'rating': 0.5}
            },
            'teams': {
                'min_players_per_team': 6,
                'max_teams': 4,
                'guest_default_strength': 60
            }
        })
