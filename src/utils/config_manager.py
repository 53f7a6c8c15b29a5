"""
Configuration Manager

This module handles persistent storage and retrieval of engine settings.
Settings are stored in a JSON file in the user's application data directory
(or in a directory supplied by the caller).

Inputs:
    - Engine settings (prior search limit, histogram bins, display units, etc.)

Outputs:
    - Loaded configuration values
    - Saved configuration file

Requirements:
    - json module (standard library)
    - pathlib module (standard library)
    - os module (standard library)
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union


class ConfigManager:
    """
    Manages engine configuration.

    Handles loading and saving of settings including:
    - Default number of prior studies returned
    - Histogram bin count
    - Length display unit (mm or cm)
    - Call-site bound on polygon vertex count
    - Hounsfield unit inference for CT
    """

    def __init__(self, config_filename: str = "clinical_engine_config.json",
                 config_dir: Optional[Union[str, Path]] = None):
        """
        Initialize the configuration manager.

        Args:
            config_filename: Name of the configuration file to use
            config_dir: Optional directory overriding the application data directory
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
        elif os.name == 'nt':  # Windows
            app_data = os.getenv('APPDATA', os.path.expanduser('~'))
            self.config_dir = Path(app_data) / "ClinicalAnalysisEngine"
        else:  # Mac/Linux
            self.config_dir = Path.home() / ".config" / "ClinicalAnalysisEngine"

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_path = self.config_dir / config_filename

        self.default_config = {
            "prior_search_limit": 5,  # Priors returned when caller gives no limit
            "histogram_bins": 256,
            "length_display_unit": "mm",  # mm or cm
            "max_polygon_vertices": 2000,
            "infer_hounsfield_units": True,  # Label CT values as HU when slope=1, intercept=-1024
        }

        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from file, or return defaults if file doesn't exist.

        Returns:
            Dictionary containing configuration values
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded_config = json.load(f)
                # Merge with defaults to ensure all keys exist
                config = self.default_config.copy()
                if isinstance(loaded_config, dict):
                    config.update(loaded_config)
                return config
            except (json.JSONDecodeError, IOError) as e:
                print(f"Warning: Could not load config file: {e}")
                return self.default_config.copy()
        return self.default_config.copy()

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        Returns:
            True if save was successful, False otherwise
        """
        try:
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=4, ensure_ascii=False)
            return True
        except IOError as e:
            print(f"Error saving config file: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value, or default if the key doesn't exist."""
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value (not saved until save_config)."""
        self.config[key] = value

    def get_prior_search_limit(self) -> int:
        """Default number of prior studies to return."""
        return int(self.config.get("prior_search_limit", 5))

    def set_prior_search_limit(self, limit: int) -> None:
        if limit >= 0:
            self.config["prior_search_limit"] = int(limit)
            self.save_config()

    def get_histogram_bins(self) -> int:
        return int(self.config.get("histogram_bins", 256))

    def set_histogram_bins(self, bins: int) -> None:
        if bins > 0:
            self.config["histogram_bins"] = int(bins)
            self.save_config()

    def get_length_display_unit(self) -> str:
        """
        Get the unit used when formatting calibrated lengths.

        Returns:
            "mm" or "cm"
        """
        return self.config.get("length_display_unit", "mm")

    def set_length_display_unit(self, unit: str) -> None:
        if unit in ["mm", "cm"]:
            self.config["length_display_unit"] = unit
            self.save_config()

    def get_max_polygon_vertices(self) -> int:
        return int(self.config.get("max_polygon_vertices", 2000))

    def set_max_polygon_vertices(self, count: int) -> None:
        if count >= 3:
            self.config["max_polygon_vertices"] = int(count)
            self.save_config()

    def get_infer_hounsfield_units(self) -> bool:
        return bool(self.config.get("infer_hounsfield_units", True))

    def set_infer_hounsfield_units(self, enabled: bool) -> None:
        self.config["infer_hounsfield_units"] = bool(enabled)
        self.save_config()
