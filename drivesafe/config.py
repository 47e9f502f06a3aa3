"""
Configuration Management

Centralised configuration for the risk engine, safety orchestrator and
prediction scheduler.

- ConfigManager loads every YAML/JSON document from a config directory
  and exposes dot-notation access: config.get('safety.alertThresholds.caution')
- SafetyConfig is the single value object holding every tunable constant
  (thresholds, weights, cooldowns, tier tables). All defaults live here and
  are mirrored in config/safety.yaml.
"""

import json
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class WeatherAdaptationProfile(BaseModel):
    """Safety multipliers applied for one weather condition"""
    speed_reduction_percent: float = 0.0
    braking_multiplier: float = 1.0
    warning_intensity_multiplier: float = 1.0

    class Config:
        alias_generator = to_camel
        populate_by_name = True


def _default_weather_profiles() -> Dict[str, WeatherAdaptationProfile]:
    return {
        'storm': WeatherAdaptationProfile(speed_reduction_percent=40, braking_multiplier=2.8,
                                          warning_intensity_multiplier=2.0),
        'rain': WeatherAdaptationProfile(speed_reduction_percent=15, braking_multiplier=1.5,
                                         warning_intensity_multiplier=1.3),
        'snow': WeatherAdaptationProfile(speed_reduction_percent=35, braking_multiplier=2.5,
                                         warning_intensity_multiplier=1.8),
        'fog': WeatherAdaptationProfile(speed_reduction_percent=25, braking_multiplier=1.4,
                                        warning_intensity_multiplier=1.5),
        'clear': WeatherAdaptationProfile(),
    }


class SafetyConfig(BaseModel):
    """
    Every numeric constant used by the risk engine and the orchestrator.

    Tier tables are lists of (upper_bound, value) pairs checked in order;
    bounds are exclusive unless the field says otherwise.

    Usage:
        config = SafetyConfig()                             # defaults
        config = SafetyConfig(alert_thresholds={'warning': 50, ...})
        config = SafetyConfig.from_dict({'lookaheadDistanceM': 200})
    """

    # ---- Overspeed ----
    # (max_delta_kmh inclusive, risk); deltas above the last bound get overspeed_max_risk
    overspeed_tiers: List[Tuple[float, int]] = Field(
        default_factory=lambda: [(0, 0), (5, 20), (10, 40), (20, 65)])
    overspeed_max_risk: int = 85
    stress_overspeed_threshold: float = 60
    stress_overspeed_bonus: int = 10

    # Risk multiplier per weather condition (unknown conditions use 1.0)
    weather_risk_multipliers: Dict[str, float] = Field(default_factory=lambda: {
        'clear': 1.0, 'clouds': 1.0, 'fog': 1.2, 'rain': 1.3, 'storm': 1.5, 'snow': 1.6,
    })

    # ---- Sharp turn ----
    lookahead_distance_m: float = 300.0
    # (max_radius_m exclusive, base risk); anything wider is not a curve
    curve_radius_tiers: List[Tuple[float, int]] = Field(
        default_factory=lambda: [(61, 80), (152, 60), (305, 35), (915, 15)])
    curve_near_distance_m: float = 50.0
    curve_near_multiplier: float = 1.5
    curve_mid_distance_m: float = 100.0
    curve_mid_multiplier: float = 1.2
    curve_far_distance_m: float = 250.0
    curve_far_multiplier: float = 0.7
    curve_speed_factor: float = 0.5

    # ---- Collision ----
    # (max_distance_m exclusive, base risk)
    collision_distance_tiers: List[Tuple[float, int]] = Field(
        default_factory=lambda: [(50, 90), (100, 70), (200, 45), (300, 25)])
    severe_hazard_threshold: float = 80
    severe_hazard_multiplier: float = 1.3
    stress_collision_threshold: float = 70
    stress_collision_bonus: int = 15
    camera_severity: int = 60

    # ---- Late braking ----
    min_braking_speed_kmh: float = 10.0
    reaction_time_normal_sec: float = 1.5
    reaction_time_stressed_sec: float = 2.5
    stress_reaction_threshold: float = 60
    road_friction: Dict[str, float] = Field(default_factory=lambda: {
        'dry': 0.8, 'rain': 0.4, 'storm': 0.4, 'snow': 0.2, 'ice': 0.1, 'fog': 0.36,
    })
    braking_deficit_factor: float = 150.0
    # (max_margin_m exclusive, risk) when the stopping distance fits
    braking_margin_tiers: List[Tuple[float, int]] = Field(
        default_factory=lambda: [(20, 50), (50, 25)])

    # ---- Lane deviation (stress-only placeholder) ----
    # (min_stress exclusive, risk), checked in order
    lane_deviation_tiers: List[Tuple[float, int]] = Field(
        default_factory=lambda: [(75, 45), (60, 25)])

    # ---- Overall aggregation ----
    risk_weights: Dict[str, float] = Field(default_factory=lambda: {
        'operational': 0.20, 'environmental': 0.35, 'hazards': 0.15, 'human': 0.30,
    })
    overspeed_weight: float = 0.4
    late_braking_weight: float = 0.6
    sharp_turn_weight: float = 0.7
    lane_deviation_weight: float = 0.3

    # ---- Driver defaults ----
    default_driver_stress: float = 20
    default_driver_focus: float = 80

    # ---- Risk factors ----
    factor_threshold: int = 20
    factor_critical_score: int = 75
    factor_high_score: int = 50
    factor_moderate_score: int = 35

    # ---- Alerting ----
    alert_thresholds: Dict[str, float] = Field(default_factory=lambda: {
        'warning': 60, 'caution': 75, 'critical': 90,
    })
    cooldowns_sec: Dict[str, float] = Field(default_factory=lambda: {
        'warning': 10.0, 'caution': 8.0, 'critical': 5.0,
    })
    top_factor_count: int = 3
    stress_message_threshold: float = 60
    hud_flash_color: str = 'red'
    hud_flash_duration_ms: int = 1000

    # ---- Weather adaptation ----
    heavy_rain_precipitation_mm_h: float = 10.0
    weather_adaptation: Dict[str, WeatherAdaptationProfile] = Field(
        default_factory=_default_weather_profiles)

    # ---- Scheduler ----
    prediction_interval_sec: float = 2.0
    significant_speed_delta_kmh: float = 10.0
    significant_heading_delta_deg: float = 30.0
    significant_displacement_m: float = 50.0

    # ---- Driver-state bootstrap ----
    bootstrap_max_attempts: int = 5
    bootstrap_base_delay_sec: float = 0.1
    bootstrap_timeout_sec: float = 5.0

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "alertThresholds": {"warning": 60, "caution": 75, "critical": 90},
                "cooldownsSec": {"warning": 10, "caution": 8, "critical": 5},
                "predictionIntervalSec": 2.0
            }
        }

    @field_validator('weather_risk_multipliers', 'road_friction', 'risk_weights',
                     'alert_thresholds', 'cooldowns_sec', 'weather_adaptation')
    @classmethod
    def _merge_over_defaults(cls, value, info: ValidationInfo):
        """Partial tables override only the keys they name"""
        defaults = cls.model_fields[info.field_name].default_factory()
        return {**defaults, **value}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SafetyConfig':
        """Build from a (possibly camelCase) dict; missing keys keep defaults"""
        return cls.model_validate(data or {})

    def cooldown_for(self, level: str) -> float:
        """Cooldown in seconds for an alert level"""
        return float(self.cooldowns_sec.get(level, 0.0))


class ConfigManager:
    """
    Manage configuration from YAML and JSON files

    Provides:
    - Load all config files on startup
    - Dot notation access: config.get('safety.cooldownsSec.caution')
    - Hot reload capability
    - Default values for missing keys
    """

    def __init__(self, config_dir: str = None):
        """
        Initialize configuration manager

        Args:
            config_dir: Path to config directory (default: project_root/config)
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = Path(__file__).parent.parent / "config"

        self.configs: Dict[str, Any] = {}
        self._load_all_configs()

    def _load_all_configs(self):
        """Load all configuration files from config directory"""
        if not self.config_dir.exists():
            print(f"   [CONFIG] No config directory at {self.config_dir}, using defaults")
            return

        for yaml_file in sorted(self.config_dir.glob("*.yaml")):
            try:
                with open(yaml_file, 'r') as f:
                    self.configs[yaml_file.stem] = yaml.safe_load(f) or {}
                    print(f"   [CONFIG] Loaded: {yaml_file.name}")
            except (OSError, yaml.YAMLError) as e:
                print(f"   [WARN] Failed to load {yaml_file.name}: {e}")

        for json_file in sorted(self.config_dir.glob("*.json")):
            try:
                with open(json_file, 'r') as f:
                    self.configs[json_file.stem] = json.load(f)
                    print(f"   [CONFIG] Loaded: {json_file.name}")
            except (OSError, json.JSONDecodeError) as e:
                print(f"   [WARN] Failed to load {json_file.name}: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot notation key

        Examples:
            config.get('safety.alertThresholds.critical')
            config.get('safety.predictionIntervalSec')

        Args:
            key: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.configs
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def get_safety_config(self) -> Dict[str, Any]:
        """Get safety configuration section"""
        return self.configs.get('safety', {})

    def reload(self):
        """Reload all configuration files"""
        print("[CONFIG] Reloading configuration...")
        self.configs.clear()
        self._load_all_configs()
        print("[OK] Configuration reloaded")

    def set(self, key: str, value: Any):
        """
        Set a configuration value (runtime only, not persisted)

        Args:
            key: Dot-separated key path
            value: Value to set
        """
        keys = key.split('.')
        config = self.configs

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value


def load_safety_config(config_dir: str = None) -> SafetyConfig:
    """
    Load SafetyConfig from the 'safety' document of a config directory

    Without config_dir the shared get_config() manager (project config/) is used.

    Raises pydantic.ValidationError on a malformed document.
    """
    manager = ConfigManager(config_dir) if config_dir else get_config()
    return SafetyConfig.from_dict(manager.get_safety_config())


# Global configuration instance (created on first use)
_config: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = ConfigManager()
    return _config
