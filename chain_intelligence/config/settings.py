"""Engine configuration management"""

from pathlib import Path
from typing import Annotated, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .environment import EnvironmentManager


class PerformanceSettings(BaseModel):
    """Lane scoring and status thresholds"""
    degraded_uptime_pct: float = Field(default=98.0, description="Uptime below this marks a lane degraded")
    congested_load_pct: float = Field(default=80.0, description="Load above this marks a lane congested")
    slow_response_ms: float = Field(default=300.0, description="Response time above this marks a lane slow")
    slow_lane_factor: float = Field(default=1.5, description="Multiple of fleet average that flags a slow lane")
    high_load_pct: float = Field(default=70.0, description="Load above this triggers a balancing recommendation")

    @field_validator('slow_lane_factor')
    @classmethod
    def validate_slow_lane_factor(cls, v):
        if v <= 1:
            raise ValueError("slow_lane_factor must be greater than 1")
        return v


class CostSettings(BaseModel):
    """Gas multipliers and competitiveness cut-offs"""
    transaction_gas: int = Field(default=21000, description="Gas units of a plain transaction")
    deployment_gas: int = Field(default=2000000, description="Gas units of a contract deployment")
    token_transfer_gas: int = Field(default=25000, description="Gas units of a token transfer")
    contract_call_gas: int = Field(default=50000, description="Gas units of a contract call")
    excellent_above: float = Field(default=20.0)
    good_above: float = Field(default=0.0)
    average_above: float = Field(default=-20.0)
    cost_unit: str = Field(default="KDA", description="Unit label used in savings text")

    @model_validator(mode='after')
    def validate_rating_order(self):
        if not self.excellent_above > self.good_above > self.average_above:
            raise ValueError("rating cut-offs must be strictly decreasing")
        return self


class RoutingSettings(BaseModel):
    """Route scoring constants"""
    base_time_sec: float = Field(default=2.0)
    base_cost: float = Field(default=0.001)
    hop_time_factor: float = Field(default=1.5)
    hop_efficiency_penalty: float = Field(default=15.0)
    min_efficiency: float = Field(default=10.0)
    time_penalty_per_sec: float = Field(default=5.0)
    cost_penalty_factor: float = Field(default=1000.0)
    max_alternatives: int = Field(default=3, ge=0)


class LoadBalancingSettings(BaseModel):
    rebalance_threshold_pct: float = Field(default=10.0, description="Deviation from target that triggers an action")
    high_priority_threshold_pct: float = Field(default=30.0, description="Deviation that makes an action high priority")

    @model_validator(mode='after')
    def validate_thresholds(self):
        if self.high_priority_threshold_pct < self.rebalance_threshold_pct:
            raise ValueError("high_priority_threshold_pct must not be below rebalance_threshold_pct")
        return self


class ArbitrageSettings(BaseModel):
    min_spread_pct: float = Field(default=0.1, description="Smallest price gap considered at all")
    fee_threshold_pct: float = Field(default=0.5, description="Gap that must be exceeded to be profitable")

    @model_validator(mode='after')
    def validate_thresholds(self):
        if self.fee_threshold_pct < self.min_spread_pct:
            raise ValueError("fee_threshold_pct must not be below min_spread_pct")
        return self


class TrendSettings(BaseModel):
    change_threshold_pct: float = Field(default=5.0, description="Half-over-half change that counts as a trend")
    volatility_medium: float = Field(default=0.10)
    volatility_high: float = Field(default=0.20)
    optimal_window_count: int = Field(default=6, ge=1, le=24)
    history_size: int = Field(default=24, ge=2, description="Rolling window kept by the sampling service")

    @model_validator(mode='after')
    def validate_volatility(self):
        if not 0 < self.volatility_medium < self.volatility_high:
            raise ValueError("volatility cut-offs must satisfy 0 < medium < high")
        return self


class ReportSettings(BaseModel):
    top_recommendations: int = Field(default=5, ge=1)
    rebalance_recommendations: int = Field(default=2, ge=0)
    refresh_interval_sec: float = Field(default=300.0, description="Advertised delay until the next report")
    report_version: str = Field(default="1.0")

    @field_validator('refresh_interval_sec')
    @classmethod
    def validate_refresh_interval(cls, v):
        if v <= 0:
            raise ValueError("refresh_interval_sec must be positive")
        return v


class IntelligenceSettings(BaseSettings):
    """Main engine settings"""
    environment: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Render logs as JSON")
    lanes: Annotated[List[str], NoDecode] = Field(default_factory=list, description="Configured lane identifiers")
    sampling_interval_sec: float = Field(default=60.0, description="Delay between sampling ticks")

    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)
    costs: CostSettings = Field(default_factory=CostSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    load_balancing: LoadBalancingSettings = Field(default_factory=LoadBalancingSettings)
    arbitrage: ArbitrageSettings = Field(default_factory=ArbitrageSettings)
    trends: TrendSettings = Field(default_factory=TrendSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)

    model_config = SettingsConfigDict(
        env_prefix="CHAIN_INTEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator('lanes', mode='before')
    @classmethod
    def normalize_lanes(cls, v):
        if isinstance(v, str):
            v = [part for part in v.split(",") if part.strip()]
        lanes = [str(lane).strip() for lane in (v or [])]
        if len(set(lanes)) != len(lanes):
            raise ValueError("lane identifiers must be unique")
        return lanes

    @field_validator('sampling_interval_sec')
    @classmethod
    def validate_sampling_interval(cls, v):
        if v <= 0:
            raise ValueError("sampling_interval_sec must be positive")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = str(v).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level

    @classmethod
    def load_from_yaml(
        cls,
        yaml_path: Union[str, Path],
        env_manager: Optional[EnvironmentManager] = None
    ) -> "IntelligenceSettings":
        """Load settings from YAML file, interpolating ${VAR} placeholders"""
        env = env_manager or EnvironmentManager(load_files=False)
        with open(yaml_path, 'r') as f:
            config_str = env.interpolate_config(f.read())
        config_dict = yaml.safe_load(config_str) or {}
        return cls(**config_dict)
