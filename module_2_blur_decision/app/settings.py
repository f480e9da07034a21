import json
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from module_2_blur_decision.core.models import DecisionThresholds


class DecisionSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    module_root: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[1])
    history_path: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[1] / "storage" / "decision_history.json")
    state_snapshot_path: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[1] / "storage" / "warning_state.json")
    threshold_profile_path: Optional[Path] = None
    history_limit: int = Field(default=500, ge=1)
    persist_history: bool = True

    full_screen_coverage: float = Field(default=0.4, ge=0.0, le=1.0)
    full_screen_region_count: int = Field(default=10, ge=1)
    block_region_count: int = Field(default=6, ge=1)
    block_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    selective_region_count: int = Field(default=1, ge=1)
    selective_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    medium_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    immediate_close_coverage: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    reflection_seconds: int = Field(default=15, ge=1)
    repeat_penalty_seconds: int = Field(default=10, ge=0)
    repeat_window_seconds: float = Field(default=60.0, ge=0.0)
    escalation_seconds: int = Field(default=10, ge=0)
    tick_interval_seconds: float = Field(default=1.0, gt=0.0)
    blur_on_timeout: bool = True
    enable_background_ticker: bool = True
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=8000, ge=1, le=65535)

    @model_validator(mode="before")
    @classmethod
    def _apply_profile(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        profile_path = values.get("threshold_profile_path")
        if not profile_path:
            return values
        path = Path(profile_path).expanduser()
        if not path.exists():
            return values
        profile = _read_profile(path)
        merged = dict(profile.get("thresholds", profile))
        merged.update({key: value for key, value in values.items() if value is not None})
        merged["threshold_profile_path"] = path
        return merged

    def thresholds(self) -> DecisionThresholds:
        return DecisionThresholds(
            full_screen_coverage=self.full_screen_coverage,
            full_screen_region_count=self.full_screen_region_count,
            block_region_count=self.block_region_count,
            block_confidence=self.block_confidence,
            selective_region_count=self.selective_region_count,
            selective_confidence=self.selective_confidence,
            medium_confidence=self.medium_confidence,
            immediate_close_coverage=self.immediate_close_coverage,
        )


def _read_profile(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    if path.suffix.lower() == ".json":
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return {}
    else:
        try:
            payload = yaml.safe_load(text)
        except yaml.YAMLError:
            return {}
    return payload if isinstance(payload, dict) else {}


def get_settings() -> DecisionSettings:
    return DecisionSettings()


def load_settings(**overrides: Any) -> DecisionSettings:
    return DecisionSettings(**overrides)
