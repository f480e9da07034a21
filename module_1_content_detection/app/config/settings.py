"""Configuration utilities for Module 1 content detection."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..models import PerformanceTier

# Tile edge (px) per tier for frames whose shorter side is >=1080, >=720, or smaller.
DEFAULT_TILE_EDGES: Dict[str, List[int]] = {
    PerformanceTier.ULTRA_FAST.value: [96, 80, 64],
    PerformanceTier.FAST.value: [96, 80, 64],
    PerformanceTier.BALANCED.value: [160, 128, 96],
    PerformanceTier.QUALITY.value: [160, 128, 96],
}


class DetectionSettings(BaseSettings):
    """Detection configuration sourced from environment variables or defaults."""

    model_config = SettingsConfigDict(env_prefix="GUARD_", case_sensitive=False, protected_namespaces=())

    model_path: Optional[Path] = Field(default=None, description="ONNX classifier weights; heuristic only when unset.")
    model_input_size: int = Field(default=224, ge=32)
    performance_tier: PerformanceTier = Field(default=PerformanceTier.BALANCED)
    flag_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    max_flagged_tiles: int = Field(default=10, ge=1)
    min_tile_fraction: float = Field(default=0.25, gt=0.0, le=1.0)
    merge_overlap_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    tile_edges: Dict[str, List[int]] = Field(default_factory=lambda: {k: list(v) for k, v in DEFAULT_TILE_EDGES.items()})
    tier_profile_path: Optional[Path] = Field(default=None, description="YAML file overriding tile edges per tier.")
    cache_ttl_seconds: float = Field(default=5.0, gt=0.0)
    cache_capacity: int = Field(default=32, ge=1)
    max_workers: int = Field(default=4, ge=1)
    tile_batch_size: int = Field(default=10, ge=1)
    metrics_window: int = Field(default=100, ge=1)
    violation_alert_threshold: int = Field(default=5, ge=1)
    log_format: str = Field(default="text")
    data_dir: Path = Field(
        default=Path(__file__).resolve().parents[2] / "data",
        description="Directory for JSON detection records.",
    )
    preview_dir: Path = Field(
        default=Path(__file__).resolve().parents[2] / "output_frames",
        description="Directory for blurred preview frames.",
    )
    results_filename: str = Field(default="detections.json")
    flush_every_n_frames: int = Field(default=30, ge=1)
    process_every_n_frames: int = Field(default=1, ge=1)
    preview_blur_kernel: int = Field(default=99, ge=3)

    @field_validator("model_path", "tier_profile_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Optional[str | Path]) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser()

    @field_validator("data_dir", "preview_dir", mode="before")
    @classmethod
    def _expand_dir(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    @field_validator("performance_tier", mode="before")
    @classmethod
    def _parse_tier(cls, value: str | PerformanceTier) -> PerformanceTier:
        return PerformanceTier.parse(value)

    @field_validator("tile_edges", mode="after")
    @classmethod
    def _merge_tile_edges(cls, value: Dict[str, List[int]]) -> Dict[str, List[int]]:
        merged = {tier: list(edges) for tier, edges in DEFAULT_TILE_EDGES.items()}
        for tier_name, edges in value.items():
            tier = PerformanceTier.parse(tier_name)
            if len(edges) != 3:
                raise ValueError(f"tile_edges.{tier_name} must list three edge sizes")
            merged[tier.value] = [int(edge) for edge in edges]
        return merged

    @model_validator(mode="after")
    def _apply_tier_profile(self) -> "DetectionSettings":
        profile_path = self.tier_profile_path
        if profile_path is None or not profile_path.exists():
            return self
        with profile_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
        edges = payload.get("tile_edges", {}) or {}
        for tier_name, values in edges.items():
            tier = PerformanceTier.parse(tier_name)
            if not isinstance(values, (list, tuple)) or len(values) != 3:
                raise ValueError(f"tile_edges.{tier_name} must list three edge sizes")
            self.tile_edges[tier.value] = [int(v) for v in values]
        return self

    def tile_edge_table(self, tier: PerformanceTier) -> List[int]:
        return self.tile_edges[tier.value]


def load_settings(**overrides: object) -> DetectionSettings:
    """Return detection settings, applying optional overrides."""

    return DetectionSettings(**overrides)
