from datetime import datetime
from enum import Enum, IntEnum
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer


class ContentAction(IntEnum):
    NO_ACTION = 0
    SELECTIVE_BLUR = 1
    FULL_SCREEN_BLUR = 2
    BLOCK_AND_WARN = 3
    IMMEDIATE_CLOSE = 4


class WarningLevel(IntEnum):
    NONE = 0
    MINIMAL = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    CRITICAL = 5


class WarningState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    DISMISSIBLE = "dismissible"
    CLOSED = "closed"


class DecisionThresholds(BaseModel):
    full_screen_coverage: float = Field(default=0.4, ge=0.0, le=1.0)
    full_screen_region_count: int = Field(default=10, ge=1)
    block_region_count: int = Field(default=6, ge=1)
    block_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    selective_region_count: int = Field(default=1, ge=1)
    selective_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    medium_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    immediate_close_coverage: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class DensityMetric(BaseModel):
    coverage_percentage: float
    region_count: int
    max_confidence: float


class QuadrantCoverage(BaseModel):
    top_left: float = 0.0
    top_right: float = 0.0
    bottom_left: float = 0.0
    bottom_right: float = 0.0


class RegionSpatialDistribution(BaseModel):
    quadrants: QuadrantCoverage = Field(default_factory=QuadrantCoverage)
    center_coverage: float = 0.0
    edge_coverage: float = 0.0
    center_regions: int = 0
    edge_regions: int = 0
    clustering_score: float = 0.0
    dominant_location: str = "none"

    @property
    def is_concentrated(self) -> bool:
        return max(self.quadrants.model_dump().values()) > 0.6


class ActionDecision(BaseModel):
    action: ContentAction
    warning_level: WarningLevel
    coverage_percentage: float
    metric: DensityMetric
    reason: str
    spatial: Optional[RegionSpatialDistribution] = None

    @field_serializer("action", "warning_level")
    def _enum_name(self, value: IntEnum) -> str:
        return value.name


class WarningSessionSnapshot(BaseModel):
    state: WarningState
    started_at: Optional[datetime] = None
    required_seconds: int = 0
    remaining_seconds: int = 0
    progress: float = 0.0
    dismissible: bool = False
    escalations: int = 0
    last_closed_at: Optional[datetime] = None


class FrameDecisionRecord(BaseModel):
    frame_id: int
    decided_at: datetime
    action: ContentAction
    warning_level: WarningLevel
    coverage_percentage: float
    region_count: int
    max_confidence: float
    overall_confidence: float
    source: str
    latency_ms: float
    regions: List[List[int]] = Field(default_factory=list)
    reason: str = ""
    warning_state: WarningState = WarningState.IDLE
    spatial: Optional[RegionSpatialDistribution] = None

    @field_serializer("action", "warning_level")
    def _enum_name(self, value: IntEnum) -> str:
        return value.name
