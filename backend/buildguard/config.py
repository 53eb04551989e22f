"""Configuration: environment settings plus the limit objects injected into the core.

The validators and repair engine never read the environment themselves.
Callers build a SafetyLimits (directly or via Settings.safety_limits()) and pass
it into the constructors.
"""

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class WorldEditLimits(BaseModel):
    """Ceilings for world-edit scale operations."""

    enabled: bool = True
    max_selection_volume: int = 50_000
    max_selection_dimension: int = 50
    max_commands_per_build: int = 100
    fallback_on_error: bool = True


class SafetyLimits(BaseModel):
    """Hard and advisory ceilings for a single blueprint."""

    max_blocks: int = 10_000
    max_unique_blocks: int = 15
    max_height: int = 256
    max_width: int = 100
    max_depth: int = 100
    max_steps: int = 1000
    max_retries: int = 3
    min_quality_score: float = 0.7
    require_feature_completion: bool = True
    coordinate_slack: int = Field(default=10, description="Max auto-expansion past declared size")
    world_edit: WorldEditLimits = Field(default_factory=WorldEditLimits)


class ScoringConfig(BaseModel):
    """Product-tuned multipliers and thresholds used by the quality scorers."""

    # Profile structural requirements
    missing_roof_penalty: float = 0.9
    missing_walls_penalty: float = 0.85
    missing_door_penalty: float = 0.95
    missing_foundation_penalty: float = 0.9
    walls_min_steps: int = 3
    profile_pass_threshold: float = 0.5
    grade_thresholds: dict[str, float] = Field(
        default_factory=lambda: {"A": 0.9, "B": 0.8, "C": 0.7, "D": 0.5}
    )
    floating_min_y: int = 10
    foundation_max_y: int = 2

    # Legacy quality scorer
    missing_feature_penalty: float = 0.7
    no_foundation_penalty: float = 0.9
    no_walls_penalty: float = 0.85
    no_roof_penalty: float = 0.9
    roof_expected_min_height: int = 5
    proportion_tolerance: float = 0.2
    proportion_penalty: float = 0.95
    unused_palette_penalty: float = 0.98
    undeclared_block_penalty: float = 0.95

    # CSD phase balance
    csd_min_detail_count: int = 10
    csd_min_detail_percent: float = 25.0
    csd_max_core_percent: float = 50.0

    # Organic builds
    organic_check_penalty: float = 0.15
    organic_min_score: float = 0.7


class SpatialConfig(BaseModel):
    """Thresholds for the occupancy grid and connectivity analysis."""

    sample_volume_threshold: int = 10_000
    max_shell_cells: int = 20_000
    clip_margin: int = 10
    min_component_size: int = 3
    floating_error_size: int = 10
    max_floating_reported: int = 3
    roof_gap_warning: int = 1
    roof_gap_error: int = 5
    max_pillar_issues: int = 10
    foundation_band: int = 2
    foundation_min_blocks: int = 10


class GeometryConfig(BaseModel):
    """Overhang tolerance for size containment."""

    tolerance_x: int = 2
    tolerance_y: int = 5
    tolerance_z: int = 2


class RepairConfig(BaseModel):
    """Bounds for the repair state machine."""

    max_attempts: int = 2
    min_quality_score: float = 0.5
    llm_temperature: float = 0.5
    max_payload_size: int = 10_000
    fallback_scale_factor: float = 0.5


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys
    OPENAI_API_KEY: str = ""

    # Logging
    DEBUG: bool = False
    LOG_LEVEL: str = "info"

    # Repair model
    REPAIR_MODEL: str = "gpt-4o"
    LLM_TIMEOUT_SECONDS: float = 120.0
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_DELAY_SECONDS: float = 0.75
    REPAIR_MAX_ATTEMPTS: int = 2

    # Safety limit overrides
    MAX_BLOCKS: int = 10_000
    MAX_UNIQUE_BLOCKS: int = 15
    MAX_HEIGHT: int = 256
    MAX_WIDTH: int = 100
    MAX_DEPTH: int = 100
    MAX_STEPS: int = 1000
    MAX_RETRIES: int = 3
    MIN_QUALITY_SCORE: float = 0.7
    WORLDEDIT_ENABLED: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def safety_limits(self) -> SafetyLimits:
        """Build the SafetyLimits object handed to the validators."""
        return SafetyLimits(
            max_blocks=self.MAX_BLOCKS,
            max_unique_blocks=self.MAX_UNIQUE_BLOCKS,
            max_height=self.MAX_HEIGHT,
            max_width=self.MAX_WIDTH,
            max_depth=self.MAX_DEPTH,
            max_steps=self.MAX_STEPS,
            max_retries=self.MAX_RETRIES,
            min_quality_score=self.MIN_QUALITY_SCORE,
            world_edit=WorldEditLimits(enabled=self.WORLDEDIT_ENABLED),
        )

    def repair_config(self) -> RepairConfig:
        return RepairConfig(max_attempts=self.REPAIR_MAX_ATTEMPTS)


@lru_cache
def get_settings() -> Settings:
    return Settings()
