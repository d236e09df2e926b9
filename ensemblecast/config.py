"""
EnsembleCast Configuration.

Pydantic Settings v2. Loads from .env and environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Ensemble combination ─────────────────────────────────────────────
    ensemble_strategy: str = Field(default="weighted", alias="ENSEMBLE_STRATEGY")
    sideways_epsilon: float = Field(
        default=1e-6, alias="ENSEMBLE_SIDEWAYS_EPSILON",
        description="Moves with |Δ| at or below this count as sideways in majority voting",
    )
    high_disagreement_threshold: float = Field(
        default=0.25, alias="ENSEMBLE_HIGH_DISAGREEMENT",
    )

    # ── Weight adaptation ────────────────────────────────────────────────
    use_dynamic_weights: bool = Field(default=True, alias="ENSEMBLE_DYNAMIC_WEIGHTS")
    adaptation_rate: float = Field(default=0.1, alias="ENSEMBLE_ADAPTATION_RATE")
    performance_window: int = Field(default=20, alias="ENSEMBLE_PERFORMANCE_WINDOW")
    min_weight: float = Field(default=0.05, alias="ENSEMBLE_MIN_WEIGHT")
    max_weight: float = Field(default=0.60, alias="ENSEMBLE_MAX_WEIGHT")

    # ── Model selection ──────────────────────────────────────────────────
    use_model_selection: bool = Field(default=False, alias="ENSEMBLE_MODEL_SELECTION")
    confidence_threshold: float = Field(default=0.5, alias="ENSEMBLE_CONFIDENCE_THRESHOLD")

    # ── Uncertainty ──────────────────────────────────────────────────────
    uncertainty_method: str = Field(default="variance", alias="UNCERTAINTY_METHOD")
    bootstrap_samples: int = Field(default=200, alias="UNCERTAINTY_BOOTSTRAP_SAMPLES")
    bootstrap_seed: int = Field(default=42, alias="UNCERTAINTY_BOOTSTRAP_SEED")
    conformal_alpha: float = Field(default=0.1, alias="UNCERTAINTY_CONFORMAL_ALPHA")
    calibration_capacity: int = Field(default=500, alias="UNCERTAINTY_CALIBRATION_CAPACITY")

    # ── Risk policy ──────────────────────────────────────────────────────
    weight_market: float = Field(default=0.35, alias="RISK_WEIGHT_MARKET")
    weight_liquidity: float = Field(default=0.25, alias="RISK_WEIGHT_LIQUIDITY")
    weight_credit: float = Field(default=0.20, alias="RISK_WEIGHT_CREDIT")
    weight_operational: float = Field(default=0.15, alias="RISK_WEIGHT_OPERATIONAL")
    weight_systemic: float = Field(default=0.05, alias="RISK_WEIGHT_SYSTEMIC")
    correlation_adjustment: float = Field(default=0.05, alias="RISK_CORRELATION_ADJUSTMENT")
    correlation_cap: float = Field(
        default=0.10, alias="RISK_CORRELATION_CAP",
        description="Upper bound of the matrix-derived correlation adjustment",
    )

    # Severity bands (normalized score)
    severity_medium_threshold: float = Field(default=0.30, alias="SEVERITY_MEDIUM_THRESHOLD")
    severity_high_threshold: float = Field(default=0.60, alias="SEVERITY_HIGH_THRESHOLD")
    severity_critical_threshold: float = Field(default=0.85, alias="SEVERITY_CRITICAL_THRESHOLD")

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")

    @property
    def policy_weights(self) -> dict[str, float]:
        """Risk policy weights keyed by category name."""
        return {
            "market": self.weight_market,
            "liquidity": self.weight_liquidity,
            "credit": self.weight_credit,
            "operational": self.weight_operational,
            "systemic": self.weight_systemic,
        }

    @property
    def severity_thresholds(self) -> tuple[float, float, float]:
        return (
            self.severity_medium_threshold,
            self.severity_high_threshold,
            self.severity_critical_threshold,
        )


settings = Settings()
