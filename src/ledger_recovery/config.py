"""Configuration system for the ledger recovery engine.

Pydantic Settings-based configuration with environment variable support.
Defaults reproduce the scanner behaviour that was tuned against real Money
files, so most callers never need to touch these.

Usage:
    from ledger_recovery.config import RecoveryConfig

    config = RecoveryConfig()
    print(config.scanner.mbf_strides)

    # Scan with a smaller prefix when only a quick sniff is needed
    from ledger_recovery.config import ScannerConfig
    quick = ScannerConfig(prefix_limit=8192)
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScannerConfig(BaseSettings):
    """Tunables for the binary heuristic scanner.

    Environment Variables:
        LEDGER_SCANNER_MNY_STRIDE: Record stride for .mny files
        LEDGER_SCANNER_MNY_SLOTS: Probe slots per .mny window
        LEDGER_SCANNER_MBF_STRIDES: JSON list of strides tried for .mbf files
        LEDGER_SCANNER_MBF_SLOTS: Probe slots per .mbf window
        LEDGER_SCANNER_PREFIX_LIMIT: Bytes scanned per stride in .mbf files
        LEDGER_SCANNER_MAX_RECORDS: Record cap for .mny files
        LEDGER_SCANNER_MAX_RECORDS_PER_STRIDE: Record cap per .mbf stride
        LEDGER_SCANNER_PATTERN_LIMIT: Bytes covered by the fallback search
        LEDGER_SCANNER_MIN_FIELDS_PER_RECORD: Fields a window needs to count
        LEDGER_SCANNER_MIN_RECORDS: Records needed before asking for a mapping
        LEDGER_SCANNER_PROGRESS_INTERVAL: Bytes between progress reports
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_SCANNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mny_stride: int = Field(
        default=256,
        gt=0,
        description="Fixed record stride guessed for .mny data files",
    )
    mny_slots: int = Field(
        default=10,
        gt=0,
        le=64,
        description="Field slots probed in each .mny window",
    )
    mbf_strides: list[int] = Field(
        default_factory=lambda: [128, 256, 512, 1024],
        description="Strides tried in order for .mbf backups",
    )
    mbf_slots: int = Field(
        default=20,
        gt=0,
        le=64,
        description="Field slots probed in each .mbf window",
    )
    prefix_limit: int = Field(
        default=50_000,
        ge=0,
        description="Only this many leading bytes are scanned per .mbf stride",
    )
    max_records: int = Field(
        default=10_000,
        gt=0,
        description="Maximum raw records collected from a .mny file",
    )
    max_records_per_stride: int = Field(
        default=100,
        gt=0,
        description="Maximum raw records collected per .mbf stride",
    )
    pattern_limit: int = Field(
        default=100_000,
        ge=0,
        description="Byte offsets covered by the fallback pattern search",
    )
    min_fields_per_record: int = Field(
        default=3,
        gt=0,
        description="Classified fields a window needs to become a record",
    )
    min_records: int = Field(
        default=10,
        ge=0,
        description="A stride must yield more than this many records",
    )
    progress_interval: int = Field(
        default=1024 * 1024,
        gt=0,
        description="Bytes scanned between progress callbacks",
    )

    @field_validator("mbf_strides")
    @classmethod
    def validate_strides(cls, v: list[int]) -> list[int]:
        """Strides must be a non-empty list of positive sizes."""
        if not v:
            raise ValueError("At least one stride is required")
        if any(stride <= 0 for stride in v):
            raise ValueError(f"Strides must be positive: {v}")
        return v


class RecoveryConfig(BaseSettings):
    """Root configuration for hosts embedding the recovery engine.

    Environment Variables:
        LEDGER_ENV: Environment name (development, staging, production, test)
        LEDGER_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        LEDGER_JSON_LOGS: Render logs as JSON lines instead of console text
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: str = Field(
        default="development",
        description="Environment name (development, staging, production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    json_logs: bool = Field(
        default=False,
        description="Emit JSON log lines",
    )

    scanner: ScannerConfig = Field(default_factory=ScannerConfig)

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment name."""
        valid_envs = {"development", "staging", "production", "test"}
        v_lower = v.lower().strip()
        if v_lower not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of: {valid_envs}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper().strip()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {valid_levels}")
        return v_upper

    @property
    def is_debug(self) -> bool:
        return self.log_level == "DEBUG"
