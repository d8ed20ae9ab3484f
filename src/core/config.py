"""Application configuration via Pydantic settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration object loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Garage Booking API"
    debug: bool = False
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    database_url: str = Field(..., alias="DATABASE_URL")
    redis_url: str | None = Field(None, alias="REDIS_URL")
    jwt_secret: str = Field(..., alias="JWT_SECRET")
    jwt_algorithm: str = "HS256"

    default_timezone: str = Field("Asia/Colombo", alias="DEFAULT_TIMEZONE")

    # Business hours and capacity
    business_open_time: str = Field("08:00", alias="BUSINESS_OPEN_TIME")
    business_close_time: str = Field("18:00", alias="BUSINESS_CLOSE_TIME")
    operating_days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4, 5], alias="OPERATING_DAYS")
    blocked_dates: list[date] = Field(default_factory=list, alias="BLOCKED_DATES")
    slot_granularity_minutes: int = Field(60, alias="SLOT_GRANULARITY_MINUTES")
    bay_capacity: int = Field(3, alias="BAY_CAPACITY")
    lunch_break_enabled: bool = Field(False, alias="LUNCH_BREAK_ENABLED")
    lunch_break_start: str = Field("12:00", alias="LUNCH_BREAK_START")
    lunch_break_end: str = Field("13:00", alias="LUNCH_BREAK_END")
    advance_booking_days: int = Field(30, alias="ADVANCE_BOOKING_DAYS")
    minimum_notice_hours: int = Field(2, alias="MINIMUM_NOTICE_HOURS")
    multi_vehicle_factor: float = Field(0.75, alias="MULTI_VEHICLE_FACTOR")

    # Lifecycle rules
    booking_fee: Decimal = Field(Decimal("5.00"), alias="BOOKING_FEE")
    cancellation_free_until_hours: int = Field(48, alias="CANCELLATION_FREE_UNTIL_HOURS")
    cancellation_fee_percentage: Decimal = Field(Decimal("50"), alias="CANCELLATION_FEE_PERCENTAGE")
    max_modifications: int = Field(2, alias="MAX_MODIFICATIONS")
    modification_cutoff_hours: int = Field(24, alias="MODIFICATION_CUTOFF_HOURS")
    assignment_workload_threshold: int = Field(4, alias="ASSIGNMENT_WORKLOAD_THRESHOLD")

    # Admission lock
    admission_lock_timeout_seconds: float = Field(5.0, alias="ADMISSION_LOCK_TIMEOUT_SECONDS")

    # Notifications
    email_timeout_seconds: float = Field(10.0, alias="EMAIL_TIMEOUT_SECONDS")
    sms_timeout_seconds: float = Field(10.0, alias="SMS_TIMEOUT_SECONDS")
    in_app_timeout_seconds: float = Field(10.0, alias="IN_APP_TIMEOUT_SECONDS")
    push_timeout_seconds: float = Field(5.0, alias="PUSH_TIMEOUT_SECONDS")
    notification_retention_days: int = Field(30, alias="NOTIFICATION_RETENTION_DAYS")
    smtp_host: str = Field("localhost", alias="SMTP_HOST")
    smtp_port: int = Field(587, alias="SMTP_PORT")
    smtp_user: str | None = Field(None, alias="SMTP_USER")
    smtp_password: str | None = Field(None, alias="SMTP_PASSWORD")
    smtp_start_tls: bool = Field(True, alias="SMTP_START_TLS")
    email_from: str = Field("Vehicle Service <noreply@vehicleservice.example>", alias="EMAIL_FROM")
    sms_enabled: bool = Field(False, alias="SMS_ENABLED")
    sms_api_url: str = Field("http://localhost:8081/send", alias="SMS_API_URL")
    sms_country_code: str = Field("94", alias="SMS_COUNTRY_CODE")

    # Rate limiting
    booking_rate_limit: int = Field(10, alias="BOOKING_RATE_LIMIT")
    booking_rate_window_seconds: int = Field(60, alias="BOOKING_RATE_WINDOW_SECONDS")


@dataclass(frozen=True)
class CancellationTier:
    """Fee percentage applied when cancelling within ``within_hours`` of the start."""

    within_hours: int
    percentage: Decimal


@dataclass(frozen=True)
class CancellationPolicy:
    free_until_hours: int = 48
    fee_percentage: Decimal = Decimal("50")
    # Extra, tighter tiers, e.g. 100% inside 2 hours. Checked before the base fee.
    tiers: tuple[CancellationTier, ...] = ()


@dataclass(frozen=True)
class SchedulingConfig:
    """Business-hours and capacity rules injected into the scheduling layer."""

    open_time: str = "08:00"
    close_time: str = "18:00"
    operating_days: frozenset[int] = frozenset({0, 1, 2, 3, 4, 5})
    blocked_dates: frozenset[date] = frozenset()
    slot_granularity_minutes: int = 60
    capacity: int = 3
    lunch_break_enabled: bool = False
    lunch_break_start: str = "12:00"
    lunch_break_end: str = "13:00"
    advance_booking_days: int = 30
    minimum_notice_hours: int = 2
    multi_vehicle_factor: float = 0.75
    booking_fee: Decimal = Decimal("5.00")
    max_modifications: int = 2
    modification_cutoff_hours: int = 24
    assignment_workload_threshold: int = 4
    cancellation: CancellationPolicy = field(default_factory=CancellationPolicy)
    timezone: str = "Asia/Colombo"

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def scheduling_config_from_settings(source: Settings | None = None) -> SchedulingConfig:
    """Build the scheduling rules from environment-backed settings."""
    cfg = source or settings
    return SchedulingConfig(
        open_time=cfg.business_open_time,
        close_time=cfg.business_close_time,
        operating_days=frozenset(cfg.operating_days),
        blocked_dates=frozenset(cfg.blocked_dates),
        slot_granularity_minutes=cfg.slot_granularity_minutes,
        capacity=cfg.bay_capacity,
        lunch_break_enabled=cfg.lunch_break_enabled,
        lunch_break_start=cfg.lunch_break_start,
        lunch_break_end=cfg.lunch_break_end,
        advance_booking_days=cfg.advance_booking_days,
        minimum_notice_hours=cfg.minimum_notice_hours,
        multi_vehicle_factor=cfg.multi_vehicle_factor,
        booking_fee=cfg.booking_fee,
        max_modifications=cfg.max_modifications,
        modification_cutoff_hours=cfg.modification_cutoff_hours,
        assignment_workload_threshold=cfg.assignment_workload_threshold,
        cancellation=CancellationPolicy(
            free_until_hours=cfg.cancellation_free_until_hours,
            fee_percentage=cfg.cancellation_fee_percentage,
        ),
        timezone=cfg.default_timezone,
    )


@lru_cache(1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


settings = get_settings()
