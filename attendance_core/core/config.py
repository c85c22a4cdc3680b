# attendance_core/core/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from attendance_core.schemas.policy import PolicyConstants


class Settings(BaseSettings):
    """
    Global configuration for the attendance core.

    Values are loaded from environment variables (or a local .env file) at
    runtime. Policy values map one-to-one onto PolicyConstants; see
    `get_policy_constants`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Attendance Core"
    APP_ENV: str = Field("local", description="Environment name: local/dev/stage/prod")
    LOG_LEVEL: str = Field(
        "INFO",
        description="Log level applied to the attendance_core logger hierarchy.",
    )

    # --- Roster merging ---
    PRESERVE_LEFT_PARTICIPANTS: bool = Field(
        default=True,
        description=(
            "Keep participants missing from the latest batch in the roster, "
            "marked as left, until they age out."
        ),
    )
    PARTICIPANT_MAX_LEFT_AGE_SECONDS: int = Field(
        default=300,
        description="Seconds a participant may be missing from batches before eviction.",
    )

    # --- Attendance policy ---
    TARDINESS_THRESHOLD_PERCENT: float = Field(
        default=0.25,
        description="Fraction of class duration after which an arrival is tardy.",
    )
    TARDINESS_TO_ABSENCE_RATIO: int = Field(
        default=3,
        description="Number of tardiness instances that convert to one absence.",
    )
    ABSENCE_THRESHOLD_PERCENT: float = Field(
        default=0.17,
        description="Fraction of total sessions/contact hours that triggers D/F eligibility.",
    )
    DF_CONSECUTIVE_WEEKS_THRESHOLD: int = Field(
        default=3,
        description="Consecutive weeks of unexcused absences that trigger D/F eligibility.",
    )
    INSTRUCTOR_WAIT_THRESHOLD_PERCENT: float = Field(
        default=1 / 3,
        description="Fraction of class students must wait for a late instructor.",
    )
    AT_RISK_RATIO: float = Field(
        default=0.8,
        description="Fraction of a limit at which a student is flagged at risk.",
    )
    SEMESTER_MONTHS: int = Field(default=4, description="Months in the session-count window.")
    DAYS_PER_MONTH: int = Field(default=30, description="Days per month in the session-count window.")
    DEFAULT_WEEKS_IN_SEMESTER: int = Field(
        default=18,
        description="Semester length in weeks used for contact-hour totals.",
    )
    DEFAULT_SESSION_COUNT: int = Field(
        default=18,
        description="Session count used when the schedule has no weekdays or start date.",
    )
    DEFAULT_CLASS_DURATION_MINUTES: int = Field(
        default=90,
        description="Class duration used when the schedule has no start/end time.",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the package.
    """
    return Settings()


def get_policy_constants(settings: Settings | None = None) -> PolicyConstants:
    """
    Build the immutable PolicyConstants from settings.

    Services take PolicyConstants explicitly; this is the single place where
    environment configuration turns into a policy regime.
    """
    settings = settings or get_settings()
    return PolicyConstants(
        tardiness_threshold_percent=settings.TARDINESS_THRESHOLD_PERCENT,
        tardiness_to_absence_ratio=settings.TARDINESS_TO_ABSENCE_RATIO,
        absence_threshold_percent=settings.ABSENCE_THRESHOLD_PERCENT,
        df_consecutive_weeks_threshold=settings.DF_CONSECUTIVE_WEEKS_THRESHOLD,
        instructor_wait_threshold_percent=settings.INSTRUCTOR_WAIT_THRESHOLD_PERCENT,
        at_risk_ratio=settings.AT_RISK_RATIO,
        semester_days=settings.SEMESTER_MONTHS * settings.DAYS_PER_MONTH,
        weeks_in_semester=settings.DEFAULT_WEEKS_IN_SEMESTER,
        default_session_count=settings.DEFAULT_SESSION_COUNT,
        default_class_duration_minutes=settings.DEFAULT_CLASS_DURATION_MINUTES,
    )
