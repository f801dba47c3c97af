"""Authentication configuration."""

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (seconds for short windows,
    hours for longer ones) to make configuration intuitive.
    """

    # Session settings
    session_expiry_hours: int = Field(
        default=2160,  # 90 days
        description="Session lifetime in hours",
        ge=1,
        le=2160,
    )

    # Booking mutation rate limiting
    mutation_rate_limit_attempts: int = Field(
        default=30,
        description="Max booking mutations per actor per window",
        ge=1,
        le=1000,
    )
    mutation_rate_limit_window_seconds: int = Field(
        default=60,
        description="Mutation rate limit window duration",
        ge=1,
        le=3600,
    )
