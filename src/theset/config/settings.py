"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from theset.domain.exceptions import ConfigurationError


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_", env_file=".env", extra="ignore"
    )

    url: str = "sqlite+aiosqlite:///./theset.db"
    # Hey future me - service_url is the ELEVATED credential (service role).
    # Reconciliation retries through it exactly once when the normal
    # credential hits a permission error. Leave empty in dev/tests.
    service_url: str | None = None
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    auto_create_tables: bool = False


class SpotifySettings(BaseSettings):
    """Spotify client-credentials settings."""

    model_config = SettingsConfigDict(
        env_prefix="SPOTIFY_", env_file=".env", extra="ignore"
    )

    client_id: str = ""
    client_secret: str = ""
    timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class TicketmasterSettings(BaseSettings):
    """Ticketmaster Discovery API settings."""

    model_config = SettingsConfigDict(
        env_prefix="TICKETMASTER_", env_file=".env", extra="ignore"
    )

    api_key: str = ""
    timeout: float = 30.0


class SetlistFmSettings(BaseSettings):
    """Setlist.fm API settings."""

    model_config = SettingsConfigDict(
        env_prefix="SETLISTFM_", env_file=".env", extra="ignore"
    )

    api_key: str = ""
    timeout: float = 30.0


class SyncSettings(BaseSettings):
    """Freshness windows and throttling for sync jobs."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_", env_file=".env", extra="ignore"
    )

    artist_ttl_hours: int = 24
    show_ttl_hours: int = 24
    venue_ttl_hours: int = 24
    setlist_ttl_hours: int = 24
    track_catalog_ttl_days: int = 7
    # Fixed delay between vendor calls inside loops, not adaptive backoff
    request_delay_seconds: float = 0.5
    sparse_show_threshold: int = 2
    max_setlists_per_import: int = 10
    max_catalog_albums: int = 5
    background_concurrency: int = 4
    # An in-progress sync older than this is treated as abandoned
    stuck_sync_minutes: int = 60


class VotingSettings(BaseSettings):
    """Voting settings."""

    model_config = SettingsConfigDict(
        env_prefix="VOTING_", env_file=".env", extra="ignore"
    )

    anonymous_vote_limit: int = 3


class ApiSettings(BaseSettings):
    """HTTP API settings."""

    model_config = SettingsConfigDict(env_prefix="API_", env_file=".env", extra="ignore")

    host: str = "0.0.0.0"  # nosec B104
    port: int = 8000
    sync_token: str = ""
    cors_origins: list[str] = Field(default_factory=list)


class ObservabilitySettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="OBSERVABILITY_", env_file=".env", extra="ignore"
    )

    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "TheSet"
    log_level: str = "INFO"
    debug: bool = False

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    ticketmaster: TicketmasterSettings = Field(default_factory=TicketmasterSettings)
    setlistfm: SetlistFmSettings = Field(default_factory=SetlistFmSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    voting: VotingSettings = Field(default_factory=VotingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    def missing_sync_credentials(self) -> list[str]:
        """Return the env vars a server-side sync run needs but does not have."""
        missing: list[str] = []
        if not self.database.url:
            missing.append("DATABASE_URL")
        if not self.spotify.client_id:
            missing.append("SPOTIFY_CLIENT_ID")
        if not self.spotify.client_secret:
            missing.append("SPOTIFY_CLIENT_SECRET")
        if not self.ticketmaster.api_key:
            missing.append("TICKETMASTER_API_KEY")
        if not self.setlistfm.api_key:
            missing.append("SETLISTFM_API_KEY")
        return missing

    def require_sync_credentials(self) -> None:
        """Fail fast when any sync credential is absent.

        Raises:
            ConfigurationError: Listing every missing variable at once.
        """
        missing = self.missing_sync_credentials()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
