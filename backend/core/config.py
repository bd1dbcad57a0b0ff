"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.

The service refuses to start when the settings needed for authentication
are missing or unusable (see validate_settings).
"""
from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from backend.core.identity.errors import ConfigurationError

# Bounds for challenge lifetime (seconds)
MIN_CHALLENGE_TTL_SECONDS = 30
MAX_CHALLENGE_TTL_SECONDS = 900

# Minimum entropy for challenges (bytes)
MIN_CHALLENGE_BYTES = 16

# Minimum length of a shared HS256 signing secret
MIN_SIGNING_SECRET_LENGTH = 32

SUPPORTED_SESSION_ALGORITHMS = ("HS256", "EdDSA")
SUPPORTED_DIRECTORY_BACKENDS = ("http", "static")
SUPPORTED_COOKIE_SAMESITE = ("strict", "lax", "none")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ignore extra environment variables that aren't defined in the model
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # Identity Service (external DID directory + signature verifier)
    # ============================================================
    identity_service_url: Optional[str] = Field(None, description="Base URL of the identity service")
    identity_resolve_path: str = Field(
        "/api/v1/identity/resolve",
        description="Path of the identity service endpoint mapping an email to a DID"
    )
    identity_verify_path: str = Field(
        "/api/v1/identity/verify-signature",
        description="Path of the identity service signature verification endpoint"
    )
    identity_directory_backend: str = Field(
        "http",
        description="Where identity references are resolved: 'http' (identity service) or 'static' (YAML file)"
    )
    identity_directory_file: str = Field(
        "identity_directory.yaml",
        description="Static directory file name, resolved through CONFIG_DIR"
    )
    directory_timeout_seconds: float = Field(5.0, description="Timeout for directory lookups")
    verifier_timeout_seconds: float = Field(10.0, description="Timeout for signature verification calls")

    # ============================================================
    # Challenges
    # ============================================================
    challenge_ttl_seconds: int = Field(300, description="Lifetime of an issued challenge")
    challenge_bytes: int = Field(32, description="Random bytes per challenge (entropy)")
    challenge_cleanup_interval_seconds: int = Field(60, description="Interval of the expired challenge sweep")
    max_pending_challenges: int = Field(100_000, description="Upper bound on outstanding challenges")

    # ============================================================
    # Sessions
    # ============================================================
    session_signing_algorithm: str = Field("HS256", description="HS256 (shared secret) or EdDSA (Ed25519 key)")
    session_signing_key: Optional[str] = Field(None, description="HS256 signing secret")
    session_signing_key_path: Optional[str] = Field(None, description="Ed25519 private key PEM (EdDSA)")
    session_signing_key_id: str = Field("primary", description="Key identifier written to the token header")
    session_previous_keys: str = Field(
        "",
        description="Comma-separated kid:material pairs accepted for validation only (HS256 secret or EdDSA .pub file path)"
    )
    session_ttl_seconds: int = Field(86400, description="Session lifetime")
    session_issuer: str = Field("wotid-auth", description="iss claim of session tokens")
    session_audience: str = Field("wotid-web", description="aud claim of session tokens")
    session_cookie_name: str = Field("wotid.session-token", description="Session cookie name")
    session_cookie_secure: bool = Field(True, description="Mark the session cookie Secure")
    session_cookie_samesite: str = Field("lax", description="SameSite attribute of the session cookie")

    # ============================================================
    # API Configuration
    # ============================================================
    allowed_origins: str = Field(
        "http://localhost:3000",
        description="Comma-separated CORS allowed origins"
    )
    api_port: int = Field(8000, description="API server port")
    auth_rate_limit_per_minute: int = Field(30, description="Authentication requests per minute per IP")
    auth_burst_size: int = Field(10, description="Burst allowance on top of the per-minute rate")
    max_failed_auth_per_hour: int = Field(20, description="Failed authentications per IP before blocking")
    trusted_ips: str = Field(
        "127.0.0.1,::1",
        description="Comma-separated client IPs never blocked for failed authentications"
    )

    # ============================================================
    # Logging Configuration
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse allowed origins into list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def trusted_ips_list(self) -> List[str]:
        return [ip.strip() for ip in self.trusted_ips.split(",") if ip.strip()]

    @property
    def identity_service_base_url(self) -> str:
        """Identity service URL without trailing slash."""
        return (self.identity_service_url or "").rstrip("/")


def validate_settings(settings: Settings) -> Settings:
    """
    Check that the service can authenticate users with these settings.

    Signing key material is checked when the key ring is loaded
    (backend.core.identity.keys.load_key_ring).

    Raises:
        ConfigurationError: If a required setting is missing or out of range
    """
    if not settings.identity_service_url:
        raise ConfigurationError("IDENTITY_SERVICE_URL must be set")

    if settings.identity_directory_backend not in SUPPORTED_DIRECTORY_BACKENDS:
        raise ConfigurationError(
            f"Unknown IDENTITY_DIRECTORY_BACKEND '{settings.identity_directory_backend}' "
            f"(expected one of {', '.join(SUPPORTED_DIRECTORY_BACKENDS)})"
        )

    if settings.session_signing_algorithm not in SUPPORTED_SESSION_ALGORITHMS:
        raise ConfigurationError(
            f"Unknown SESSION_SIGNING_ALGORITHM '{settings.session_signing_algorithm}' "
            f"(expected one of {', '.join(SUPPORTED_SESSION_ALGORITHMS)})"
        )

    if not MIN_CHALLENGE_TTL_SECONDS <= settings.challenge_ttl_seconds <= MAX_CHALLENGE_TTL_SECONDS:
        raise ConfigurationError(
            f"CHALLENGE_TTL_SECONDS must be between {MIN_CHALLENGE_TTL_SECONDS} "
            f"and {MAX_CHALLENGE_TTL_SECONDS}"
        )

    if settings.challenge_bytes < MIN_CHALLENGE_BYTES:
        raise ConfigurationError(f"CHALLENGE_BYTES must be at least {MIN_CHALLENGE_BYTES}")

    if settings.session_ttl_seconds <= 0:
        raise ConfigurationError("SESSION_TTL_SECONDS must be positive")

    if settings.verifier_timeout_seconds <= 0 or settings.directory_timeout_seconds <= 0:
        raise ConfigurationError("Identity service timeouts must be positive")

    if settings.max_pending_challenges <= 0:
        raise ConfigurationError("MAX_PENDING_CHALLENGES must be positive")

    if settings.session_cookie_samesite not in SUPPORTED_COOKIE_SAMESITE:
        raise ConfigurationError(
            f"Unknown SESSION_COOKIE_SAMESITE '{settings.session_cookie_samesite}' "
            f"(expected one of {', '.join(SUPPORTED_COOKIE_SAMESITE)})"
        )

    # Browsers drop SameSite=None cookies that are not Secure
    if settings.session_cookie_samesite == "none" and not settings.session_cookie_secure:
        raise ConfigurationError("SESSION_COOKIE_SAMESITE=none requires SESSION_COOKIE_SECURE=true")

    return settings


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
