"""
Configuration module for the geomatch discovery service.

Loads environment variables and provides configuration singletons.
Uses pydantic for validation.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Config(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All values come from .env file or system environment.
    Type hints provide validation (pydantic converts types automatically).
    """

    # ============================================================
    # FIREBASE CONFIGURATION (REQUIRED)
    # ============================================================
    FIREBASE_PROJECT_ID: str
    """Firebase project ID. Find in Firebase Console → Project Settings."""

    GOOGLE_APPLICATION_CREDENTIALS: str = "/config/serviceAccountKey.json"
    """Path to Firebase service account JSON file."""

    # ============================================================
    # DISCOVERY CONFIGURATION
    # ============================================================
    MAX_CANDIDATES: int = 500
    """Maximum candidate rows fetched from Firestore per discovery call."""

    DEFAULT_MIN_RADIUS_KM: float = 0.0
    """Lower bound of the distance band when no radius range is supplied."""

    DEFAULT_MAX_RADIUS_KM: float = 1000.0
    """Upper bound of the distance band when no radius range is supplied."""

    # ============================================================
    # SECURITY CONFIGURATION
    # ============================================================
    API_TOKEN: Optional[str] = None
    """Shared bearer secret. When set, non-system routes require it."""

    # ============================================================
    # SERVER CONFIGURATION
    # ============================================================
    PORT: int = 8000
    """Port to run FastAPI server on. Default: 8000."""

    HOST: str = "0.0.0.0"
    """Host to bind to. 0.0.0.0 = accessible from network."""

    DEBUG: bool = False
    """Enable debug logging. Set True for development, False for production."""

    class Config:
        """Pydantic configuration."""
        env_file = ".env"  # Read from .env file
        case_sensitive = True  # Variable names are case-sensitive
        extra = "ignore"  # Ignore extra env vars not defined above


# ============================================================
# SINGLETON INSTANCE
# ============================================================
# Load config once at startup, reuse throughout app
config = Config()


# ============================================================
# VALIDATION AT STARTUP
# ============================================================
def validate_config() -> dict:
    """
    Validate that required config values are set.

    Called at app startup to fail fast if config is incomplete.

    Returns:
        dict: Status of each checked field

    Raises:
        ValueError: If required config is missing or inconsistent
    """
    errors = []

    if not config.FIREBASE_PROJECT_ID:
        errors.append("FIREBASE_PROJECT_ID is required")

    if config.DEFAULT_MIN_RADIUS_KM < 0:
        errors.append("DEFAULT_MIN_RADIUS_KM must not be negative")

    if config.DEFAULT_MIN_RADIUS_KM > config.DEFAULT_MAX_RADIUS_KM:
        errors.append(
            "DEFAULT_MIN_RADIUS_KM must not exceed DEFAULT_MAX_RADIUS_KM"
        )

    if config.MAX_CANDIDATES <= 0:
        errors.append("MAX_CANDIDATES must be positive")

    if errors:
        raise ValueError(f"Configuration errors:\n" + "\n".join([f"  - {e}" for e in errors]))

    return {
        "firebase": "✓ Configured" if config.FIREBASE_PROJECT_ID else "✗ Missing",
        "radius_band": f"{config.DEFAULT_MIN_RADIUS_KM}-{config.DEFAULT_MAX_RADIUS_KM} km",
        "auth": "✓ Token required" if config.API_TOKEN else "✗ Open",
    }


if __name__ == "__main__":
    """Allow testing config by running: python -m geomatch.config"""
    try:
        status = validate_config()
        print("✅ Configuration is valid!")
        print("\nConfiguration Status:")
        for key, value in status.items():
            print(f"  {key}: {value}")
    except ValueError as e:
        print(f"❌ Configuration error:\n{e}")
        exit(1)
