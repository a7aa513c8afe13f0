"""Configuration settings for the Lifeline coordination core."""

# Load .env into os.environ so GOOGLE_APPLICATION_CREDENTIALS and friends work
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Dict, Optional, Tuple


class Settings(BaseSettings):
    """Global settings for Lifeline.

    Settings can be overridden via environment variables with LIFELINE_ prefix.
    Example: LIFELINE_STORE_BACKEND=firestore
    """

    # Store
    store_backend: str = Field(
        default="memory",
        description="Document store backend: memory or firestore"
    )
    firebase_credentials_path: Optional[str] = Field(
        default=None,
        description="Service account JSON for firebase-admin (falls back to application default credentials)"
    )
    firebase_project_id: Optional[str] = Field(
        default=None,
        description="Firebase project id override"
    )
    transaction_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts for a transaction body before the conflict is surfaced"
    )

    # Donation rules
    cooldown_days_default: int = Field(
        default=90,
        description="Days between donations"
    )
    cooldown_days_female: int = Field(
        default=120,
        description="Days between donations for female donors"
    )
    compatibility_policy: str = Field(
        default="strict",
        description="strict (exact blood group) or medical (ABO/Rh table)"
    )
    min_donor_age: int = Field(
        default=18,
        description="Minimum donor age in years"
    )
    min_donor_weight_kg: int = Field(
        default=50,
        description="Minimum donor weight in kg"
    )

    # Pickup codes
    pickup_code_min: int = Field(default=100000)
    pickup_code_max: int = Field(default=999999)

    # Location fallback when geolocation is denied (Bangalore city centre)
    default_location_lat: float = Field(default=12.9716)
    default_location_lng: float = Field(default=77.5946)

    model_config = {
        "env_prefix": "LIFELINE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def default_location(self) -> Tuple[float, float]:
        """Fallback (lat, lng) pair."""
        return (self.default_location_lat, self.default_location_lng)

    def cooldown_days_for(self, gender: Optional[str]) -> int:
        """Cooldown length for the given gender."""
        if gender and gender.lower() == "female":
            return self.cooldown_days_female
        return self.cooldown_days_default


# Collection names shared with the browser client
COLLECTIONS: Dict[str, str] = {
    "users": "users",
    "requests": "requests",
    "messages": "messages",
    "donations": "donations",
}


# Create singleton instance
settings = Settings()
