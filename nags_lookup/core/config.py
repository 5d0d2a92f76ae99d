from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """
    Application configuration settings.
    Loads from environment variables or .env file.
    """

    # Application
    APP_NAME: str = "NAGS Lookup API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "mongodb://localhost:27017/nags_lookup"
    DATABASE_NAME: str = "nags_lookup"

    # VIN Decoder (NHTSA vPIC)
    NHTSA_API_URL: str = "https://vpic.nhtsa.dot.gov/api/vehicles/DecodeVin/{vin}?format=json"
    VIN_DECODER_TIMEOUT: float = 10.0

    # Distributor scrapers (Tier 2)
    # Feature flags - a disabled distributor never touches the network
    ENABLE_MYGRANT_SCRAPER: bool = False
    ENABLE_PGW_SCRAPER: bool = False
    MYGRANT_BASE_URL: str = "https://www.mygrantglass.com"
    PGW_BASE_URL: str = "https://buypgwautoglass.com"
    DISTRIBUTOR_PRIORITY: List[str] = ["mygrant", "pgw"]

    # Politeness: minimum spacing between requests to one distributor
    DISTRIBUTOR_MIN_DELAY_MS: int = 6000
    DISTRIBUTOR_JITTER_MS: int = 1500
    DISTRIBUTOR_SESSION_TTL_HOURS: int = 4
    DISTRIBUTOR_TIMEOUT: float = 30.0

    # Omega EDI (Tier 3)
    OMEGA_API_BASE_URL: str = "https://app.omegaedi.com/api/2.0"
    OMEGA_API_KEY: str = ""
    OMEGA_TIMEOUT: float = 20.0

    # Retry Queue Worker
    ENABLE_RETRY_WORKER: bool = True
    RETRY_QUEUE_POLL_SECONDS: float = 30.0
    RETRY_QUEUE_BATCH_SIZE: int = 25
    RETRY_MAX_BACKOFF_SECONDS: int = 3600  # 1 hour
    RETRY_DEFAULT_MAX_ATTEMPTS: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
