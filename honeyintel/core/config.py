import logging
import os
from typing import List, Optional
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

from honeyintel.models.schemas import HandlePolicy

# 1. Force load the .env file
load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    PROJECT_NAME: str = "Honeypot Intelligence Engine"
    GOOGLE_API_KEY: Optional[str] = None
    API_KEY: str = "helware-secret-key-2024"
    DATABASE_PATH: str = os.path.join("data", "honeyintel.db")
    LOG_LEVEL: str = "INFO"

    # External (model-backed) extractor
    EXTRACTOR_ENABLED: bool = True
    EXTRACTOR_MODEL: str = "models/gemini-flash-latest"
    EXTRACTOR_TIMEOUT_MS: int = 5000
    EXTRACTOR_HISTORY_TURNS: int = 5

    # "upi" or "email": where an unknown, dot-less name@handle token goes
    UNKNOWN_HANDLE_POLICY: HandlePolicy = HandlePolicy.UPI
    EXTRA_PAYMENT_HANDLES: List[str] = []

    SESSION_TTL_SECONDS: int = 3600
    RATE_LIMIT: str = "60/minute"

    # Reporting callback
    CALLBACK_URL: str = "https://hackathon.guvi.in/api/updateHoneyPotFinalResult"
    CALLBACK_TURN_THRESHOLD: int = 6
    CALLBACK_INTEL_TURN_THRESHOLD: int = 3
    CALLBACK_TIMEOUT_SECONDS: float = 10.0

    def validate_keys(self):
        if not self.GOOGLE_API_KEY:
            logger.warning("GOOGLE_API_KEY not found. External extraction disabled, running pattern-only.")
            # Pattern extraction keeps working without the model


settings = Settings()
settings.validate_keys()
