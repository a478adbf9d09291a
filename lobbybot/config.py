import os
import logging

from dotenv import load_dotenv


# Load env early
load_dotenv()

# Logging configuration
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, log_level, logging.INFO),
)
logger = logging.getLogger(__name__)

# Reduce noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.ExtBot").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.Updater").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.Application").setLevel(logging.WARNING)
logging.getLogger("telegram.bot").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)


class Config:
    """Application configuration read from the environment."""

    # Telegram Bot Configuration
    BOT_TOKEN: str | None = os.getenv("BOT_TOKEN")

    # Loop intervals
    POLL_SECS: int = int(os.getenv("POLL_SECS", "5"))
    PRICE_REFRESH_SECS: int = int(os.getenv("PRICE_REFRESH_SECS", "60"))
    AUTO_REFRESH_SECS: int = int(os.getenv("AUTO_REFRESH_SECS", "60"))

    # Cache freshness and upstream timeouts
    FRESHNESS_SECS: float = float(os.getenv("FRESHNESS_SECS", "5"))
    REQUEST_TIMEOUT_SECS: float = float(os.getenv("REQUEST_TIMEOUT_SECS", "5"))

    # Upstream endpoints
    PRICE_API_URL: str = os.getenv("PRICE_API_URL", "https://www.damnbruh.com/api/price/sol").strip()

    # Persistence
    TENANT_SETTINGS_FILE: str = os.getenv("TENANT_SETTINGS_FILE", "tenant_settings.json")

    @classmethod
    def validate_config(cls) -> None:
        if not cls.BOT_TOKEN:
            raise ValueError("BOT_TOKEN environment variable is required")


# System-wide constants, not configurable per tenant.
# Players at or below this size are ignored by alerts and rankings.
ACTIVE_SIZE_THRESHOLD = 3
LB_PAGE_SIZE = 5
# Upper bounds for watch rules (one week for the interval)
MAX_WATCH_THRESHOLD = 1000
MAX_WATCH_MINUTES = 10080

# Expose commonly used constants
config = Config()
BOT_TOKEN = config.BOT_TOKEN
POLL_SECS = config.POLL_SECS
PRICE_REFRESH_SECS = config.PRICE_REFRESH_SECS
AUTO_REFRESH_SECS = config.AUTO_REFRESH_SECS
FRESHNESS_SECS = config.FRESHNESS_SECS
REQUEST_TIMEOUT_SECS = config.REQUEST_TIMEOUT_SECS
PRICE_API_URL = config.PRICE_API_URL
TENANT_SETTINGS_FILE = config.TENANT_SETTINGS_FILE
