# src/config.py
import os
import logging
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv
from typing import List

# Load environment variables
load_dotenv()

# Base directory of the project
BASE_DIR = Path(__file__).resolve().parent.parent

class Config:
    """Configuration settings for the marketplace bot"""

    # Bot settings
    TELEGRAM_TOKEN: str = os.getenv("TELEGRAM_TOKEN", "")

    # Database settings
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Admin settings
    ADMIN_IDS: List[int] = [
        int(id_) for id_ in os.getenv("ADMIN_IDS", "").split(",")
        if id_.strip().isdigit()
    ]

    # Payment gateway settings
    RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET", "")
    CURRENCY: str = os.getenv("CURRENCY", "INR")
    CONVENIENCE_CHARGE: Decimal = Decimal(os.getenv("CONVENIENCE_CHARGE", "29"))
    DELIVERY_DAYS: int = int(os.getenv("DELIVERY_DAYS", "7"))
    GATEWAY_TIMEOUT: float = float(os.getenv("GATEWAY_TIMEOUT", "15"))

    # AI signal settings
    HUGGING_FACE_API_KEY: str = os.getenv("HUGGING_FACE_API_KEY", "")
    GOOGLE_VISION_API_KEY: str = os.getenv("GOOGLE_VISION_API_KEY", "")
    SERP_API_KEY: str = os.getenv("SERP_API_KEY", "")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
    SIGNAL_TIMEOUT: float = float(os.getenv("SIGNAL_TIMEOUT", "20"))

    # Web server settings
    WEB_HOST: str = os.getenv("WEB_HOST", "0.0.0.0")
    WEB_PORT: int = int(os.getenv("WEB_PORT", "8080"))
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8080").rstrip("/")

    # Other settings
    TIMEZONE: str = os.getenv("TZ", "Asia/Kolkata")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Paths
    UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", BASE_DIR / "uploads"))
    LOG_DIR = BASE_DIR / "logs"

    @classmethod
    def validate(cls):
        """Fail fast on settings the bot cannot run without"""
        if not cls.TELEGRAM_TOKEN:
            raise ValueError("No TELEGRAM_TOKEN set in environment")
        if not cls.DATABASE_URL:
            raise ValueError("No DATABASE_URL set in environment")
        if not cls.RAZORPAY_KEY_SECRET:
            logging.getLogger(__name__).warning(
                "RAZORPAY_KEY_SECRET is not set, payment confirmations will be rejected"
            )

def setup_logging():
    """Configure logging settings"""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    Config.LOG_DIR.mkdir(exist_ok=True)
    log_file = Config.LOG_DIR / "bot.log"

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL),
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )
    # httpx logs every Telegram poll at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
