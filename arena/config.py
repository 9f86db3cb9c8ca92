import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Application configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///arena.db')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

    # Logging
    LOG_DIR = os.getenv('LOG_DIR', 'logs')  # empty disables file logging

    # Game service (Lichess-compatible REST API)
    GAME_SERVICE_URL = os.getenv('GAME_SERVICE_URL', 'https://lichess.org')

    # Payment gateway (LND-compatible REST API)
    PAYMENT_GATEWAY_URL = os.getenv('PAYMENT_GATEWAY_URL', 'https://localhost:8080')
    PAYMENT_GATEWAY_MACAROON = os.getenv('PAYMENT_GATEWAY_MACAROON', '')
    PAYMENT_GATEWAY_VERIFY_TLS = os.getenv('PAYMENT_GATEWAY_VERIFY_TLS', 'True').lower() == 'true'

    # Upper bound for any single external call made while a balance row is locked
    EXTERNAL_CALL_TIMEOUT_SECONDS = float(os.getenv('EXTERNAL_CALL_TIMEOUT_SECONDS', 30))

    # Challenge settings
    CHALLENGE_EXPIRY_SECONDS = int(os.getenv('CHALLENGE_EXPIRY_SECONDS', 1800))  # 30 minutes

    # Identity cache (token -> username)
    REDIS_URL = os.getenv('REDIS_URL')
    IDENTITY_CACHE_TTL = int(os.getenv('IDENTITY_CACHE_TTL', 3600))

    @classmethod
    def get_async_database_url(cls) -> str:
        """Return DATABASE_URL with the sqlite driver swapped for aiosqlite"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.PAYMENT_GATEWAY_MACAROON:
            raise ValueError("PAYMENT_GATEWAY_MACAROON is required")
        if not cls.GAME_SERVICE_URL:
            raise ValueError("GAME_SERVICE_URL is required")
        if cls.EXTERNAL_CALL_TIMEOUT_SECONDS <= 0:
            raise ValueError("EXTERNAL_CALL_TIMEOUT_SECONDS must be positive")
