"""
Application configuration.

Values are read from the environment (a local ``.env`` file is loaded first)
and exposed through ``Config`` for ``app.config.from_object``.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
    DATABASE = os.getenv(
        "DATABASE",
        os.path.join(os.path.dirname(__file__), "campus_ordering.db"),
    )
    SESSION_MINUTES = _env_int("SESSION_MINUTES", 30)

    # Students must register with an address on this domain
    STUDENT_EMAIL_DOMAIN = os.getenv("STUDENT_EMAIL_DOMAIN", "cuet.ac.bd")

    TAX_RATE = os.getenv("TAX_RATE", "0.05")
    MIN_ESTIMATED_MINUTES = _env_int("MIN_ESTIMATED_MINUTES", 15)
    MAX_ESTIMATED_MINUTES = _env_int("MAX_ESTIMATED_MINUTES", 120)
    DELIVERY_CODE_LENGTH = _env_int("DELIVERY_CODE_LENGTH", 8)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
