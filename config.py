import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    SERVICE_NAME = os.getenv("SERVICE_NAME", "car-rental-api")

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL")
    DATABASE_NAME = os.getenv("DATABASE_NAME")

    # Auth
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
    JWT_ALGORITHM = "HS256"
    TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "72"))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Comma separated list of allowed origins
    CORS_ORIGINS = [
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:3001,http://localhost:3002").split(",")
        if o.strip()
    ]

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    PORT = int(os.getenv("PORT", "8000"))
