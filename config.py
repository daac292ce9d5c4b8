import os

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "tls")

JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", 24 * 30))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
UPLOAD_ROOT = os.getenv("UPLOAD_ROOT", os.path.join("public", "uploads"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def is_production() -> bool:
    return ENVIRONMENT.lower() == "production"
