import os
from pathlib import Path
from dotenv import load_dotenv
from fastapi.security import HTTPBearer

BASE_DIR = Path(__file__).resolve().parent.parent  # -> GYM_BACKEND

# Load .env explicitly from project root
load_dotenv(BASE_DIR / ".env")


class Settings:
    PROJECT_NAME = "Gym Membership Backend"

    DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'gym.db'}")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    JWT_SECRET = os.getenv("JWT_SECRET")
    ALGORITHM = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

    UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BASE_DIR / "uploads")))
    PROOF_SUBDIR = "payments"
    PROOF_MAX_BYTES = int(os.getenv("PROOF_MAX_BYTES", 5 * 1024 * 1024))

    # DigitalOcean Spaces; proofs stay on local disk when no bucket is configured
    SPACES_REGION = os.getenv("SPACES_REGION")
    SPACES_ENDPOINT = os.getenv("SPACES_ENDPOINT")
    SPACES_KEY = os.getenv("SPACES_KEY")
    SPACES_SECRET = os.getenv("SPACES_SECRET")
    SPACES_NAME = os.getenv("SPACES_NAME")
    SPACES_CDN_URL = os.getenv("SPACES_CDN_URL")
    SPACES_BASE_PATH = (os.getenv("DO_SPACES_BASE_PATH") or "gym_app").strip("/")

    SEED_ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@ironworksgym.com")
    SEED_ADMIN_NAME = os.getenv("SEED_ADMIN_NAME", "Gym Administrator")
    SEED_DEFAULT_PLANS = os.getenv("SEED_DEFAULT_PLANS", "true").lower() == "true"

    bearer_scheme = HTTPBearer()
    cors_origins = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]


settings = Settings()
