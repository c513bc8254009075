"""
Application Settings

Configuration is read once from the environment (and a .env file when present)
and handed explicitly to the pieces that need it.
"""

from pathlib import Path
from typing import List, Optional
import os

from pydantic import BaseModel, Field
from dotenv import load_dotenv


class Settings(BaseModel):
    database_url: Optional[str] = Field(None, description="MongoDB connection string")
    database_name: str = Field("wellness_feed_local", description="Database name")
    jwt_secret: str = Field("your-secret-key", description="HMAC secret used to verify bearer tokens")
    jwt_algorithm: str = Field("HS256")
    upload_dir: Path = Field(Path("uploads"), description="Root directory for uploaded media")
    max_upload_bytes: int = Field(50 * 1024 * 1024, gt=0)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = Field("INFO")
    port: int = Field(8000)

    @classmethod
    def from_env(cls) -> "Settings":
        # noop if no .env file is present
        load_dotenv()
        values = {
            "database_url": os.getenv("DATABASE_URL"),
            "database_name": os.getenv("DATABASE_NAME"),
            "jwt_secret": os.getenv("JWT_SECRET"),
            "jwt_algorithm": os.getenv("JWT_ALGORITHM"),
            "upload_dir": os.getenv("UPLOAD_DIR"),
            "max_upload_bytes": os.getenv("MAX_UPLOAD_BYTES"),
            "log_level": os.getenv("LOG_LEVEL"),
            "port": os.getenv("PORT"),
        }
        origins = os.getenv("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        return cls(**{k: v for k, v in values.items() if v is not None})
