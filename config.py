import json
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_DATABASE_URL = "https://exchange-project-d4028-default-rtdb.asia-southeast1.firebasedatabase.app"
DEFAULT_APP_ID = "exchange-project-d4028"


class Settings(BaseModel):
    """Process configuration, read from the environment at startup."""
    service_account: Optional[dict] = Field(None, description="Firebase service-account credential")
    database_url: str = DEFAULT_DATABASE_URL
    app_id: str = DEFAULT_APP_ID
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @property
    def store_configured(self) -> bool:
        return self.service_account is not None


def load_settings() -> Settings:
    raw_account = os.getenv("FIREBASE_SERVICE_ACCOUNT")
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        service_account=json.loads(raw_account) if raw_account else None,
        database_url=os.getenv("FIREBASE_DATABASE_URL", DEFAULT_DATABASE_URL),
        app_id=os.getenv("APP_ID", DEFAULT_APP_ID),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


settings = load_settings()
