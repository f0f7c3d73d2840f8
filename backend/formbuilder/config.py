from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    MONGO_URI: str
    DB_NAME: str
    MAX_UPLOAD_SIZE: int = 52428800  # Default: 50MB in bytes
    UPLOAD_DIR: str = "_uploads"
    LOG_LEVEL: str = "INFO"
    # External document-import service (SSE); import-word is disabled when unset
    IMPORT_SERVICE_URL: Optional[str] = None

    class Config:
        env_file = ".env"


settings = Settings()
