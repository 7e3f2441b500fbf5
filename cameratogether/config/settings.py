# config/settings.py
from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # API
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "CameraTogether Collage Service"

    # CORS
    ALLOWED_HOSTS: List[str] = ["*"]

    # Auth (collage service)
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: str = "secret"

    # Group API (external backend)
    GROUP_API_URL: str = "http://localhost:8080/api"
    REQUEST_TIMEOUT: float = 30.0

    # Group session
    MAX_GROUP_NAME_LENGTH: int = 15
    POLL_INTERVAL_SECONDS: float = 3.0
    COUNTDOWN_TICK_SECONDS: float = 0.1
    LOCAL_COUNTDOWN_SECONDS: int = 10

    # Collage
    CANVAS_SIZE: int = 1080
    FRAME_STROKE_WIDTH: int = 2
    STRICT_FRAME_PATHS: bool = True
    MAX_DECODE_SIDE: int = 2048
    SAVE_FORMAT: str = "jpeg"
    JPEG_QUALITY: int = 85

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Env
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
