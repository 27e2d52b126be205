# backend/core/config.py
import os
from typing import List, Literal
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - PUB_SUB_SERVICE the fan-out transport: "memory" (single instance) or "redis"
        - DATA_FILE the JSON file rooms/messages are mirrored to ("" keeps them in memory)
        - *_PAGE_SIZE / EMBEDDED_MESSAGE_LIMIT paging defaults for the REST surface
    """

    # Load environment variables from the .env file
    load_dotenv()

    PUB_SUB_SERVICE: Literal["memory", "redis"] = os.getenv("PUB_SUB_SERVICE", "memory")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"

    DATA_FILE: str = os.getenv("DATA_FILE", "")

    DEFAULT_MAX_MEMBERS: int = int(os.getenv("DEFAULT_MAX_MEMBERS", "50"))
    ROOM_PAGE_SIZE: int = int(os.getenv("ROOM_PAGE_SIZE", "20"))
    MESSAGE_PAGE_SIZE: int = int(os.getenv("MESSAGE_PAGE_SIZE", "50"))
    EMBEDDED_MESSAGE_LIMIT: int = int(os.getenv("EMBEDDED_MESSAGE_LIMIT", "100"))

    CORS_ORIGINS: List[str] = [
        origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
    ]

settings = Settings()
