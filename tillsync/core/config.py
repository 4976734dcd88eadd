from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DB_URL: str = "sqlite+aiosqlite:///./tillsync.db"

    REMOTE_URL: str = "http://localhost:54321"
    REMOTE_API_KEY: str = ""
    REMOTE_TIMEOUT: float = 10.0

    ENRICHMENT_FUNCTION: str = "fetch-product"
    ENRICHMENT_TIMEOUT: float = 6.0

    INIT_SYNC_ORDER_LIMIT: int = 50
    CONNECTIVITY_PROBE_INTERVAL: float = 15.0

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
