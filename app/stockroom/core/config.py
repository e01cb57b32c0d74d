from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "Stockroom"
    DATABASE_URL: str = "sqlite+pysqlite:///./stockroom.db"
    LOG_LEVEL: str = "INFO"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    METRICS_ENABLED: bool = True
    SEARCH_MODE: str = ""
    TYPESENSE_URL: str = "http://localhost:8108"
    TYPESENSE_API_KEY: str = ""
    TYPESENSE_COLLECTION: str = "products"
    TYPESENSE_TIMEOUT_SEC: float = 2.0
    PRODUCTS_DEFAULT_PAGE_SIZE: int = 10
    PRODUCTS_MAX_PAGE_SIZE: int = 100
    STOCK_MOVEMENT_MAX_ATTEMPTS: int = 3

settings = Settings()
