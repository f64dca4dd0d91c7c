from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Retail Inventory Manager"
    DATABASE_URL: str = "sqlite:///./inventory.db"

    # Auth
    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 72
    DEFAULT_ADMIN_PASSWORD: str = "admin"

    # Product defaults
    DEFAULT_GST_PERCENT: float = 5.0
    DEFAULT_MIN_QUANTITY: int = 10

    # Ledger browsing
    LEDGER_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 200

    # Reports window when no period is given
    REPORT_DEFAULT_DAYS: int = 30

    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
