from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "STOCKBOX"
    DATABASE_URL: str = "sqlite+pysqlite:///./stockbox.db"
    METRICS_ENABLED: bool = True
    OPS_ENABLE_INTEGRITY_SCAN: bool = True

    HEADER_SCAN_ROWS: int = 60
    BLOCK_SERIAL_SEARCH_SPAN: int = 14
    BLOCK_DEDUP_DISTANCE: int = 2
    CARTON_BOX_DIGITS: int = 5
    UPLOAD_MAX_BYTES: int = 10 * 1024 * 1024
    SINGLE_BOX_VENDOR_DEVICES: dict[str, str] = {}

    LEDGER_QUERY_CHUNK: int = 500
    LEDGER_WRITE_RETRIES: int = 3
    DEFAULT_LOCATION: str = "00"
    ALLOWED_LOCATIONS: list[str] = ["00", "1", "6", "Cabinet"]
    MISSING_SAMPLE_SIZE: int = 10


settings = Settings()
