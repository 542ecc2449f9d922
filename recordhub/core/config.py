from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "recordhub"

    DATABASE_URL: str
    SQL_ECHO: bool = False

    RECORD_BACKEND: str = "sql"  # sql | memory
    RECORD_TABLES: str = ""  # comma-separated allow list, empty = every model table
    QUERY_TIMEOUT_SECONDS: float = 30.0  # 0 disables the per-call deadline

    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def record_tables_list(self) -> List[str]:
        return [t.strip() for t in self.RECORD_TABLES.split(",") if t.strip()]

settings = Settings()
