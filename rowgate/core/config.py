from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./rowgate.db"
    SQL_ECHO: bool = False

    # Bearer secret every /api call must present
    WRITE_TOKEN: str

    SERVICE_ID: str = "rowgate"
    SERVICE_VERSION: str = "0.1.0"
    INSTANCE_ID: str = "local"

    # Remote log collection, forwarding is off while the URL is unset
    LOG_SERVICE_URL: Optional[str] = None
    LOG_SERVICE_TOKEN: str = ""
    LOG_FORWARD_LEVEL: int = 11
    LOG_LEVEL: str = "INFO"

    # A delete without filters wipes the whole table
    ALLOW_WILDCARD_DELETE: bool = True

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Create a single instance of the settings to use everywhere
settings = Settings()
