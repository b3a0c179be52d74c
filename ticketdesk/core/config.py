from typing import Dict

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "TicketDesk Classification & Lifecycle API"
    DATABASE_URL: str = "sqlite:///./ticketdesk.db"
    LOG_LEVEL: str = "INFO"
    TICKET_NUMBER_PREFIX: str = "TD"
    # priority -> hours until the SLA deadline; priorities left out get no deadline
    SLA_POLICY_HOURS: Dict[str, int] = {
        "urgent": 4,
        "high": 24,
        "normal": 72,
        "low": 168,
    }

    model_config = SettingsConfigDict(env_file=".env")

settings = Settings()
