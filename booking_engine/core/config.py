from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    SERVICE_NAME: str = "Booking Engine"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    SLOT_STEP_MINUTES: int = 15

    COMMIT_RETRY_LIMIT: int = 1
    REMINDER_HOURS_BEFORE: int = 24


settings = Settings()
