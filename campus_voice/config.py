from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./campus_voice.db"
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expiration_minutes: int = 60
    timezone: str = "UTC"
    escalation_sla_hours: int = 48
    auto_close_on_feedback: bool = False
    novu_secret_key: str | None = None
    novu_api_url: str = "https://api.novu.co/v1"
    novu_workflow_id: str = "complaint-update"
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
    }


settings = Settings()
