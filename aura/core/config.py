from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://aura:aura@db:5432/aura"
    APP_ENV: str = "development"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://app.aura.dev,https://admin.aura.dev"
    CORS_ORIGINS: str = "*"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Required as X-Cron-Secret on POST /cron/evaluate-rules when APP_ENV=production.
    CRON_SECRET: str = ""

    # Rule engine
    DEFAULT_COOLDOWN_SECONDS: int = 300
    # "uniform" (average spacing) or "sliding_window" (hard cap per period)
    FREQUENCY_ENFORCEMENT: str = "uniform"

    # Evaluation worker
    EVALUATION_BATCH_SIZE: int = 50
    EVALUATION_INTERVAL_SECONDS: int = 300
    RULE_CACHE_TTL_SECONDS: int = 60
    TRIGGER_HISTORY_DISPLAY_LIMIT: int = 10

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"


settings = Settings()
