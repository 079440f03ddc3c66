from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://chapters:chapters@db:5432/chapters"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # Zone used whenever a template carries an unknown / blank timezone.
    DEFAULT_TIMEZONE: str = "UTC"

    # Narrative generation service (OpenAI-compatible chat completions API).
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    CHAPTERS_MODEL: str = "gpt-4o-mini"
    GENERATION_TIMEOUT_SECONDS: float = 60.0
    # Upper bound on simultaneous in-flight generation calls per process.
    GENERATION_MAX_CONCURRENCY: int = 4

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
