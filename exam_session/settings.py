from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Exam Session Engine"
    env: str = "dev"
    cors_origins: str = "http://localhost:3000"
    log_level: str = "INFO"

    storage_backend: str = "inmemory"  # inmemory|mongo
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "exam_portal"

    # Logical collections
    exams_collection: str = "exams"
    questions_collection: str = "questions"
    exam_questions_collection: str = "exam_questions"
    responses_collection: str = "responses"
    attempts_collection: str = "exam_attempts"
    results_collection: str = "results"
    enrollments_collection: str = "exam_enrollments"

    list_limit: int = 5000

    # Session behaviour
    timer_tick_seconds: float = 1.0
    snapshot_interval_ticks: int = 30
    warning_seconds: float = 5.0
    short_warning_seconds: float = 3.0

    # Observability (OpenTelemetry)
    observability_enabled: bool = True
    otel_service_name: str = "exam-session"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_console: bool = False
    otel_sample_rate: float = 0.1


settings = Settings()
