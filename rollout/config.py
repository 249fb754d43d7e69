import os
from typing import Optional

class Settings:
    """Application settings"""
    def __init__(self):
        self.app_name: str = os.getenv("APP_NAME", "Rollout Orchestrator")
        self.app_version: str = os.getenv("APP_VERSION", "1.0.0")
        self.debug: bool = os.getenv("DEBUG", "false").lower() == "true"
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8000"))

        # API settings
        self.api_v1_prefix: str = os.getenv("API_V1_PREFIX", "/v1")

        # Logging settings
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")

        # Development settings
        cors_origins_str = os.getenv("CORS_ORIGINS", '["http://localhost:3000", "http://localhost:8080"]')
        try:
            import json
            self.cors_origins = json.loads(cors_origins_str) if cors_origins_str.startswith('[') else ["*"]
        except (json.JSONDecodeError, ValueError):
            self.cors_origins = ["*"]

        # Rollout settings
        self.default_timeout_seconds: float = float(os.getenv("DEFAULT_TIMEOUT_SECONDS", "3600"))
        # 0 disables the bound
        self.max_active_jobs: int = int(os.getenv("MAX_ACTIVE_JOBS", "100"))
        self.abort_on_failure: bool = os.getenv("ABORT_ON_FAILURE", "false").lower() == "true"
        self.grace_period_seconds: float = float(os.getenv("GRACE_PERIOD_SECONDS", "5"))
        self.destination_concurrency: int = int(os.getenv("DESTINATION_CONCURRENCY", "0"))
        self.job_retention_seconds: Optional[float] = float(os.getenv("JOB_RETENTION_SECONDS", "0")) or None

        # Simulated executor settings
        self.simulated_steps: int = int(os.getenv("SIMULATED_STEPS", "10"))
        self.simulated_step_seconds: float = float(os.getenv("SIMULATED_STEP_SECONDS", "1.0"))

# Global settings instance
settings = Settings()
