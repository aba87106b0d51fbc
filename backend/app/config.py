from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "GridCrew Dispatch API"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Crew / event / overtime-log store: "memory" (seeded demo roster) or "supabase"
    store_backend: str = "memory"
    supabase_url: str = ""
    supabase_anon_key: str = ""
    store_timeout_seconds: float = 5.0
    store_conflict_retries: int = 3

    # Shift schedules are wall-clock times in this zone
    operations_timezone: str = "UTC"

    # Travel model (average response-vehicle speed incl. urban delay)
    vehicle_speed_kmh: float = 48.0
    arrival_threshold_km: float = 0.5
    movement_fraction: float = 0.2

    # Dispatch policy
    recommendation_limit: int = 5
    simulation_workers: int = 4
    require_emergency_for_off_duty: bool = True
    overtime_default_reason: str = "Emergency dispatch outside scheduled shift"

    model_config = {"env_file": ["../.env", ".env"], "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
