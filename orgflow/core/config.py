from dataclasses import dataclass
from pathlib import Path
import os


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str = "OrgFlow HR Core"
    secret_key: str = os.getenv("ORGFLOW_SECRET_KEY", "change-me-for-production")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = int(os.getenv("ORGFLOW_ACCESS_TOKEN_EXPIRE_MINUTES", "120"))
    data_dir: Path = Path(os.getenv("ORGFLOW_DATA_DIR", str(Path(__file__).resolve().parents[2] / "data")))
    persist: bool = _env_flag("ORGFLOW_PERSIST", "false")
    lock_timeout_seconds: float = float(os.getenv("ORGFLOW_LOCK_TIMEOUT_SECONDS", "5"))
    top_position_marker: str = os.getenv("ORGFLOW_TOP_POSITION_MARKER", "CEO")
    log_level: str = os.getenv("ORGFLOW_LOG_LEVEL", "INFO").upper()
    employee_id_floor: int = 10000
    directory_collection: str = "hr_system_db_v11"
    requests_collection: str = "hr_system_requests_v8"

    @property
    def event_log_path(self) -> Path:
        return self.data_dir / "events.jsonl"

    @property
    def log_path(self) -> Path:
        return self.data_dir / "app.log"


settings = Settings()
settings.data_dir.mkdir(parents=True, exist_ok=True)
