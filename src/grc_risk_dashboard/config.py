import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


def env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return int(value)


@dataclass
class AppConfig:
    backend: str = field(default_factory=lambda: os.getenv("RISK_BACKEND", "csv").lower())
    csv_path: str = field(default_factory=lambda: os.getenv("RISK_CSV_PATH", "risks.csv"))
    service_url: Optional[str] = field(default_factory=lambda: os.getenv("RISK_SERVICE_URL"))
    service_key: Optional[str] = field(default_factory=lambda: os.getenv("RISK_SERVICE_KEY"))
    reorder_rpc: str = field(
        default_factory=lambda: os.getenv("RISK_REORDER_RPC", "rpc_update_backlog_order")
    )
    prefs_path: str = field(default_factory=lambda: os.getenv("RISK_PREFS_PATH", ".risk_dashboard_prefs.json"))
    grid_size: int = field(default_factory=lambda: env_int("RISK_GRID_SIZE", 5))
    request_timeout: float = field(default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30")))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "csv_path": self.csv_path,
            "service_url": self.service_url,
            "service_key_set": bool(self.service_key),
            "reorder_rpc": self.reorder_rpc,
            "prefs_path": self.prefs_path,
            "grid_size": self.grid_size,
            "request_timeout": self.request_timeout,
            "log_level": self.log_level,
        }
