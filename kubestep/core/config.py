from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KUBESTEP_", env_file=".env", env_file_encoding="utf-8"
    )

    log_level: str = "INFO"

    # Kubernetes connection (step configuration overrides these per run)
    kube_master: Optional[str] = None  # Empty for in-cluster / kubeconfig
    kube_token: Optional[str] = None
    kube_ssl_validate: bool = True

    # Watch streams
    watch_reconnect_interval: float = 30  # Seconds between reconnect attempts
    watch_reconnect_limit: int = 0  # 0 disables reconnects, negative is unlimited
    watch_timeout_seconds: int = 60  # Server-side window, resumed transparently

    # Local wait bound is activeDeadlineSeconds plus this grace period
    deadline_grace_seconds: int = 30

    # OpenTelemetry
    otel_service_name: str = "kubestep"
    otel_exporter_endpoint: Optional[str] = None
    otel_exporter_token: Optional[str] = None


settings = Settings()
