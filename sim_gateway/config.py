"""Configuration from environment."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_path: str = "data/sim_gateway.db"
    snapshot_interval_seconds: float = 30.0

    # AES128-CBC/PKCS7 as configured on the gateway; key/iv accept
    # "1234567890123456", "49,50,...", or "0x31,0x32,..."
    aes_enabled: bool = False
    aes_key: str = "1234567890123456"
    aes_iv: str = "1234567890123456"

    log_raw_messages: bool = True
    log_retention_days: int = 7  # 0 keeps raw messages forever
    log_level: str = "INFO"

    offline_timeout_seconds: int = 300
    offline_sweep_interval_seconds: float = 300.0

    notify_timeout_seconds: float = 10.0
    notify_queue_size: int = 1000

    api_port: int = 8000


settings = Settings()
