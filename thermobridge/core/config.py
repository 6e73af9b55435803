from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Thermo Bridge"

    # HTTP / WebSocket listener
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    # a viewer whose socket stalls longer than this is dropped
    viewer_send_timeout_seconds: float = 2.0

    # MQTT broker (mqtt:// or mqtts://, optional user:pass@)
    mqtt_url: str = "mqtt://broker.emqx.io:1883"
    mqtt_client_id: str = "thermobridge"
    mqtt_keepalive_seconds: int = 60

    # Topics
    topic_temp: str = "grupo2/temperatura"
    topic_led: str = "grupo2/led"
    topic_cmdled: str = "grupo2/cmd/led"

    # Storage
    sqlite_path: str = Field(default="thermobridge.db")
    db_timeout_seconds: float = 5.0
    query_timeout_seconds: float = 10.0

    # Control
    default_threshold: float = 30.0
    threshold_min: float = 0.0
    threshold_max: float = 100.0

    # LM35 operating range; the store applies its own narrower check
    sensor_temp_min: float = -55.0
    sensor_temp_max: float = 150.0

    # History API
    history_default_minutes: int = 120
    history_max_minutes: int = 24 * 60
    history_max_rows: int = 1000
    stats_window_minutes: int = 24 * 60

    # Logging
    log_level: str = "INFO"
    log_file: str = "thermobridge.log"


settings = Settings()
