"""Global configuration — loaded from environment variables."""

from pydantic_settings import BaseSettings


class KairoSettings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"

    # Event fan-out
    event_queue_size: int = 256  # per-subscriber, oldest events dropped on overflow

    # Agent process I/O
    stream_limit: int = 64 * 1024  # longest output line a pump will buffer
    drain_timeout_s: float = 1.0  # pump grace before the final status event

    cors_origins: str = "*"  # comma-separated

    model_config = {"env_prefix": "KAIRO_"}


settings = KairoSettings()
