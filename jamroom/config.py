"""
Environment-driven settings for the jam room server
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    static_dir: Path = Path("./static")
    sounds_dir: Path = Path("./sounds")
    shutdown_grace: float = 5.0
    send_timeout: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read settings from the environment; bad numbers raise ValueError"""
        env = os.environ if environ is None else environ

        grace = float(env.get("JAMROOM_SHUTDOWN_GRACE", cls.shutdown_grace))
        if grace < 0:
            raise ValueError(f"JAMROOM_SHUTDOWN_GRACE must be >= 0, got {grace}")

        send_timeout = float(env.get("JAMROOM_SEND_TIMEOUT", cls.send_timeout))
        if send_timeout <= 0:
            raise ValueError(f"JAMROOM_SEND_TIMEOUT must be > 0, got {send_timeout}")

        return cls(
            host=env.get("SERVER_HOST", cls.host),
            port=int(env.get("PORT", cls.port)),
            static_dir=Path(env.get("JAMROOM_STATIC_DIR", "./static")),
            sounds_dir=Path(env.get("JAMROOM_SOUNDS_DIR", "./sounds")),
            shutdown_grace=grace,
            send_timeout=send_timeout,
            log_level=env.get("JAMROOM_LOG_LEVEL", cls.log_level).upper(),
        )
