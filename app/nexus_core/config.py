"""
Purpose: Runtime configuration read from the environment, plus the one-time
logging setup used by entry points.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigurationError
from .models import BackendSettings, GPTModel, VoiceSettings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_TRUE = {"1", "true", "yes", "on"}
STORAGE_BACKENDS = ("file", "streamlit")


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


@dataclass
class AppConfig:
    openai_api_key: str = ""
    base_url: Optional[str] = None
    default_model: str = GPTModel.GPT_4.value
    tts_model: str = "tts-1"
    stt_model: str = "whisper-1"
    storage: str = "file"
    storage_dir: Path = Path("data")
    log_level: str = "INFO"
    voice_speed: float = 1.0
    voice_volume: float = 0.8
    privileged: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """Load config from environment variables."""
        env = os.environ if env is None else env
        storage = env.get("NEXUS_STORAGE", "file").strip().lower()
        if storage not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"NEXUS_STORAGE must be one of {STORAGE_BACKENDS}, got {storage!r}"
            )
        return cls(
            openai_api_key=env.get("OPENAI_API_KEY", ""),
            base_url=env.get("NEXUS_BASE_URL") or None,
            default_model=env.get("NEXUS_DEFAULT_MODEL", GPTModel.GPT_4.value),
            tts_model=env.get("NEXUS_TTS_MODEL", "tts-1"),
            stt_model=env.get("NEXUS_STT_MODEL", "whisper-1"),
            storage=storage,
            storage_dir=Path(env.get("NEXUS_STORAGE_DIR", "data")),
            log_level=env.get("NEXUS_LOG_LEVEL", "INFO").upper(),
            voice_speed=_float(env, "NEXUS_VOICE_SPEED", 1.0),
            voice_volume=_float(env, "NEXUS_VOICE_VOLUME", 0.8),
            privileged=env.get("NEXUS_ADMIN", "false").strip().lower() in _TRUE,
        )

    def backend_settings(self) -> BackendSettings:
        return BackendSettings(model=self.default_model)

    def voice_defaults(self) -> VoiceSettings:
        return VoiceSettings(speed=self.voice_speed, volume=self.voice_volume)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
