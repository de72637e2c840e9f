"""
Centralized configuration with environment variable overrides.

Telephony credentials, timeouts, session lifetimes and voice-pipeline
model settings are configurable here. Per-tenant business data lives in
the tenant YAML files, not in the environment.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class TelephonyConfig:
    """Call-control provider credentials and transfer protocol settings."""

    account_sid: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    auth_token: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "")
    agent_sip_uri: str = os.getenv("AGENT_SIP_URI", "")
    ring_timeout_sec: int = _safe_int("TRANSFER_RING_TIMEOUT", "30")
    watchdog_grace_sec: float = _safe_float("TRANSFER_WATCHDOG_GRACE", "15.0")
    emergency_digit: str = os.getenv("EMERGENCY_DIGIT", "#")
    validate_signatures: bool = os.getenv("TWILIO_VALIDATE_SIGNATURES", "true").lower() == "true"

    @property
    def has_credentials(self) -> bool:
        return bool(self.account_sid and self.auth_token)


@dataclass(frozen=True)
class SessionConfig:
    """Session lifetime settings."""

    ttl_seconds: int = _safe_int("SESSION_TTL_SECONDS", "1800")
    sweep_interval_seconds: int = _safe_int("SESSION_SWEEP_INTERVAL", "300")


@dataclass(frozen=True)
class DialogueConfig:
    """Thresholds for field collection and caller input handling."""

    max_field_retries: int = _safe_int("MAX_FIELD_RETRIES", "3")
    max_utterance_length: int = _safe_int("MAX_UTTERANCE_LENGTH", "500")


@dataclass(frozen=True)
class NotificationConfig:
    """Outbound voicemail and summary delivery settings."""

    sender: str = os.getenv("NOTIFICATION_SENDER", "log")
    sms_from_number: str = os.getenv("TWILIO_SMS_FROM", "")


@dataclass(frozen=True)
class ModelConfig:
    """Voice pipeline model settings."""

    stt_model: str = os.getenv("STT_MODEL", "nova-3")
    stt_language: str = os.getenv("STT_LANGUAGE", "en")
    tts_model: str = os.getenv("TTS_MODEL", "sonic-2")
    tts_voice_id: str = os.getenv("TTS_VOICE_ID", "79a125e8-cd45-4c13-8a67-188112f4dd22")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    telephony: TelephonyConfig = field(default_factory=TelephonyConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    dialogue: DialogueConfig = field(default_factory=DialogueConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    tenants_dir: str = os.getenv("TENANTS_DIR", "tenants")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    agent_name: str = os.getenv("AGENT_NAME", "switchboard-receptionist")
    http_host: str = os.getenv("HTTP_HOST", "0.0.0.0")
    http_port: int = _safe_int("HTTP_PORT", "8080")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.telephony.ring_timeout_sec < 5:
        raise ValueError(
            f"TRANSFER_RING_TIMEOUT must be >= 5, got {config.telephony.ring_timeout_sec}"
        )
    if config.telephony.watchdog_grace_sec < 0:
        raise ValueError(
            "TRANSFER_WATCHDOG_GRACE must be >= 0, "
            f"got {config.telephony.watchdog_grace_sec}"
        )
    if len(config.telephony.emergency_digit) != 1 or (
        config.telephony.emergency_digit not in "0123456789*#"
    ):
        raise ValueError(
            "EMERGENCY_DIGIT must be a single DTMF key, "
            f"got {config.telephony.emergency_digit!r}"
        )
    if config.sessions.ttl_seconds < 60:
        raise ValueError(
            f"SESSION_TTL_SECONDS must be >= 60, got {config.sessions.ttl_seconds}"
        )
    if config.sessions.sweep_interval_seconds < 1:
        raise ValueError(
            "SESSION_SWEEP_INTERVAL must be >= 1, "
            f"got {config.sessions.sweep_interval_seconds}"
        )
    if config.dialogue.max_field_retries < 1:
        raise ValueError(
            f"MAX_FIELD_RETRIES must be >= 1, got {config.dialogue.max_field_retries}"
        )
    if config.dialogue.max_utterance_length < 1:
        raise ValueError(
            "MAX_UTTERANCE_LENGTH must be >= 1, "
            f"got {config.dialogue.max_utterance_length}"
        )
    if config.notifications.sender not in ("log", "sms"):
        raise ValueError(
            f"NOTIFICATION_SENDER must be 'log' or 'sms', got {config.notifications.sender!r}"
        )
    if not 1 <= config.http_port <= 65535:
        raise ValueError(f"HTTP_PORT must be between 1 and 65535, got {config.http_port}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for agent '%s'", config.agent_name)
    return config


# Singleton instance
settings = load_config()
