"""
Configuration settings for the AI Image Processor
Local enhancement engine, AI gateway relay and HTTP API
"""
import os
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


class Operation(str, Enum):
    """Operations offered to the user"""
    ENHANCE = "enhance"           # Improve overall quality
    COLORIZE = "colorize"         # Add color to black and white photos
    REMOVE_BG = "removebg"        # Remove background
    UPSCALE = "upscale"           # Increase resolution
    DENOISE = "denoise"           # Remove noise and grain
    SHARPEN = "sharpen"           # Increase sharpness
    BRIGHTEN = "brighten"         # Improve lighting
    REMOVE_CRACK = "removecrack"  # Remove cracks, scratches and damage

    @classmethod
    def parse(cls, value: Optional[str]) -> "Operation":
        """Resolve an operation name, falling back to ENHANCE for unknown names"""
        try:
            return cls(value)
        except ValueError:
            return cls.ENHANCE


# Operations whose effect the local engine approximates (upscale + brighten)
LOCAL_OPERATIONS = frozenset({
    Operation.ENHANCE,
    Operation.UPSCALE,
    Operation.BRIGHTEN,
    Operation.SHARPEN,
})


class RunState(str, Enum):
    """Lifecycle of a single processing run"""
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class EnhancementParams:
    """Parameters for the local enhancement engine"""
    # Resizer
    max_dimension: int = 1024
    resize_quality: int = 90

    # Pixel transform
    upscale_factor: int = 2
    brightness_gain: float = 1.1
    brightness_offset: int = 10

    # Output
    output_format: str = "PNG"
    png_compression: int = 6

    # Bounded wait on image loading (None waits indefinitely)
    decode_timeout_seconds: Optional[float] = field(
        default_factory=lambda: _env_float("DECODE_TIMEOUT_SECONDS")
    )
    fetch_timeout_seconds: float = 30.0


@dataclass
class EngineConfig:
    """
    Engine-level switches, passed to the processor at construction time.

    allow_remote_models: route operations through the AI gateway when configured
    cache_results: keep processed results in an in-memory cache for the session
    """
    allow_remote_models: bool = field(
        default_factory=lambda: _env_flag("ALLOW_REMOTE_MODELS", "true")
    )
    cache_results: bool = field(
        default_factory=lambda: _env_flag("CACHE_RESULTS", "false")
    )
    cache_max_entries: int = field(
        default_factory=lambda: int(os.getenv("CACHE_MAX_ENTRIES", "32"))
    )


@dataclass
class GatewayConfig:
    """Multimodal AI gateway configuration"""
    api_key: str = field(default_factory=lambda: os.getenv("AI_GATEWAY_API_KEY", ""))
    url: str = field(
        default_factory=lambda: os.getenv(
            "AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1/chat/completions"
        )
    )
    model: str = field(
        default_factory=lambda: os.getenv("AI_GATEWAY_MODEL", "google/gemini-2.5-flash-image-preview")
    )
    timeout: float = field(
        default_factory=lambda: float(os.getenv("AI_GATEWAY_TIMEOUT", "120"))
    )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass
class APIConfig:
    """API configuration"""
    host: str = "0.0.0.0"
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))

    max_upload_size_mb: int = field(
        default_factory=lambda: int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
    )
    allowed_extensions: tuple = (".jpg", ".jpeg", ".png", ".webp", ".bmp", ".gif")

    cors_origins: list = field(default_factory=lambda: ["*"])


@dataclass
class Config:
    """Main configuration class"""
    enhancement: EnhancementParams = field(default_factory=EnhancementParams)
    engine: EngineConfig = field(default_factory=EngineConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    api: APIConfig = field(default_factory=APIConfig)

    log_level: str = "INFO"
    log_to_file: bool = True

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_to_file=_env_flag("LOG_TO_FILE", "true"),
        )


# Global config instance
_config = None


def get_config() -> Config:
    """Get the global config instance"""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment"""
    global _config
    _config = None
