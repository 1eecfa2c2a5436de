"""Configuration management for the textlens service.

Loads and validates YAML configuration with defaults tuned for photos
of printed text: preprocessing constants, Tesseract knobs, text cleanup,
batch concurrency, upload limits, storage and server settings.
"""

import logging
import string
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

DEFAULT_CHAR_WHITELIST = (
    string.ascii_uppercase
    + string.ascii_lowercase
    + string.digits
    + ".,!?-_@#$%&*()[]{}/<>\"' "
)


class PreprocessingConfig(BaseModel):
    """Constants of the image enhancement chain.

    The defaults reproduce the empirically tuned chain; changing any of
    them changes the enhanced output.
    """

    max_image_bytes: int = 10 * MIB
    max_dimension: int = 3000

    normalize_lower_percentile: float = 1.0
    normalize_upper_percentile: float = 99.0

    linear_slope: float = 1.3
    linear_intercept: float = -0.1

    brightness: float = 1.2
    contrast: float = 1.8
    saturation: float = 0.8

    sharpen_sigma: float = 1.5
    sharpen_flat_gain: float = 1.5
    sharpen_jagged_gain: float = 0.7
    sharpen_threshold: float = 2.0
    sharpen_max_brighten: float = 10.0
    sharpen_max_darken: float = 20.0

    median_size: int = 3
    gamma: float = 1.4

    window_lower: int = 30
    window_upper: int = 220

    first_threshold: int = 140
    second_threshold: int = 90


class OCRConfig(BaseModel):
    """Recognition parameters for printed, multi-line text blocks."""

    tesseract_cmd: str | None = None
    lang: str = "eng"
    psm: int = 6
    oem: int = 1
    preserve_interword_spaces: bool = True
    enable_doc_dict: bool = True
    penalty_non_dict_word: float = 0.25
    penalty_non_freq_dict_word: float = 0.15
    char_whitelist: str = DEFAULT_CHAR_WHITELIST
    reject_poor_quality: bool = True
    extra_parameters: dict[str, str] = Field(
        default_factory=lambda: {
            "textord_force_make_prop_words": "1",
            "textord_min_linesize": "2.5",
            "tessedit_do_invert": "0",
            "textord_heavy_nr": "1",
            "tessedit_write_images": "0",
            "tessedit_min_orientation_margin": "4",
        }
    )
    timeout_seconds: float = 30.0


class NormalizationConfig(BaseModel):
    """Configuration for OCR text cleanup."""

    min_length: int = 3


class PipelineConfig(BaseModel):
    """Configuration for per-image and batch orchestration."""

    max_workers: int = 4


class UploadConfig(BaseModel):
    """Limits applied to multipart uploads before processing."""

    max_files: int = 5
    max_file_bytes: int = 5 * MIB
    allowed_extensions: list[str] = Field(
        default_factory=lambda: ["jpeg", "jpg", "png", "bmp"]
    )
    upload_dir: str = "uploads"


class StorageConfig(BaseModel):
    """Configuration for the extraction record store."""

    database_url: str = "sqlite:///textlens.db"
    connect_retries: int = 5
    connect_interval_seconds: float = 5.0


class ServerConfig(BaseModel):
    """HTTP server bind settings."""

    host: str = "0.0.0.0"
    port: int = 5000


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
