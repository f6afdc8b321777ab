"""Configuration loader for the BOM extractor."""

import os
import logging
import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from .confidence import DEFAULT_OCR_CONFIDENCE, REVIEW_THRESHOLD
from .pdf_utils import MAX_INLINE_SIZE_MB

logger = logging.getLogger(__name__)


@dataclass
class ProviderConfig:
    name: Optional[str] = None
    model: Optional[str] = None
    timeout_seconds: float = 120.0


@dataclass
class ProcessingConfig:
    max_workers: int = 4
    strict: bool = False
    max_file_size_mb: float = MAX_INLINE_SIZE_MB


@dataclass
class ReviewConfig:
    threshold: float = REVIEW_THRESHOLD
    default_ocr_confidence: float = DEFAULT_OCR_CONFIDENCE


@dataclass
class ExportConfig:
    formats: List[str] = field(default_factory=lambda: ["xlsx"])
    output_dir: str = "output"


@dataclass
class ExtractorConfig:
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    export: ExportConfig = field(default_factory=ExportConfig)


def default_search_paths() -> List[Path]:
    return [
        Path.cwd() / 'config' / 'bom_extractor.yaml',
        Path.home() / '.bom_extractor' / 'config.yaml',
    ]


def _apply_env_overrides(config: ExtractorConfig) -> ExtractorConfig:
    if os.getenv("BOM_PROVIDER"):
        config.provider.name = os.environ["BOM_PROVIDER"]
    if os.getenv("BOM_MODEL"):
        config.provider.model = os.environ["BOM_MODEL"]
    if os.getenv("BOM_MAX_WORKERS"):
        try:
            config.processing.max_workers = int(os.environ["BOM_MAX_WORKERS"])
        except ValueError:
            logger.warning(f"Ignoring non-integer BOM_MAX_WORKERS={os.environ['BOM_MAX_WORKERS']!r}")
    return config


def parse_config(raw: Optional[Dict[str, Any]]) -> ExtractorConfig:
    """Build an ExtractorConfig from a parsed YAML mapping."""
    raw = raw or {}
    return ExtractorConfig(
        provider=ProviderConfig(**(raw.get('provider') or {})),
        processing=ProcessingConfig(**(raw.get('processing') or {})),
        review=ReviewConfig(**(raw.get('review') or {})),
        export=ExportConfig(**(raw.get('export') or {})),
    )


def load_config(config_path: Optional[str] = None) -> ExtractorConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to config file. If None, looks in default
                     locations and falls back to built-in defaults.

    Returns:
        ExtractorConfig with environment overrides applied

    Raises:
        FileNotFoundError: If an explicit config_path does not exist
    """
    if config_path is not None:
        if not Path(config_path).exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for path in default_search_paths():
            if path.exists():
                config_path = str(path)
                break

    if config_path is None:
        logger.debug("No config file found, using defaults")
        return _apply_env_overrides(ExtractorConfig())

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    logger.info(f"Loaded config: {config_path}")
    return _apply_env_overrides(parse_config(raw))
