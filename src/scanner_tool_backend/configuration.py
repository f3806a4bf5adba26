from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

from .models import ColorMode, ConfigMetadata, DocumentType, OutputFormat, PaperSize, ScannerType, ScanSettings

load_dotenv()

CONFIG_PATH = Path(__file__).resolve().parent / "config" / "config.yaml"

ENV_OUTPUT_DIR = "SCANNER_TOOL_OUTPUT_DIR"
ENV_PLATFORM = "SCANNER_TOOL_PLATFORM"
ENV_MAX_WORKERS = "SCANNER_TOOL_MAX_WORKERS"


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def get_default_config_container(resolve: bool = False) -> Dict[str, Any]:
    config = _load_default_config()
    return OmegaConf.to_container(config, resolve=resolve, enum_to_str=True)  # type: ignore[return-value]


def make_runtime_config(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """Merge ``overrides`` onto the packaged defaults; unknown keys are rejected."""
    base_container = OmegaConf.to_container(_load_default_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)

    merged = DictConfig(OmegaConf.merge(base, OmegaConf.create(overrides or {})))
    return merged


def environment_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    output_dir = os.environ.get(ENV_OUTPUT_DIR)
    if output_dir:
        overrides["output"] = {"root": output_dir, "directory_name": ""}
    max_workers = os.environ.get(ENV_MAX_WORKERS)
    if max_workers:
        overrides["executor"] = {"max_workers": int(max_workers)}
    return overrides


def platform_override() -> Optional[str]:
    return os.environ.get(ENV_PLATFORM) or None


def build_config_metadata() -> ConfigMetadata:
    return ConfigMetadata(
        defaults=get_default_config_container(resolve=True),
        document_types=list(DocumentType),
        color_modes=list(ColorMode),
        paper_sizes=list(PaperSize),
        output_formats=list(OutputFormat),
        scanner_types=list(ScannerType),
        default_scan_settings=ScanSettings(),
    )
