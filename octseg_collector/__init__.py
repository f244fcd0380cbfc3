"""
OCT Segmentation Collector Configuration

Resolves the options of the patch/feature collectors of an OCT layer
segmentation pipeline: constant defaults, sweep overrides and geometry probed
from a sample scan and its ground truth.
"""

from octseg_collector.config_types import CollectorConfig
from octseg_collector.errors import ConfigError, ConfigErrorKind
from octseg_collector.loaders import (
    LoadContext,
    register_data_loader,
    register_label_loader,
)
from octseg_collector.resolver import resolve_collector_config

__all__ = [
    "CollectorConfig",
    "ConfigError",
    "ConfigErrorKind",
    "LoadContext",
    "register_data_loader",
    "register_label_loader",
    "resolve_collector_config",
]
