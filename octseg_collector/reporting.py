"""
Summaries of a resolved collector configuration.

Used by sweep drivers to log which options an override actually changed and
what geometry the sample probe found.
"""

from typing import Any, Dict

import pandas as pd

from octseg_collector.config_types import CollectorConfig


def get_resolution_summary(config: CollectorConfig) -> Dict[str, Any]:
    """
    Get summary of the probe-derived geometry and option provenance.

    Args:
        config: Resolved configuration.

    Returns:
        Dict with summary values.
    """
    sources = config.field_sources
    return {
        "scan_width": config.scan_width,
        "scan_height": config.scan_height,
        "clipped": config.clip,
        "boundary_count": config.boundary_count,
        "layer_count": config.layer_count,
        "regions_per_bscan": config.regions_per_bscan,
        "regions_per_volume": config.regions_per_volume,
        "num_columns_pred": len(config.columns_pred),
        "compute_data_type": config.compute_data_type.value,
        "num_overridden": sum(1 for s in sources.values() if s == "override"),
        "num_from_options": sum(1 for s in sources.values() if s == "raw"),
        "num_defaulted": sum(1 for s in sources.values() if s == "default"),
        "num_derived": sum(1 for s in sources.values() if s == "derived"),
    }


def resolution_sources_frame(config: CollectorConfig) -> pd.DataFrame:
    """
    One row per resolved option: field name, value and where it came from.

    Options without recorded provenance are listed with source "unknown".
    """
    values = config.as_dict()
    rows = [
        {
            "field": name,
            "value": value,
            "source": config.field_sources.get(name, "unknown"),
        }
        for name, value in values.items()
    ]
    return pd.DataFrame(rows, columns=["field", "value", "source"])


__all__ = ["get_resolution_summary", "resolution_sources_frame"]
