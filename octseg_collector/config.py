#!/usr/bin/env python3
"""
OCT Segmentation Collector - Default Options

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Single source of truth for the default values of every
collector option that has a constant default. Defaults that depend on a
sample scan (scan width/height, boundary count, column subsampling) are NOT
here; they are derived by resolver.py at resolution time.

Configuration Sections:
1. Patch geometry (patch_width, patch_height)
2. Preprocessing (patch_level, scan_level)
3. Loader identifiers (data_loader, label_loader)
4. Patch sampling (num_patches_per_class, center_patches, patch_position)
5. Runtime flags (verbosity, compute_on_accelerator, print_timings,
   save_appearance_terms, clip)
6. Legacy option names accepted from older option structs

Navigation Guide:
- Use VS Code outline (Ctrl+Shift+O) to jump between sections
"""

import os
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

T = TypeVar("T")


def _env_or_default(
    key: str, default: T, type_fn: Optional[Callable[[str], T]] = None
) -> T:
    """
    Get value from environment variable or use default.

    Args:
        key: Environment variable name (e.g., "OCTSEG_VERBOSITY")
        default: Default value if env var not set
        type_fn: Optional type conversion function (e.g., int)

    Returns:
        Value from environment (converted) or default
    """
    val = os.getenv(key)
    if val is not None:
        if type_fn is not None:
            return type_fn(val)
        return val  # type: ignore
    return default


def _env_bool(key: str, default: bool) -> bool:
    """
    Get boolean value from environment variable.

    Treats "true", "1", "yes" as True (case-insensitive).
    Any other value or unset returns default.
    """
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


# ═══════════════════════════════════════════════════════════════════════════
# 🔧 ENVIRONMENT VARIABLE OVERRIDES
# ═══════════════════════════════════════════════════════════════════════════
# These replace the built-in DEFAULTS only. Values from the caller's options
# and from override params still take precedence over them.
#
# OCTSEG_VERBOSITY            - int 0-2 (default: 1)
# OCTSEG_DATA_LOADER          - loader id (default: "spectralis")
# OCTSEG_LABEL_LOADER         - loader id (default: "LabelsFromLabelingTool")
# OCTSEG_CALC_ON_ACCELERATOR  - "true" or "false" (default: "false")
# OCTSEG_NUM_PATCHES          - int, patches per class and file (default: 30)
# OCTSEG_PRINT_TIMINGS        - "true" or "false" (default: "false")
# ═══════════════════════════════════════════════════════════════════════════


def get_collector_defaults() -> Dict[str, Any]:
    """
    Build the default collector options, honouring environment overrides.

    Evaluated on every call so that a changed environment (e.g. inside a
    test or a sweep worker) is picked up without re-importing the module.

    Returns:
        Fresh dict of default option values keyed by canonical option name.
    """
    return {
        # ═══════════════════════════════════════════════════════════════════
        # 📐 PATCH GEOMETRY
        # ═══════════════════════════════════════════════════════════════════
        # Width has to be odd so that a patch has a centre column
        "patch_width": 15,
        "patch_height": 15,
        # ═══════════════════════════════════════════════════════════════════
        # 🧹 PREPROCESSING
        # ═══════════════════════════════════════════════════════════════════
        # patch_level: applied when training/predicting appearance models
        # scan_level: applied by the data loader on every scan
        "preprocessing": {
            "patch_level": [("projToEigenspace", 20)],
            "scan_level": [],
        },
        # ═══════════════════════════════════════════════════════════════════
        # 📂 LOADERS
        # ═══════════════════════════════════════════════════════════════════
        "data_loader": _env_or_default("OCTSEG_DATA_LOADER", "spectralis"),
        "label_loader": _env_or_default(
            "OCTSEG_LABEL_LOADER", "LabelsFromLabelingTool"
        ),
        # ═══════════════════════════════════════════════════════════════════
        # 🎯 PATCH SAMPLING
        # ═══════════════════════════════════════════════════════════════════
        "num_patches_per_class": _env_or_default("OCTSEG_NUM_PATCHES", 30, int),
        # Subtract the patch mean; reduces intensity variation between scans
        "center_patches": True,
        # "middle" = centre of each layer per column, "random" = anywhere
        "patch_position": "middle",
        # ═══════════════════════════════════════════════════════════════════
        # ⚙️ RUNTIME FLAGS
        # ═══════════════════════════════════════════════════════════════════
        "verbosity": _env_or_default("OCTSEG_VERBOSITY", 1, int),
        "compute_on_accelerator": _env_bool("OCTSEG_CALC_ON_ACCELERATOR", False),
        "print_timings": _env_bool("OCTSEG_PRINT_TIMINGS", False),
        "save_appearance_terms": False,
        "clip": False,
    }


# ═══════════════════════════════════════════════════════════════════════════
# 🏷️ LEGACY OPTION NAMES
# ═══════════════════════════════════════════════════════════════════════════
# Option names used by older option structs, mapped to canonical names.

LEGACY_KEY_ALIASES: Dict[str, str] = {
    "width": "patch_width",
    "height": "patch_height",
    "verbose": "verbosity",
    "loadRoutineData": "data_loader",
    "loadRoutineLabels": "label_loader",
    "numRegionsPerVolume": "regions_per_volume",
    "labelIDs": "label_ids",
    "clipRange": "clip_range",
    "BScanRegions": "bscan_region_bounds",
    "calcOnGPU": "compute_on_accelerator",
    "numPatches": "num_patches_per_class",
    "centerPatches": "center_patches",
    "patchPosition": "patch_position",
    "columnsShape": "columns_shape",
    "columnsPred": "columns_pred",
    "printTimings": "print_timings",
    "saveAppearanceTerms": "save_appearance_terms",
    "EdgesTrain": "edges_train",
    "LayersTrain": "layers_train",
    "EdgesPred": "edges_pred",
    "LayersPred": "layers_pred",
}

PREPROCESSING_KEY_ALIASES: Dict[str, str] = {
    "patchLevel": "patch_level",
    "scanLevel": "scan_level",
}


def normalize_option_keys(
    options: Optional[Mapping[str, Any]],
    aliases: Mapping[str, str] = LEGACY_KEY_ALIASES,
) -> Dict[str, Any]:
    """
    Return a copy of options with legacy names mapped to canonical names.

    A canonical key wins over its legacy alias when both are present. The
    input mapping is never modified.
    """
    if not options:
        return {}
    normalized: Dict[str, Any] = {}
    for key, value in options.items():
        canonical = aliases.get(key)
        if canonical is None:
            normalized[key] = value
        elif canonical not in options:
            normalized[canonical] = value
    return normalized


__all__ = [
    "LEGACY_KEY_ALIASES",
    "PREPROCESSING_KEY_ALIASES",
    "get_collector_defaults",
    "normalize_option_keys",
]
