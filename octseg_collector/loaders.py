#!/usr/bin/env python3
"""
OCT Segmentation Collector - Loader Registry

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Map loader identifiers (the `data_loader` / `label_loader`
options) to concrete loader callables. The resolver looks an identifier up
once and stores the callable on the resolved config, so collectors never
dispatch on the string themselves.

Key Features:
1. DATA_LOADERS / LABEL_LOADERS registries with register_* decorators
2. LoadContext: the subset of options a loader needs
3. Built-in "spectralis" scan loader and "LabelsFromLabelingTool" label loader
   reading .npy, .npz or .mat files

Loader contract:
    data loader:  (file_name, LoadContext) -> 2-D array (rows x columns)
    label loader: (file_name, LoadContext) -> 2-D array (boundaries x columns)
Loaders raise on failure; the resolver never catches their errors.

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
import logging

import numpy as np
from scipy.io import loadmat

from octseg_collector.config_types import ClipRange
from octseg_collector.errors import ConfigError, ConfigErrorKind

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════
# 📦 LOAD CONTEXT
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class LoadContext:
    """
    Options passed to a loader for one read.

    Attributes:
        label_id: Id of the scan within a volume (0 for 2-D scans).
        data_dir: Folder holding the scans.
        label_dir: Folder holding the ground truth.
        clip_range: Columns to keep, or None for the full scan.
        scan_preprocessing: Scan-level preprocessing steps, in order.
        verbosity: 0-2, for loaders that print progress.
    """

    label_id: int
    data_dir: str
    label_dir: str
    clip_range: Optional[ClipRange] = None
    scan_preprocessing: Tuple[Any, ...] = ()
    verbosity: int = 1


DataLoaderFn = Callable[[str, LoadContext], Any]
LabelLoaderFn = Callable[[str, LoadContext], Any]

# ═══════════════════════════════════════════════════════════════════════════
# 🗂️ REGISTRIES
# ═══════════════════════════════════════════════════════════════════════════

DATA_LOADERS: Dict[str, DataLoaderFn] = {}
LABEL_LOADERS: Dict[str, LabelLoaderFn] = {}


def register_data_loader(name: str) -> Callable[[DataLoaderFn], DataLoaderFn]:
    """Decorator registering a scan loader under `name`."""

    def decorator(fn: DataLoaderFn) -> DataLoaderFn:
        DATA_LOADERS[name] = fn
        return fn

    return decorator


def register_label_loader(name: str) -> Callable[[LabelLoaderFn], LabelLoaderFn]:
    """Decorator registering a ground-truth loader under `name`."""

    def decorator(fn: LabelLoaderFn) -> LabelLoaderFn:
        LABEL_LOADERS[name] = fn
        return fn

    return decorator


def _lookup(registry: Dict[str, Callable[..., Any]], name: str, field: str):
    try:
        return registry[name]
    except KeyError:
        raise ConfigError(
            ConfigErrorKind.UNKNOWN_LOADER,
            f"no loader registered as {name!r}; available: {sorted(registry)}",
            field=field,
        ) from None


def get_data_loader(name: str) -> DataLoaderFn:
    """Return the scan loader registered as `name`."""
    return _lookup(DATA_LOADERS, name, "data_loader")


def get_label_loader(name: str) -> LabelLoaderFn:
    """Return the ground-truth loader registered as `name`."""
    return _lookup(LABEL_LOADERS, name, "label_loader")


# ═══════════════════════════════════════════════════════════════════════════
# 📂 FILE READING
# ═══════════════════════════════════════════════════════════════════════════


def _read_array(path: Path, preferred: Optional[str] = None) -> np.ndarray:
    """
    Read a numeric array from .npy, .npz or .mat.

    For container formats (.npz, .mat) the entry named `preferred` is used
    when present; otherwise the file must hold exactly one array.
    """
    suffix = path.suffix.lower()
    if suffix == ".npy":
        return np.load(path)

    if suffix == ".npz":
        with np.load(path) as archive:
            contents = {k: archive[k] for k in archive.files}
    elif suffix == ".mat":
        contents = {k: v for k, v in loadmat(path).items() if not k.startswith("__")}
    else:
        raise ValueError(f"Unsupported file type '{suffix}' for {path}")

    if preferred is not None and preferred in contents:
        return np.asarray(contents[preferred])
    if len(contents) != 1:
        raise ValueError(
            f"{path} holds {len(contents)} arrays ({sorted(contents)}); "
            "expected exactly one"
        )
    return np.asarray(next(iter(contents.values())))


def _select_scan(volume: np.ndarray, label_id: int) -> np.ndarray:
    """Pick B-Scan `label_id` from a (scans, rows, columns) volume."""
    if volume.ndim == 3:
        return volume[int(label_id)]
    return volume


# ═══════════════════════════════════════════════════════════════════════════
# 🔬 BUILT-IN LOADERS
# ═══════════════════════════════════════════════════════════════════════════


@register_data_loader("spectralis")
def load_spectralis_scan(file_name: str, context: LoadContext) -> np.ndarray:
    """
    Load one B-Scan exported from a Spectralis device.

    Reads <data_dir>/<file_name>. For volumes the scan at context.label_id
    is returned. A clip range keeps columns left..right (1-based, inclusive).
    """
    path = Path(context.data_dir) / file_name
    if context.verbosity >= 2:
        logger.debug(f"📂 Loading scan {path} (label_id={context.label_id})")
    scan = _select_scan(_read_array(path, preferred="B0"), context.label_id)
    if context.clip_range is not None:
        scan = scan[:, context.clip_range.left - 1 : context.clip_range.right]
    return scan


@register_label_loader("LabelsFromLabelingTool")
def load_labeling_tool_labels(file_name: str, context: LoadContext) -> np.ndarray:
    """
    Load ground-truth boundaries saved by the labeling tool.

    Reads <label_dir>/<file_name>; rows are boundaries, columns are scan
    columns. For volumes the boundaries of scan context.label_id are returned.
    """
    path = Path(context.label_dir) / file_name
    if context.verbosity >= 2:
        logger.debug(f"📂 Loading labels {path} (label_id={context.label_id})")
    labels = _select_scan(_read_array(path), context.label_id)
    if context.clip_range is not None:
        labels = labels[:, context.clip_range.left - 1 : context.clip_range.right]
    return labels


__all__ = [
    "LoadContext",
    "DataLoaderFn",
    "LabelLoaderFn",
    "DATA_LOADERS",
    "LABEL_LOADERS",
    "register_data_loader",
    "register_label_loader",
    "get_data_loader",
    "get_label_loader",
    "load_spectralis_scan",
    "load_labeling_tool_labels",
]
