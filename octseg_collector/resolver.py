"""
═══════════════════════════════════════════════════════════════════════════════
🧭 COLLECTOR CONFIG RESOLVER
═══════════════════════════════════════════════════════════════════════════════

ARCHITECTURAL OVERVIEW
----------------------
Purpose: Turn a partial options mapping plus override params (e.g. from a
         cross-validation sweep) into a fully populated CollectorConfig.

Precedence for every option: override params > caller options > default.
The caller's mappings are never modified.

Resolution order (later steps read values resolved by earlier ones):
    1. data_dir / label_dir recorded verbatim
    2. constant-default options, loader lookup
    3. regions_per_volume, then label_ids
    4. clip / clip_range presence
    5. probe: one scan read + one label read on file_list[0]
    6. train/predict boundary and layer ranges
    7. B-Scan regions
    8-11. accelerator data type, column subsampling, remaining flags
    12. frozen CollectorConfig

Key Interactions:
- config.py: constant defaults, legacy option names
- loaders.py: loader registry, LoadContext
- config_types.py: CollectorConfig and value types

NAVIGATION GUIDE
----------------
# ═════ 1. PRECEDENCE HELPERS
# ═════ 2. DERIVED DEFAULTS
# ═════ 3. SAMPLE PROBE
# ═════ 4. RESOLVER ENTRY POINT

═══════════════════════════════════════════════════════════════════════════════
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
import logging
import math
import os

import numpy as np

from octseg_collector.config import (
    PREPROCESSING_KEY_ALIASES,
    get_collector_defaults,
    normalize_option_keys,
)
from octseg_collector.config_types import (
    ClipRange,
    CollectorConfig,
    ComputeDataType,
    PreprocessingConfig,
    RegionBounds,
    preprocessing_steps_from_value,
)
from octseg_collector.errors import ConfigError, ConfigErrorKind
from octseg_collector.loaders import (
    DataLoaderFn,
    LabelLoaderFn,
    LoadContext,
    get_data_loader,
    get_label_loader,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# 🥇 1. PRECEDENCE HELPERS
# ═══════════════════════════════════════════════════════════════════════════════


class _Missing:
    """Sentinel type for an absent option."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

SOURCE_OVERRIDE = "override"
SOURCE_RAW = "raw"
SOURCE_DEFAULT = "default"
SOURCE_DERIVED = "derived"


def first_present(*candidates: Any) -> Any:
    """
    Return the first candidate that is not MISSING.

    Returns MISSING when every candidate is absent.

    Example:
        >>> first_present(MISSING, 21, 15)
        21
    """
    for candidate in candidates:
        if candidate is not MISSING:
            return candidate
    return MISSING


def _lookup(options: Mapping[str, Any], key: str) -> Any:
    """Value of `key`, treating a missing key and an explicit None alike."""
    value = options.get(key)
    return MISSING if value is None else value


@dataclass
class _OptionSources:
    """Normalised override / caller mappings plus provenance bookkeeping."""

    override: Dict[str, Any]
    raw: Dict[str, Any]
    sources: Dict[str, str]

    def is_supplied(self, key: str) -> bool:
        return (
            _lookup(self.override, key) is not MISSING
            or _lookup(self.raw, key) is not MISSING
        )

    def pick(self, key: str, default: Any = MISSING) -> Any:
        """Resolve `key` as override > raw > default and record the source."""
        candidates = (_lookup(self.override, key), _lookup(self.raw, key), default)
        value = first_present(*candidates)
        if value is not MISSING:
            source_index = next(
                i for i, c in enumerate(candidates) if c is not MISSING
            )
            self.sources[key] = (SOURCE_OVERRIDE, SOURCE_RAW, SOURCE_DEFAULT)[
                source_index
            ]
        return value

    def derived(self, key: str, value: Any) -> Any:
        self.sources[key] = SOURCE_DERIVED
        return value

    def unknown_keys(self) -> Dict[str, Tuple[str, ...]]:
        """Option names neither mapping should carry, per source."""
        known = {f.name for f in fields(CollectorConfig)}
        unknown = {}
        for source, options in ((SOURCE_OVERRIDE, self.override), (SOURCE_RAW, self.raw)):
            names = tuple(sorted(k for k in options if k not in known))
            if names:
                unknown[source] = names
        return unknown


# ═══════════════════════════════════════════════════════════════════════════════
# 📐 2. DERIVED DEFAULTS
# ═══════════════════════════════════════════════════════════════════════════════


def default_column_subsampling(width: int) -> Tuple[int, ...]:
    """
    Evenly spaced columns at half density across a scan of `width` columns.

    Uses ceil(width / 2) points spanning 1..width, rounded half away from
    zero, never more points than columns and without duplicates. A single
    point sits on the last column (width 2 gives (2,)).

    Example:
        >>> default_column_subsampling(5)
        (1, 3, 5)
    """
    if width < 1:
        raise ConfigError(
            ConfigErrorKind.INVALID_VALUE,
            f"scan width must be >= 1, got {width}",
            field="scan_width",
        )
    num_points = min(math.ceil(width / 2), width)
    if num_points == 1:
        return (width,)
    columns = np.floor(np.linspace(1, width, num_points) + 0.5).astype(int)
    return tuple(int(c) for c in np.unique(columns))


def _int_sequence(value: Any, field_name: str) -> Tuple[int, ...]:
    values = np.asarray(value).ravel()
    if values.size and not np.all(np.equal(np.mod(values, 1), 0)):
        raise ConfigError(
            ConfigErrorKind.INVALID_VALUE,
            f"expected integer indices, got {value!r}",
            field=field_name,
        )
    return tuple(int(v) for v in values)


def _one_based_range(count: int) -> Tuple[int, ...]:
    return tuple(range(1, count + 1))


def _validated_range(
    value: Any, field_name: str, upper: int
) -> Tuple[int, ...]:
    """User-supplied boundary/layer indices, checked against 1..upper."""
    indices = _int_sequence(value, field_name)
    out_of_range = [i for i in indices if not 1 <= i <= upper]
    if out_of_range:
        raise ConfigError(
            ConfigErrorKind.INVALID_RANGE,
            f"indices {out_of_range} outside 1..{upper}",
            field=field_name,
        )
    return indices


def _label_id_rows(value: Any) -> Tuple[Tuple[int, ...], ...]:
    """Normalise label ids to a tuple of integer rows."""
    matrix = np.asarray(value)
    if matrix.ndim == 0:
        matrix = matrix.reshape(1, 1)
    elif matrix.ndim == 1:
        matrix = matrix.reshape(-1, 1)
    elif matrix.ndim != 2:
        raise ConfigError(
            ConfigErrorKind.INVALID_LABEL_IDS,
            f"expected a (num_files, regions_per_volume) matrix, "
            f"got {matrix.ndim} dimensions",
            field="label_ids",
        )
    return tuple(tuple(int(v) for v in row) for row in matrix)


def _label_id_columns(value: Any) -> int:
    rows = _label_id_rows(value)
    return len(rows[0]) if rows else 0


def _column_sets(value: Any, regions_per_volume: int) -> Tuple[Tuple[int, ...], ...]:
    """
    User-supplied columns_shape: one column list per volume region.

    A single flat list is used for every volume region.
    """
    if len(value) > 0 and all(np.ndim(v) == 0 for v in value):
        columns = _int_sequence(value, "columns_shape")
        return tuple(columns for _ in range(regions_per_volume))
    return tuple(_int_sequence(cols, "columns_shape") for cols in value)


def _region_bounds(value: Any) -> Tuple[RegionBounds, ...]:
    """
    User-supplied B-Scan regions: a list of (left, right) pairs, a single
    pair, or an (n, 2) array of bounds.
    """
    if isinstance(value, (RegionBounds, Mapping)):
        value = [value]
    elif isinstance(value, np.ndarray) or all(
        np.ndim(v) == 0 and not isinstance(v, (RegionBounds, Mapping))
        for v in value
    ):
        value = np.asarray(value).reshape(-1, 2)
    bounds = tuple(RegionBounds.from_value(b) for b in value)
    if not bounds:
        raise ConfigError(
            ConfigErrorKind.INVALID_VALUE,
            "at least one B-Scan region is required",
            field="bscan_region_bounds",
        )
    return bounds


def _file_name(descriptor: Any) -> str:
    """Name of a file descriptor: `.name` attribute, "name" key or the path."""
    if isinstance(descriptor, Mapping):
        return str(descriptor["name"])
    if isinstance(descriptor, (str, os.PathLike)):
        return os.fspath(descriptor)
    return str(descriptor.name)


def _preprocessing_levels(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, PreprocessingConfig):
        return {"patch_level": value.patch_level, "scan_level": value.scan_level}
    return normalize_option_keys(value, PREPROCESSING_KEY_ALIASES)


def _resolve_preprocessing(
    opts: _OptionSources, defaults: Dict[str, Any]
) -> PreprocessingConfig:
    """Fill patch_level and scan_level independently."""
    default_levels = defaults["preprocessing"]
    override = _preprocessing_levels(opts.override.get("preprocessing"))
    raw = _preprocessing_levels(opts.raw.get("preprocessing"))
    levels = {}
    level_sources = []
    for level in ("patch_level", "scan_level"):
        for source, options in ((SOURCE_OVERRIDE, override), (SOURCE_RAW, raw)):
            if level in options and options[level] is not None:
                levels[level] = options[level]
                level_sources.append(source)
                break
        else:
            levels[level] = default_levels[level]
            level_sources.append(SOURCE_DEFAULT)

    opts.sources["preprocessing"] = "+".join(dict.fromkeys(level_sources))
    return PreprocessingConfig(
        patch_level=preprocessing_steps_from_value(levels["patch_level"]),
        scan_level=preprocessing_steps_from_value(levels["scan_level"]),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# 🔬 3. SAMPLE PROBE
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ProbeResult:
    """Geometry read from the first file of the training set."""

    native_width: int
    native_height: int
    boundary_count: int


def probe_sample(
    file_name: str,
    context: LoadContext,
    data_loader: DataLoaderFn,
    label_loader: LabelLoaderFn,
) -> ProbeResult:
    """
    Read one scan and its ground truth to learn the scan geometry.

    Each loader is called exactly once. Loader exceptions propagate unchanged.

    Raises:
        ConfigError: INVALID_SAMPLE if the scan is not a 2-D array.
    """
    scan = np.asarray(data_loader(file_name, context))
    if scan.ndim != 2:
        raise ConfigError(
            ConfigErrorKind.INVALID_SAMPLE,
            f"sample scan '{file_name}' must be 2-D (rows x columns), "
            f"got shape {scan.shape}",
        )

    segmentation = np.asarray(label_loader(file_name, context))
    if segmentation.ndim >= 2:
        boundary_count = int(segmentation.shape[0])
    else:
        # A single boundary may come back as a flat row
        boundary_count = 1 if segmentation.size else 0

    return ProbeResult(
        native_width=int(scan.shape[1]),
        native_height=int(scan.shape[0]),
        boundary_count=boundary_count,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# 🧭 4. RESOLVER ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════════


def resolve_collector_config(
    raw_config: Optional[Mapping[str, Any]],
    override_params: Optional[Mapping[str, Any]],
    file_list: Sequence[Any],
    data_dir: Any,
    label_dir: Any,
    logger: Optional[logging.Logger] = None,
) -> CollectorConfig:
    """
    Resolve collector options into a complete, validated CollectorConfig.

    Args:
        raw_config: Caller's partial options (canonical or legacy names).
        override_params: Values that beat raw_config, e.g. from a CV sweep.
        file_list: Training files; only the first one is read.
        data_dir: Folder holding the scans.
        label_dir: Folder holding the ground truth.
        logger: Optional logger (module logger if None).

    Returns:
        Frozen CollectorConfig.

    Raises:
        ConfigError: EMPTY_FILE_LIST, MISSING_CLIP_RANGE, UNKNOWN_LOADER,
            INVALID_* for inconsistent options.
        Exception: whatever the data or label loader raises, unchanged.

    Example:
        >>> config = resolve_collector_config(
        ...     {"clip": True, "clip_range": (5, 50)}, {"patch_width": 9},
        ...     files, "data/scans", "data/labels",
        ... )
        >>> config.scan_width
        46
    """
    log = logger or logging.getLogger(__name__)

    if not file_list:
        raise ConfigError(
            ConfigErrorKind.EMPTY_FILE_LIST,
            "file_list is empty; at least one file is needed to probe the "
            "scan geometry",
            field="file_list",
        )

    defaults = get_collector_defaults()
    opts = _OptionSources(
        override=normalize_option_keys(override_params),
        raw=normalize_option_keys(raw_config),
        sources={},
    )
    for source, names in opts.unknown_keys().items():
        log.debug(f"Ignoring unknown {source} option(s): {', '.join(names)}")

    # 1. Folders, recorded verbatim
    data_dir = opts.derived("data_dir", os.fspath(data_dir))
    label_dir = opts.derived("label_dir", os.fspath(label_dir))

    # 2. Options with constant defaults
    patch_width = int(opts.pick("patch_width", defaults["patch_width"]))
    patch_height = int(opts.pick("patch_height", defaults["patch_height"]))
    preprocessing = _resolve_preprocessing(opts, defaults)
    verbosity = int(opts.pick("verbosity", defaults["verbosity"]))
    data_loader = str(opts.pick("data_loader", defaults["data_loader"]))
    label_loader = str(opts.pick("label_loader", defaults["label_loader"]))
    data_loader_fn = get_data_loader(data_loader)
    label_loader_fn = get_label_loader(label_loader)

    # 3. Regions per volume from the *supplied* label ids, then label ids
    label_ids_supplied = opts.is_supplied("label_ids")
    supplied_label_ids = opts.pick("label_ids")
    regions_per_volume = opts.pick("regions_per_volume")
    if regions_per_volume is MISSING:
        regions_per_volume = opts.derived(
            "regions_per_volume",
            _label_id_columns(supplied_label_ids) if label_ids_supplied else 1,
        )
    regions_per_volume = int(regions_per_volume)
    if regions_per_volume < 1:
        if label_ids_supplied and opts.sources["regions_per_volume"] == SOURCE_DERIVED:
            raise ConfigError(
                ConfigErrorKind.INVALID_LABEL_IDS,
                "label_ids has no columns; every file needs at least one id",
                field="label_ids",
            )
        raise ConfigError(
            ConfigErrorKind.INVALID_VALUE,
            f"must be >= 1, got {regions_per_volume}",
            field="regions_per_volume",
        )

    if label_ids_supplied:
        label_ids = _label_id_rows(supplied_label_ids)
        columns = len(label_ids[0]) if label_ids else 0
        if columns != regions_per_volume:
            raise ConfigError(
                ConfigErrorKind.INVALID_LABEL_IDS,
                f"label_ids has {columns} column(s) but regions_per_volume "
                f"is {regions_per_volume}",
                field="label_ids",
            )
        if len(label_ids) != len(file_list):
            log.warning(
                f"⚠️ label_ids has {len(label_ids)} row(s) for "
                f"{len(file_list)} file(s)"
            )
    else:
        label_ids = opts.derived(
            "label_ids",
            tuple((0,) * regions_per_volume for _ in range(len(file_list))),
        )
    if not label_ids:
        raise ConfigError(
            ConfigErrorKind.INVALID_LABEL_IDS,
            "label_ids has no rows",
            field="label_ids",
        )

    # 4. Clipping
    clip = bool(opts.pick("clip", defaults["clip"]))
    clip_range: Optional[ClipRange] = None
    if clip:
        supplied_clip_range = opts.pick("clip_range")
        if supplied_clip_range is MISSING:
            raise ConfigError(
                ConfigErrorKind.MISSING_CLIP_RANGE,
                "clip is set; please specify the clip range in clip_range",
                field="clip_range",
            )
        clip_range = ClipRange.from_value(supplied_clip_range)
    elif opts.is_supplied("clip_range"):
        log.debug("clip_range ignored because clip is not set")

    # 5. Probe the first file; the probe label id lives only in this context
    probe_file = _file_name(file_list[0])
    probe_context = LoadContext(
        label_id=label_ids[0][0],
        data_dir=data_dir,
        label_dir=label_dir,
        clip_range=None,
        scan_preprocessing=preprocessing.scan_level,
        verbosity=verbosity,
    )
    if verbosity >= 1:
        log.info(f"🔬 Probing sample file '{probe_file}' (label_id={label_ids[0][0]})")
    probe = probe_sample(probe_file, probe_context, data_loader_fn, label_loader_fn)

    if clip_range is not None:
        if not clip_range.fits_within(probe.native_width):
            raise ConfigError(
                ConfigErrorKind.INVALID_CLIP_RANGE,
                f"({clip_range.left}, {clip_range.right}) outside the native "
                f"scan width 1..{probe.native_width}",
                field="clip_range",
            )
        scan_width = clip_range.width
    else:
        scan_width = probe.native_width
    scan_height = probe.native_height
    opts.derived("scan_width", scan_width)
    opts.derived("scan_height", scan_height)

    boundary_count = opts.derived("boundary_count", probe.boundary_count)
    layer_count = opts.derived("layer_count", boundary_count + 1)

    # 6. Boundaries and layers used for training and prediction
    ranges: Dict[str, Tuple[int, ...]] = {}
    for name, upper in (
        ("edges_train", boundary_count),
        ("layers_train", layer_count),
        ("edges_pred", boundary_count),
        ("layers_pred", layer_count),
    ):
        supplied = opts.pick(name)
        if supplied is MISSING:
            ranges[name] = opts.derived(name, _one_based_range(upper))
        else:
            ranges[name] = _validated_range(supplied, name, upper)

    # 7. B-Scan regions with separate appearance models
    supplied_regions = opts.pick("bscan_region_bounds")
    if supplied_regions is MISSING:
        bscan_region_bounds = opts.derived(
            "bscan_region_bounds", (RegionBounds(1, scan_width),)
        )
    else:
        bscan_region_bounds = _region_bounds(supplied_regions)
    regions_per_bscan = opts.derived("regions_per_bscan", len(bscan_region_bounds))

    # 8. Accelerator data type
    compute_on_accelerator = bool(
        opts.pick("compute_on_accelerator", defaults["compute_on_accelerator"])
    )
    compute_data_type = opts.derived(
        "compute_data_type", ComputeDataType.from_flag(compute_on_accelerator)
    )

    # 9. Patch sampling
    num_patches_per_class = int(
        opts.pick("num_patches_per_class", defaults["num_patches_per_class"])
    )
    center_patches = bool(opts.pick("center_patches", defaults["center_patches"]))

    # 10. Columns for the shape prior (per volume region) and for prediction
    supplied_columns_shape = opts.pick("columns_shape")
    if supplied_columns_shape is MISSING:
        default_columns = default_column_subsampling(scan_width)
        columns_shape = opts.derived(
            "columns_shape", tuple(default_columns for _ in range(regions_per_volume))
        )
    else:
        columns_shape = _column_sets(supplied_columns_shape, regions_per_volume)

    supplied_columns_pred = opts.pick("columns_pred")
    if supplied_columns_pred is MISSING:
        columns_pred = opts.derived(
            "columns_pred", default_column_subsampling(scan_width)
        )
    else:
        columns_pred = _int_sequence(supplied_columns_pred, "columns_pred")

    # 11. Remaining flags
    patch_position = str(opts.pick("patch_position", defaults["patch_position"]))
    print_timings = bool(opts.pick("print_timings", defaults["print_timings"]))
    num_layers = opts.derived("num_layers", layer_count)
    save_appearance_terms = bool(
        opts.pick("save_appearance_terms", defaults["save_appearance_terms"])
    )

    # 12. Freeze
    config = CollectorConfig(
        data_dir=data_dir,
        label_dir=label_dir,
        patch_width=patch_width,
        patch_height=patch_height,
        verbosity=verbosity,
        data_loader=data_loader,
        label_loader=label_loader,
        print_timings=print_timings,
        save_appearance_terms=save_appearance_terms,
        compute_on_accelerator=compute_on_accelerator,
        num_patches_per_class=num_patches_per_class,
        center_patches=center_patches,
        patch_position=patch_position,
        preprocessing=preprocessing,
        regions_per_volume=regions_per_volume,
        label_ids=label_ids,
        clip=clip,
        clip_range=clip_range,
        scan_width=scan_width,
        scan_height=scan_height,
        boundary_count=boundary_count,
        layer_count=layer_count,
        edges_train=ranges["edges_train"],
        layers_train=ranges["layers_train"],
        edges_pred=ranges["edges_pred"],
        layers_pred=ranges["layers_pred"],
        bscan_region_bounds=bscan_region_bounds,
        regions_per_bscan=regions_per_bscan,
        columns_shape=columns_shape,
        columns_pred=columns_pred,
        compute_data_type=compute_data_type,
        num_layers=num_layers,
        data_loader_fn=data_loader_fn,
        label_loader_fn=label_loader_fn,
        field_sources=dict(opts.sources),
    )

    if verbosity >= 1:
        log.info(
            f"✅ Collector config resolved: scan {scan_height}x{scan_width}"
            f"{' (clipped)' if clip else ''}, {boundary_count} boundaries, "
            f"{regions_per_bscan} B-Scan region(s), "
            f"{regions_per_volume} region(s) per volume"
        )
    if verbosity >= 2:
        for key, source in sorted(opts.sources.items()):
            if source in (SOURCE_OVERRIDE, SOURCE_RAW):
                log.debug(f"   {key}: {source}")

    return config


__all__ = [
    "MISSING",
    "ProbeResult",
    "default_column_subsampling",
    "first_present",
    "probe_sample",
    "resolve_collector_config",
]
