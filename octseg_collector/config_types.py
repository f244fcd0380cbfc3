"""
═══════════════════════════════════════════════════════════════════════════════
📋 COLLECTOR CONFIGURATION TYPES
═══════════════════════════════════════════════════════════════════════════════

ARCHITECTURAL OVERVIEW
----------------------
Responsibility: Define the typed, immutable configuration handed to the patch
and feature collectors. Replaces the loosely-typed options struct with
validated dataclasses.

It provides:
1. Small value types for clip ranges and B-Scan region bounds
2. Tagged preprocessing step variants (one class per supported operation)
3. The ComputeDataType enum derived from the accelerator flag
4. CollectorConfig, the fully resolved configuration (built by resolver.py)

Column convention: every column index and region bound is 1-based and
inclusive, i.e. a scan of width W spans columns 1..W.

Usage:
    from octseg_collector.resolver import resolve_collector_config

    config = resolve_collector_config(options, params, files, data_dir, label_dir)
    config.scan_width, config.columns_pred, config.array_dtype

For Navigation: Use VS Code outline (Ctrl+Shift+O)

NAVIGATION GUIDE
----------------
# ═════ 1. CLIP RANGE AND REGION BOUNDS
# ═════ 2. PREPROCESSING STEPS
# ═════ 3. COMPUTE DATA TYPE
# ═════ 4. COLLECTOR CONFIG (RESOLVED)

═══════════════════════════════════════════════════════════════════════════════
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional, Tuple, Type

import numpy as np

from octseg_collector.errors import ConfigError, ConfigErrorKind


def _pair_from_value(value: Any, field_name: str) -> Tuple[int, int]:
    """Read a (left, right) pair from a sequence or a {"left", "right"} mapping."""
    if isinstance(value, Mapping):
        try:
            return int(value["left"]), int(value["right"])
        except KeyError as e:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                f"expected keys 'left' and 'right', missing {e}",
                field=field_name,
            ) from e
    values = np.asarray(value).ravel()
    if values.size != 2:
        raise ConfigError(
            ConfigErrorKind.INVALID_VALUE,
            f"expected a (left, right) pair, got {value!r}",
            field=field_name,
        )
    return int(values[0]), int(values[1])


# ═══════════════════════════════════════════════════════════════════════════════
# ✂️ 1. CLIP RANGE AND REGION BOUNDS
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ClipRange:
    """
    Columns kept when clipping a B-Scan (e.g. to cut away the nerve head).

    Attributes:
        left: First kept column (1-based, inclusive).
        right: Last kept column (1-based, inclusive).
    """

    left: int
    right: int

    def __post_init__(self) -> None:
        """Validate ordering; native bounds are checked against a real scan."""
        if self.left < 1:
            raise ConfigError(
                ConfigErrorKind.INVALID_CLIP_RANGE,
                f"left must be >= 1, got {self.left}",
                field="clip_range",
            )
        if self.left >= self.right:
            raise ConfigError(
                ConfigErrorKind.INVALID_CLIP_RANGE,
                f"left must be < right, got ({self.left}, {self.right})",
                field="clip_range",
            )

    @classmethod
    def from_value(cls, value: Any) -> "ClipRange":
        """Create a ClipRange from a ClipRange, a pair or a mapping."""
        if isinstance(value, cls):
            return value
        left, right = _pair_from_value(value, "clip_range")
        return cls(left=left, right=right)

    @property
    def width(self) -> int:
        """Number of columns kept."""
        return self.right - self.left + 1

    def fits_within(self, native_width: int) -> bool:
        """Check whether the range lies inside a scan with native_width columns."""
        return 1 <= self.left and self.right <= native_width


@dataclass(frozen=True)
class RegionBounds:
    """Left and right column of one B-Scan region (1-based, inclusive)."""

    left: int
    right: int

    def __post_init__(self) -> None:
        if self.left < 1 or self.left > self.right:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                f"region bounds must satisfy 1 <= left <= right, "
                f"got ({self.left}, {self.right})",
                field="bscan_region_bounds",
            )

    @classmethod
    def from_value(cls, value: Any) -> "RegionBounds":
        if isinstance(value, cls):
            return value
        left, right = _pair_from_value(value, "bscan_region_bounds")
        return cls(left=left, right=right)


# ═══════════════════════════════════════════════════════════════════════════════
# 🧹 2. PREPROCESSING STEPS
# ═══════════════════════════════════════════════════════════════════════════════
# Each supported operation is one frozen dataclass carrying its own typed
# parameters. `name` is the operation identifier used in raw option lists.


@dataclass(frozen=True)
class EigenspaceProjection:
    """Project each patch onto its leading `rank` principal components."""

    name: ClassVar[str] = "projToEigenspace"

    rank: int = 20

    def __post_init__(self) -> None:
        if self.rank < 1:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                f"rank must be >= 1, got {self.rank}",
                field="preprocessing",
            )

    @classmethod
    def from_params(cls, params: Any) -> "EigenspaceProjection":
        if params is None:
            return cls()
        if isinstance(params, Mapping):
            return cls(rank=int(params.get("rank", 20)))
        return cls(rank=int(np.asarray(params).ravel()[0]))

    def to_params(self) -> Dict[str, Any]:
        return {"rank": self.rank}


@dataclass(frozen=True)
class MedianFilter:
    """Median-filter a scan with a square window of `size` pixels."""

    name: ClassVar[str] = "medianFilter"

    size: int = 3

    def __post_init__(self) -> None:
        if self.size < 1 or self.size % 2 == 0:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                f"size must be a positive odd number, got {self.size}",
                field="preprocessing",
            )

    @classmethod
    def from_params(cls, params: Any) -> "MedianFilter":
        if params is None:
            return cls()
        if isinstance(params, Mapping):
            return cls(size=int(params.get("size", 3)))
        return cls(size=int(np.asarray(params).ravel()[0]))

    def to_params(self) -> Dict[str, Any]:
        return {"size": self.size}


@dataclass(frozen=True)
class Standardize:
    """Scale intensities to zero mean and unit variance."""

    name: ClassVar[str] = "standardize"

    @classmethod
    def from_params(cls, params: Any) -> "Standardize":
        return cls()

    def to_params(self) -> Dict[str, Any]:
        return {}


PreprocessingStep = Any  # one of the step classes registered below

PREPROCESSING_STEPS: Dict[str, Type[Any]] = {
    EigenspaceProjection.name: EigenspaceProjection,
    MedianFilter.name: MedianFilter,
    Standardize.name: Standardize,
}


def preprocessing_step_from_value(value: Any) -> PreprocessingStep:
    """
    Convert one raw preprocessing entry into a typed step.

    Accepted forms:
        - a step instance (returned unchanged)
        - "operation" (step with default parameters)
        - ("operation", params) where params is a scalar, sequence or mapping
        - ("operation", p1, p2, ...) for positional parameters

    Raises:
        ConfigError: UNKNOWN_PREPROCESSING_STEP for an unsupported operation.
    """
    if isinstance(value, tuple(PREPROCESSING_STEPS.values())):
        return value

    if isinstance(value, str):
        op, params = value, None
    else:
        entry = list(value)
        if not entry:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                "empty preprocessing entry",
                field="preprocessing",
            )
        op = entry[0]
        rest = entry[1:]
        params = None if not rest else rest[0] if len(rest) == 1 else rest

    # Function handles from older option structs carry their name
    op_name = getattr(op, "__name__", op)
    step_cls = PREPROCESSING_STEPS.get(op_name)
    if step_cls is None:
        raise ConfigError(
            ConfigErrorKind.UNKNOWN_PREPROCESSING_STEP,
            f"unsupported operation {op_name!r}; "
            f"supported: {sorted(PREPROCESSING_STEPS)}",
            field="preprocessing",
        )
    return step_cls.from_params(params)


def preprocessing_steps_from_value(value: Any) -> Tuple[PreprocessingStep, ...]:
    """Convert an ordered list of raw entries, preserving order."""
    if value is None:
        return ()
    return tuple(preprocessing_step_from_value(v) for v in value)


@dataclass(frozen=True)
class PreprocessingConfig:
    """
    Ordered preprocessing steps.

    Attributes:
        patch_level: Applied to patches when training/predicting appearance.
        scan_level: Applied to every scan by the data loader.
    """

    patch_level: Tuple[PreprocessingStep, ...] = (EigenspaceProjection(rank=20),)
    scan_level: Tuple[PreprocessingStep, ...] = ()

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "PreprocessingConfig":
        """Create PreprocessingConfig from a {"patch_level", "scan_level"} dict."""
        return cls(
            patch_level=preprocessing_steps_from_value(
                d.get("patch_level", [("projToEigenspace", 20)])
            ),
            scan_level=preprocessing_steps_from_value(d.get("scan_level", [])),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patch_level": [(s.name, s.to_params()) for s in self.patch_level],
            "scan_level": [(s.name, s.to_params()) for s in self.scan_level],
        }


# ═══════════════════════════════════════════════════════════════════════════════
# 🖥️ 3. COMPUTE DATA TYPE
# ═══════════════════════════════════════════════════════════════════════════════


class ComputeDataType(Enum):
    """Where collector arrays live and in which precision."""

    CPU_DOUBLE = "cpu-double"
    ACCELERATOR_RESIDENT = "accelerator-resident"

    @classmethod
    def from_flag(cls, compute_on_accelerator: bool) -> "ComputeDataType":
        return cls.ACCELERATOR_RESIDENT if compute_on_accelerator else cls.CPU_DOUBLE

    @property
    def array_dtype(self) -> Type[np.floating]:
        """Numpy dtype arrays are cast to before computation."""
        if self is ComputeDataType.ACCELERATOR_RESIDENT:
            return np.float32
        return np.float64


# ═══════════════════════════════════════════════════════════════════════════════
# 🎯 4. COLLECTOR CONFIG (RESOLVED)
# ═══════════════════════════════════════════════════════════════════════════════

VALID_PATCH_POSITIONS = ("random", "middle")


def _invalid(field_name: str, message: str) -> ConfigError:
    return ConfigError(ConfigErrorKind.INVALID_VALUE, message, field=field_name)


@dataclass(frozen=True)
class CollectorConfig:
    """
    Fully resolved, read-only configuration for the patch collectors.

    Built by resolve_collector_config(); never mutated afterwards. Fields are
    grouped by the order in which the resolver fills them.

    Attributes:
        data_dir: Folder holding the scans (recorded verbatim).
        label_dir: Folder holding the ground truth (recorded verbatim).
        patch_width: Patch width in px. Must be odd (caller precondition).
        patch_height: Patch height in px.
        verbosity: Amount of printed information, 0 (nothing) to 2 (maximal).
        data_loader: Identifier of the scan loader.
        label_loader: Identifier of the ground-truth loader.
        print_timings: Print timings of the different modules.
        save_appearance_terms: Return appearance predictions for each pixel.
        compute_on_accelerator: Move parts of the computation onto the GPU.
        num_patches_per_class: Patches drawn per file and appearance class.
        center_patches: Subtract the mean of each patch.
        patch_position: "middle" or "random" placement within a layer.
        preprocessing: Patch- and scan-level preprocessing steps.
        regions_per_volume: B-Scans per volume; 1 for 2-D scans.
        label_ids: (num_files, regions_per_volume) ids of the scans of a volume.
        clip: Whether scans are clipped to clip_range.
        clip_range: Kept columns when clip is set, else None.
        scan_width: Columns of a (clipped) scan.
        scan_height: Rows of a scan.
        boundary_count: Number of annotated boundaries.
        layer_count: boundary_count + 1.
        edges_train / layers_train: Boundaries/layers used for training.
        edges_pred / layers_pred: Boundaries/layers predicted.
        bscan_region_bounds: Regions of a B-Scan with separate appearance models.
        regions_per_bscan: len(bscan_region_bounds).
        columns_shape: Per volume region, columns used by the shape prior.
        columns_pred: Columns predictions are made for.
        compute_data_type: Derived from compute_on_accelerator.
        num_layers: layer_count.
        data_loader_fn: Callable resolved from data_loader.
        label_loader_fn: Callable resolved from label_loader.
        field_sources: Where each option came from ("override", "raw",
            "default" or "derived").
    """

    data_dir: str
    label_dir: str

    # Tier 0
    patch_width: int
    patch_height: int
    verbosity: int
    data_loader: str
    label_loader: str
    print_timings: bool
    save_appearance_terms: bool
    compute_on_accelerator: bool
    num_patches_per_class: int
    center_patches: bool
    patch_position: str
    preprocessing: PreprocessingConfig

    # Tier 1
    regions_per_volume: int
    label_ids: Tuple[Tuple[int, ...], ...]

    # Tier 2
    clip: bool
    clip_range: Optional[ClipRange]

    # Tier 3 (probe-derived)
    scan_width: int
    scan_height: int
    boundary_count: int
    layer_count: int
    edges_train: Tuple[int, ...]
    layers_train: Tuple[int, ...]
    edges_pred: Tuple[int, ...]
    layers_pred: Tuple[int, ...]

    # Tier 4
    bscan_region_bounds: Tuple[RegionBounds, ...]
    regions_per_bscan: int
    columns_shape: Tuple[Tuple[int, ...], ...]
    columns_pred: Tuple[int, ...]

    # Tier 5
    compute_data_type: ComputeDataType
    num_layers: int

    data_loader_fn: Optional[Callable[..., Any]] = field(
        default=None, compare=False, repr=False
    )
    label_loader_fn: Optional[Callable[..., Any]] = field(
        default=None, compare=False, repr=False
    )
    field_sources: Mapping[str, str] = field(
        default_factory=dict, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        """Validate cross-field invariants."""
        if self.verbosity not in (0, 1, 2):
            raise _invalid("verbosity", f"must be 0, 1 or 2, got {self.verbosity}")
        if self.patch_position not in VALID_PATCH_POSITIONS:
            raise _invalid(
                "patch_position",
                f"must be one of {VALID_PATCH_POSITIONS}, got '{self.patch_position}'",
            )
        for name in ("patch_width", "patch_height", "num_patches_per_class"):
            if getattr(self, name) < 1:
                raise _invalid(name, f"must be >= 1, got {getattr(self, name)}")
        if self.regions_per_volume < 1:
            raise _invalid(
                "regions_per_volume", f"must be >= 1, got {self.regions_per_volume}"
            )
        if any(len(row) != self.regions_per_volume for row in self.label_ids):
            raise ConfigError(
                ConfigErrorKind.INVALID_LABEL_IDS,
                f"every row must have regions_per_volume={self.regions_per_volume} "
                f"entries",
                field="label_ids",
            )
        if self.clip and self.clip_range is None:
            raise ConfigError(
                ConfigErrorKind.MISSING_CLIP_RANGE,
                "clip is set but no clip_range was given",
                field="clip_range",
            )
        if self.layer_count != self.boundary_count + 1:
            raise _invalid(
                "layer_count",
                f"must equal boundary_count + 1 ({self.boundary_count + 1}), "
                f"got {self.layer_count}",
            )
        if self.num_layers != self.layer_count:
            raise _invalid("num_layers", "must equal layer_count")
        if len(self.bscan_region_bounds) != self.regions_per_bscan:
            raise _invalid(
                "regions_per_bscan",
                f"must equal len(bscan_region_bounds)="
                f"{len(self.bscan_region_bounds)}, got {self.regions_per_bscan}",
            )
        if len(self.columns_shape) != self.regions_per_volume:
            raise _invalid(
                "columns_shape",
                f"needs one column list per volume region "
                f"({self.regions_per_volume}), got {len(self.columns_shape)}",
            )
        if self.compute_data_type is not ComputeDataType.from_flag(
            self.compute_on_accelerator
        ):
            raise _invalid(
                "compute_data_type", "does not match compute_on_accelerator"
            )

    @property
    def array_dtype(self) -> Type[np.floating]:
        """Numpy dtype collector arrays are cast to."""
        return self.compute_data_type.array_dtype

    @property
    def num_label_id_rows(self) -> int:
        """Rows of label_ids; normally one per file of the training set."""
        return len(self.label_ids)

    @property
    def label_id_matrix(self) -> np.ndarray:
        """label_ids as an integer (num_files, regions_per_volume) array."""
        return np.array(self.label_ids, dtype=int).reshape(
            len(self.label_ids), self.regions_per_volume
        )

    def as_dict(self) -> Dict[str, Any]:
        """
        Plain-dict view of the configuration for consumers expecting an
        options mapping. Loader callables and provenance are left out.
        """
        return {
            "data_dir": self.data_dir,
            "label_dir": self.label_dir,
            "patch_width": self.patch_width,
            "patch_height": self.patch_height,
            "verbosity": self.verbosity,
            "data_loader": self.data_loader,
            "label_loader": self.label_loader,
            "print_timings": self.print_timings,
            "save_appearance_terms": self.save_appearance_terms,
            "compute_on_accelerator": self.compute_on_accelerator,
            "num_patches_per_class": self.num_patches_per_class,
            "center_patches": self.center_patches,
            "patch_position": self.patch_position,
            "preprocessing": self.preprocessing.to_dict(),
            "regions_per_volume": self.regions_per_volume,
            "label_ids": [list(row) for row in self.label_ids],
            "clip": self.clip,
            "clip_range": (
                (self.clip_range.left, self.clip_range.right)
                if self.clip_range is not None
                else None
            ),
            "scan_width": self.scan_width,
            "scan_height": self.scan_height,
            "boundary_count": self.boundary_count,
            "layer_count": self.layer_count,
            "edges_train": list(self.edges_train),
            "layers_train": list(self.layers_train),
            "edges_pred": list(self.edges_pred),
            "layers_pred": list(self.layers_pred),
            "bscan_region_bounds": [(b.left, b.right) for b in self.bscan_region_bounds],
            "regions_per_bscan": self.regions_per_bscan,
            "columns_shape": [list(c) for c in self.columns_shape],
            "columns_pred": list(self.columns_pred),
            "compute_data_type": self.compute_data_type.value,
            "num_layers": self.num_layers,
        }


__all__ = [
    "ClipRange",
    "RegionBounds",
    "EigenspaceProjection",
    "MedianFilter",
    "Standardize",
    "PREPROCESSING_STEPS",
    "preprocessing_step_from_value",
    "preprocessing_steps_from_value",
    "PreprocessingConfig",
    "ComputeDataType",
    "VALID_PATCH_POSITIONS",
    "CollectorConfig",
]
