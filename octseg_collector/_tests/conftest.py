"""Shared fixtures: in-memory loaders registered under test-only names."""

from types import SimpleNamespace
from typing import Any, Dict, List

import numpy as np
import pytest

from octseg_collector.loaders import DATA_LOADERS, LABEL_LOADERS, LoadContext


class FakeLoaders:
    """Scan/label loaders returning fixed arrays and recording every call."""

    def __init__(self, scan: np.ndarray, labels: np.ndarray) -> None:
        self.scan = scan
        self.labels = labels
        self.data_calls: List[Dict[str, Any]] = []
        self.label_calls: List[Dict[str, Any]] = []

    def load_data(self, file_name: str, context: LoadContext) -> np.ndarray:
        self.data_calls.append({"file_name": file_name, "context": context})
        return self.scan

    def load_labels(self, file_name: str, context: LoadContext) -> np.ndarray:
        self.label_calls.append({"file_name": file_name, "context": context})
        return self.labels


@pytest.fixture
def make_loaders(monkeypatch):
    """Register fake loaders as "fake-scan" / "fake-labels"."""

    def _make(width: int = 768, height: int = 496, boundaries: int = 8) -> FakeLoaders:
        fake = FakeLoaders(
            scan=np.zeros((height, width)),
            labels=np.ones((boundaries, width)),
        )
        monkeypatch.setitem(DATA_LOADERS, "fake-scan", fake.load_data)
        monkeypatch.setitem(LABEL_LOADERS, "fake-labels", fake.load_labels)
        return fake

    return _make


@pytest.fixture
def fake_loaders(make_loaders):
    """Realistic Spectralis geometry: 496 rows, 768 columns, 8 boundaries."""
    return make_loaders()


@pytest.fixture
def base_options() -> Dict[str, Any]:
    """Caller options selecting the fake loaders."""
    return {"data_loader": "fake-scan", "label_loader": "fake-labels"}


@pytest.fixture
def two_files():
    """File descriptors shaped like directory listing entries."""
    return [SimpleNamespace(name="scan_01.mat"), SimpleNamespace(name="scan_02.mat")]


@pytest.fixture(autouse=True)
def _clear_octseg_env(monkeypatch):
    """Keep OCTSEG_* variables of the host environment out of the tests."""
    for key in (
        "OCTSEG_VERBOSITY",
        "OCTSEG_DATA_LOADER",
        "OCTSEG_LABEL_LOADER",
        "OCTSEG_CALC_ON_ACCELERATOR",
        "OCTSEG_NUM_PATCHES",
        "OCTSEG_PRINT_TIMINGS",
    ):
        monkeypatch.delenv(key, raising=False)
