import threading
from pathlib import Path
from typing import List

import pytest

from hotserve.core.builder import AssetCompiler, BuildResult, Diagnostic
from hotserve.core.config_manager import ServeConfig
from hotserve.core.errors import BuildError

class FakeCompiler(AssetCompiler):
    """Records builds; can block on a gate and fail on demand"""

    def __init__(self):
        self.calls: List[bool] = []
        self.active = 0
        self.max_active = 0
        self.fail = False
        self.fail_after = None
        self.error = None
        self.gate = None
        self.started = threading.Event()
        self._lock = threading.Lock()

    def build(self, config: ServeConfig, incremental: bool) -> BuildResult:
        with self._lock:
            self.calls.append(incremental)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            if self.gate is not None:
                self.gate.wait(5)
            if self.error is not None:
                raise self.error
            if self.fail or (self.fail_after is not None and len(self.calls) > self.fail_after):
                raise BuildError("compile failed", [Diagnostic('error', 'src/app.rs: bad token')])
            return BuildResult(
                diagnostics=(Diagnostic('warning', 'unused import'),),
                elapsed_time=0.01,
                artifact_dir=config.out_path
            )
        finally:
            with self._lock:
                self.active -= 1

class FakeReporter:
    def __init__(self):
        self.reports = []
        self.banners = []

    def banner(self, diagnostics=(), elapsed_time=0.0):
        self.banners.append((list(diagnostics), elapsed_time))

    def report(self, changed, diagnostics, elapsed_time):
        self.reports.append((sorted(map(str, changed)), list(diagnostics), elapsed_time))

@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "dist").mkdir()
    return tmp_path

@pytest.fixture
def config(project_dir: Path) -> ServeConfig:
    return ServeConfig(project_dir=str(project_dir), settle_delay=0)

@pytest.fixture
def compiler() -> FakeCompiler:
    return FakeCompiler()

@pytest.fixture
def reporter() -> FakeReporter:
    return FakeReporter()
