import logging
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

from .config_manager import ServeConfig
from .errors import BuildError

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class Diagnostic:
    level: str  # 'warning' or 'error'
    message: str

@dataclass(frozen=True)
class BuildResult:
    diagnostics: Tuple[Diagnostic, ...] = ()
    elapsed_time: float = 0.0
    artifact_dir: Path = field(default_factory=Path)

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.level == 'warning']

class AssetCompiler(ABC):
    """Boundary to the asset compiler/bundler"""

    @abstractmethod
    def build(self, config: ServeConfig, incremental: bool) -> BuildResult:
        """Build the project into config.out_path, raising BuildError on failure"""

class CommandCompiler(AssetCompiler):
    """Runs the project's build command as a subprocess"""

    def __init__(self, command: List[str] = None):
        self.command = list(command or [])

    def build(self, config: ServeConfig, incremental: bool) -> BuildResult:
        start_time = time.perf_counter()
        out_path = config.out_path
        try:
            out_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BuildError(f"Cannot create output directory {out_path}: {e}") from e
        if not self.command:
            return BuildResult(
                elapsed_time=time.perf_counter() - start_time,
                artifact_dir=out_path
            )

        logger.debug(f"Running build command: {' '.join(self.command)} (incremental={incremental})")
        try:
            completed = subprocess.run(
                self.command,
                cwd=config.project_path,
                capture_output=True,
                text=True,
                errors='replace'
            )
        except OSError as e:
            raise BuildError(f"Failed to run build command: {e}") from e

        diagnostics = tuple(self._parse_diagnostics(completed.stdout + completed.stderr))
        if completed.returncode != 0:
            raise BuildError(
                f"Build command exited with status {completed.returncode}",
                diagnostics
            )
        return BuildResult(
            diagnostics=diagnostics,
            elapsed_time=time.perf_counter() - start_time,
            artifact_dir=out_path
        )

    @staticmethod
    def _parse_diagnostics(output: str) -> List[Diagnostic]:
        """Pick warning and error lines out of compiler output"""
        diagnostics = []
        for line in output.splitlines():
            lowered = line.lower()
            if 'error' in lowered:
                diagnostics.append(Diagnostic('error', line.strip()))
            elif 'warning' in lowered:
                diagnostics.append(Diagnostic('warning', line.strip()))
        return diagnostics
