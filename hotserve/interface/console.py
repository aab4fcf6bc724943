import socket
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ..core.builder import Diagnostic
from ..core.config_manager import ServeConfig

def get_ip() -> Optional[str]:
    """Get the network ip of this machine"""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            # no packet is sent; connecting only selects the outbound interface
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return None

class ConsoleReporter:
    """Human-readable serve banner and build summaries"""

    def __init__(self, config: ServeConfig, ip: Optional[str] = None, out=print):
        self.config = config
        self.ip = ip or get_ip() or "0.0.0.0"
        self._out = out

    def banner(self, diagnostics: Sequence[Diagnostic] = (), elapsed_time: float = 0.0):
        """Print serve info after the initial build"""
        mode = "hot reload" if self.config.hot_reload else "full reload"
        self._out(f"hotserve serving {self.config.out_path} ({mode})")
        self._out(f"  Local:   http://localhost:{self.config.port}/")
        self._out(f"  Network: http://{self.ip}:{self.config.port}/")
        self._out(f"  Watching: {', '.join(self.config.watch_paths)}")
        self._print_build(diagnostics, elapsed_time)

    def report(self,
               changed: Iterable[Path],
               diagnostics: Sequence[Diagnostic],
               elapsed_time: float):
        """Print the outcome of one build attempt"""
        changed = sorted(str(path) for path in changed)
        if changed:
            self._out(f"Changed: {', '.join(changed)}")
        self._print_build(diagnostics, elapsed_time)

    def _print_build(self, diagnostics: Sequence[Diagnostic], elapsed_time: float):
        errors = [d for d in diagnostics if d.level == 'error']
        warnings = [d for d in diagnostics if d.level == 'warning']
        for diagnostic in diagnostics:
            self._out(f"  {diagnostic.level}: {diagnostic.message}")
        status = "failed" if errors else "finished"
        self._out(
            f"Build {status} in {elapsed_time * 1000:.0f}ms "
            f"({len(warnings)} warnings, {len(errors)} errors)"
        )
