from pathlib import Path

from hotserve.core.builder import Diagnostic
from hotserve.interface.console import ConsoleReporter

class TestConsoleReporter:
    def test_banner(self, config):
        lines = []
        reporter = ConsoleReporter(config, ip="192.168.1.20", out=lines.append)

        reporter.banner([Diagnostic('warning', 'unused import')], 0.25)

        text = "\n".join(lines)
        assert "http://localhost:8080/" in text
        assert "http://192.168.1.20:8080/" in text
        assert "hot reload" in text
        assert "warning: unused import" in text
        assert "Build finished in 250ms (1 warnings, 0 errors)" in text

    def test_report_failed_build(self, config):
        lines = []
        reporter = ConsoleReporter(config, ip="10.0.0.1", out=lines.append)

        reporter.report([Path("src/b.css"), Path("src/a.css")], [Diagnostic('error', 'bad token')], 0.0)

        assert lines[0] == "Changed: src/a.css, src/b.css"
        assert lines[-1].startswith("Build failed")
