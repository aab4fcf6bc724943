class HotServeError(Exception):
    """Base class for dev server errors"""


class WatchSetupError(HotServeError):
    """No watch root could be registered"""


class TemplateParseError(HotServeError):
    def __init__(self, path: str, message: str, lineno: int = None):
        self.path = path
        self.lineno = lineno
        location = f"{path}:{lineno}" if lineno else path
        super().__init__(f"{location}: {message}")


class BuildError(HotServeError):
    """The asset compiler failed"""

    def __init__(self, message: str, diagnostics=None):
        super().__init__(message)
        self.diagnostics = list(diagnostics or [])


class HubLagged(HotServeError):
    """Subscriber backlog overflowed; messages were dropped"""

    def __init__(self, missed: int):
        super().__init__(f"subscriber lagged behind by {missed} messages")
        self.missed = missed


class HubClosed(HotServeError):
    """The hub or subscription was closed"""
