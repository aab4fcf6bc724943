from pathlib import Path
from typing import Optional
from jinja2 import BaseLoader, Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup

from ..core.config_manager import ServeConfig

WS_PATH = "/_hotserve/ws"

DEFAULT_PAGE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{{ title }}</title>
</head>
<body>
  <div id="main"></div>
{{ reload_script }}
</body>
</html>
"""

# Reloads on "reload" and hands hot patches to the page runtime as a DOM event.
RELOAD_SCRIPT = """<script>
(function () {
  var protocol = location.protocol === "https:" ? "wss:" : "ws:";
  var socket = new WebSocket(protocol + "//" + location.host + "{{ ws_path }}");
  socket.onmessage = function (event) {
    if (event.data === "reload") {
      location.reload();
      return;
    }
    var message = JSON.parse(event.data);
    if (message.type === "hot_patch") {
      window.dispatchEvent(new CustomEvent("hotserve:patch", { detail: message.template }));
    }
  };
  socket.onclose = function () {
    setTimeout(function () { location.reload(); }, 1000);
  };
})();
</script>"""

class HostPageRenderer:
    """Renders the dev index.html with the reload client injected"""

    def __init__(self, config: ServeConfig):
        self.config = config
        self.env = self._setup_environment()

    def _setup_environment(self) -> Environment:
        """Setup Jinja2 environment for the host page"""
        if self.config.page_template:
            template_path = self.config.project_path / self.config.page_template
            loader = FileSystemLoader(str(template_path.parent))
        else:
            loader = BaseLoader()
        return Environment(
            loader=loader,
            autoescape=select_autoescape(['html', 'xml'], default_for_string=False)
        )

    def render(self) -> str:
        """Render the host page as a string"""
        if self.config.page_template:
            template = self.env.get_template(Path(self.config.page_template).name)
        else:
            template = self.env.from_string(DEFAULT_PAGE)
        script = self.env.from_string(RELOAD_SCRIPT).render(ws_path=WS_PATH)
        return template.render(title=self.config.page_title, reload_script=Markup(script))

    def regenerate(self, out_dir: Optional[Path] = None) -> Path:
        """Write index.html into the output directory"""
        out_dir = Path(out_dir or self.config.out_path)
        out_dir.mkdir(parents=True, exist_ok=True)
        index_path = out_dir / "index.html"
        index_path.write_text(self.render(), encoding='utf-8')
        return index_path
