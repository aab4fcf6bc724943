import json
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, fields, asdict
import yaml

YAML_SUFFIXES = {'.yaml', '.yml'}

@dataclass
class ServeConfig:
    project_dir: str = "."
    out_dir: str = "dist"
    watch_paths: List[str] = field(default_factory=lambda: ["src"])
    template_extensions: List[str] = field(default_factory=lambda: [".j2"])
    hot_reload: bool = True
    reload_html: bool = False
    index_on_404: bool = True
    hub_capacity: int = 100
    debounce_resolution: float = 1.0  # seconds
    settle_delay: float = 0.1  # seconds
    build_command: List[str] = field(default_factory=list)
    page_title: str = "hotserve"
    page_template: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8080
    open_browser: bool = False
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @property
    def project_path(self) -> Path:
        return Path(self.project_dir).resolve()

    @property
    def out_path(self) -> Path:
        return self.project_path / self.out_dir

    @property
    def watch_roots(self) -> List[Path]:
        return [self.project_path / sub_path for sub_path in self.watch_paths]

class ConfigManager:
    def __init__(self, config_path: str = "hotserve.json"):
        self.config_path = Path(config_path)
        self.config = self._load_config()

    def _load_config(self) -> ServeConfig:
        """Load configuration from file or create default"""
        if self.config_path.exists():
            with open(self.config_path) as f:
                if self.config_path.suffix in YAML_SUFFIXES:
                    config_dict = yaml.safe_load(f) or {}
                else:
                    config_dict = json.load(f)
            known = {item.name for item in fields(ServeConfig)}
            unknown = set(config_dict) - known
            if unknown:
                raise KeyError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
            return ServeConfig(**config_dict)
        return ServeConfig()

    def save_config(self):
        """Save current configuration to file"""
        config_dict = asdict(self.config)
        with open(self.config_path, 'w') as f:
            if self.config_path.suffix in YAML_SUFFIXES:
                yaml.safe_dump(config_dict, f, sort_keys=False)
            else:
                json.dump(config_dict, f, indent=2)

    def get(self, key: str) -> Any:
        """Get configuration value"""
        return getattr(self.config, key)

    def update(self, key: str, value: Any):
        """Update configuration value"""
        if key in {item.name for item in fields(ServeConfig)}:
            setattr(self.config, key, value)
            self.save_config()
        else:
            raise KeyError(f"Unknown configuration key: {key}")

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self.config)
