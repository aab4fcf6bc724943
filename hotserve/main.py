import logging
import os
import uvicorn
from fastapi import FastAPI

from hotserve.core.config_manager import ConfigManager, ServeConfig
from hotserve.interface.ui_manager import UIManager
from hotserve.preview.live_server import LiveServer

CONFIG_ENV = "HOTSERVE_CONFIG"

def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

def create_app(config: ServeConfig) -> FastAPI:
    """Build the dev server application for a configuration"""
    live_server = LiveServer(config)
    return UIManager(live_server).app

def run(config_path: str = None):
    """Serve the project described by the config file until interrupted"""
    config = ConfigManager(config_path or os.environ.get(CONFIG_ENV, "hotserve.json")).config
    configure_logging(config.log_level)
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower()
    )

if __name__ == "__main__":
    run()
