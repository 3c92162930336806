import json
import logging
import os
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from auth import hash_password


BASE_DIR = Path(__file__).resolve().parent
CONFIG_FILE = BASE_DIR / "server_config.json"
CONFIG_ENV_VAR = "CAPTURE_GALLERY_CONFIG"

DEFAULT_CONFIG = {
    "site_name": "Capture Server",
    "web_username": "",
    "web_password_hash": "",
    "capture_dir": "",
    "capture_base_url": "",
    "thumbnail_width": 320,
    "thumbnail_height": 240,
    "session_secret": "",
    "log_file": "capture_gallery.log",
    "host": "127.0.0.1",
    "port": 5000,
}

REQUIRED_KEYS = ("web_username", "web_password_hash", "capture_dir")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class GalleryConfig:
    web_username: str
    web_password_hash: str
    capture_dir: str
    capture_base_url: str = ""
    site_name: str = "Capture Server"
    thumbnail_width: int = 320
    thumbnail_height: int = 240
    session_secret: str = ""
    log_file: str = "capture_gallery.log"
    host: str = "127.0.0.1"
    port: int = 5000

    @property
    def secret_key(self) -> str:
        if self.session_secret:
            return self.session_secret
        # fallback: derive from the password hash (rotates with the password)
        return self.web_password_hash + "_flask_secret"


def default_config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return CONFIG_FILE


def read_config_data(config_path: Path) -> dict:
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a JSON object")
    return data


def load_config(config_path=None) -> Optional[GalleryConfig]:
    """
    Load the server configuration.

    Returns None when the file does not exist yet (setup mode).
    Raises ConfigError when it exists but is unusable.
    """
    config_path = Path(config_path) if config_path else default_config_path()
    if not config_path.exists():
        return None

    data = read_config_data(config_path)
    for key, value in DEFAULT_CONFIG.items():
        data.setdefault(key, value)

    missing = [key for key in REQUIRED_KEYS if not data.get(key)]
    if missing:
        raise ConfigError(f"Missing required config key(s) in {config_path}: {', '.join(missing)}")

    try:
        return GalleryConfig(
            web_username=str(data["web_username"]),
            web_password_hash=str(data["web_password_hash"]),
            capture_dir=str(data["capture_dir"]),
            capture_base_url=str(data["capture_base_url"] or ""),
            site_name=str(data["site_name"]),
            thumbnail_width=int(data["thumbnail_width"]),
            thumbnail_height=int(data["thumbnail_height"]),
            session_secret=str(data["session_secret"] or ""),
            log_file=str(data["log_file"]),
            host=str(data["host"]),
            port=int(data["port"]),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in config file {config_path}: {e}") from e


def write_config(config_path: Path, data: dict) -> None:
    with Path(config_path).open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=4)


def build_config_document(form) -> dict:
    """
    Turn the first-run setup form into the config data to save.

    Raises ConfigError with a user-facing message on the first missing field.
    The last check wins, so the username message is reported first.
    """
    error = None
    if not form.get("capture_dir"):
        error = "Please specify the path to the capture directory"
    if not form.get("password"):
        error = "Please specify a password"
    if not form.get("username"):
        error = "Please specify a username"
    if error:
        raise ConfigError(error)

    data = {
        "web_username": form["username"],
        "web_password_hash": hash_password(form["password"]),
        "capture_dir": form["capture_dir"],
        "capture_base_url": form.get("capture_base_url", "").rstrip("/"),
    }
    if form.get("site_name"):
        data["site_name"] = form["site_name"]
    return data


def setup_logging(log_file: str) -> None:
    logger = logging.getLogger()
    logger.setLevel(logging.INFO)

    for h in list(logger.handlers):
        logger.removeHandler(h)

    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    if log_file:
        fh = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        fh.setFormatter(formatter)
        logger.addHandler(fh)
