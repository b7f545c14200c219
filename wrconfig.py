import logging
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

API_BASE = "https://www.speedrun.com/api/v1"
USER_AGENT = "wr-live-readme-bot/2.1"

HOUR = 3600
DAY = 24 * HOUR


def debug_from_env(environ=None):
    value = (environ if environ is not None else os.environ).get("DEBUG")
    if value is None:
        return True
    return value.strip().lower() not in ("0", "false", "no")


@dataclass
class Config:
    data_dir: Path = field(default_factory=lambda: Path("data"))
    state_file: str = "state.json"
    wrs_file: str = "wrs.json"

    retention: int = DAY
    recent_window: int = HOUR
    overlap: int = DAY

    page_size: int = 200
    history_depth: int = 200

    polite_every: int = 40
    polite_delay: float = 0.002
    detail_delay: float = 0.002
    candidate_delay: float = 0.003

    display_tz: str = "America/New_York"
    subcat_width: int = 20
    debug: bool = True

    api_base: str = API_BASE
    user_agent: str = USER_AGENT
    http_attempts: int = 6
    http_backoff: float = 0.2
    connect_timeout: float = 20
    read_timeout: float = 60

    @classmethod
    def from_env(cls, environ=None):
        environ = environ if environ is not None else os.environ
        config = cls(debug=debug_from_env(environ))
        if environ.get("WR_DATA_DIR"):
            config.data_dir = Path(environ["WR_DATA_DIR"])
        return config

    @property
    def state_path(self) -> Path:
        return Path(self.data_dir) / self.state_file

    @property
    def wrs_path(self) -> Path:
        return Path(self.data_dir) / self.wrs_file


def setup_logging(config: Config) -> logging.Logger:
    """Send log records to stderr, stamped in UTC; silent unless debugging."""
    root = logging.getLogger()
    level = logging.DEBUG if config.debug else logging.WARNING
    root.setLevel(level)

    if not any(getattr(h, "_wr_handler", False) for h in root.handlers):
        formatter = logging.Formatter(
            "%(asctime)sZ [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        formatter.converter = time.gmtime
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        handler._wr_handler = True
        root.addHandler(handler)

    # requests/urllib3 chatter drowns out the scan log at debug level
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return root
