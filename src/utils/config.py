import os
from dataclasses import dataclass
from typing import Optional


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings, read from the environment.

      - SHOP_DB_PATH: sqlite database file
      - SHOP_SESSION_PATH: where the logged-in profile is kept between runs
      - SHOP_SEED_DEMO: load demo shops, stock and sales into a fresh database
      - SHOP_LOG_FILE: optional log file, the TUI owns the terminal
      - DEBUG: debug log level
    """

    db_path: str = "data/db.sqlite"
    session_path: str = "data/session.json"
    seed_demo: bool = True
    log_file: Optional[str] = None
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=os.getenv("SHOP_DB_PATH") or cls.db_path,
            session_path=os.getenv("SHOP_SESSION_PATH") or cls.session_path,
            seed_demo=_flag(os.getenv("SHOP_SEED_DEMO"), cls.seed_demo),
            log_file=os.getenv("SHOP_LOG_FILE") or None,
            debug=bool(os.getenv("DEBUG")),
        )


settings = Settings.from_env()
