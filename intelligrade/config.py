"""
config.py
=========

Central place for every setting the app uses: the Gemini API key, the model
name, practice-set size, file locations and the log level.

Shared by app.py and tools/build_sample_bank.py.

Lookup order:
1. dataclass defaults
2. config.toml at the repository root (optional)
3. environment variables (GEMINI_API_KEY / API_KEY / INTELLIGRADE_DATA_DIR)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import toml


# ------------------------------------------------------------
# Base paths
# ------------------------------------------------------------

PACKAGE_DIR = Path(__file__).resolve().parent
ROOT_DIR = PACKAGE_DIR.parent
DATA_DIR = ROOT_DIR / "data"
SAMPLE_BANK_PATH = PACKAGE_DIR / "data" / "sample_questions.jsonl"
CONFIG_TOML_PATH = ROOT_DIR / "config.toml"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# ------------------------------------------------------------
# AppConfig
# ------------------------------------------------------------

@dataclass
class AppConfig:
    """
    Application settings.

    - API key lookup
    - Gemini model name ("latest" lets ModelManager pick the newest model)
    - practice set size
    - preference / sample bank paths
    """

    # ---------- API ----------
    gemini_api_key: str = ""
    model_name: str = "gemini-2.5-flash"

    # ---------- Exams ----------
    practice_set_size: int = 15

    # ---------- Paths ----------
    data_dir: Path = DATA_DIR
    sample_bank_path: Path = SAMPLE_BANK_PATH

    # ---------- Logging ----------
    log_level: str = "INFO"

    # ============================================================
    # Init
    # ============================================================

    def __post_init__(self):
        if not self.gemini_api_key:
            self.gemini_api_key = self._load_api_key()

        env_dir = os.environ.get("INTELLIGRADE_DATA_DIR")
        if env_dir:
            self.data_dir = Path(env_dir)
        self.data_dir = Path(self.data_dir)

    @property
    def preferences_path(self) -> Path:
        return self.data_dir / "preferences.json"

    @property
    def online(self) -> bool:
        """True when an API key is available."""
        return bool(self.gemini_api_key)

    # ============================================================
    # Construction from config.toml
    # ============================================================

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AppConfig":
        """
        Build an AppConfig from config.toml. A missing or unreadable file
        falls back to the defaults.
        """
        path = Path(path) if path is not None else CONFIG_TOML_PATH
        cfg: Dict[str, Any] = {}
        if path.exists():
            try:
                cfg = toml.load(path)
            except (OSError, toml.TomlDecodeError) as e:
                logging.getLogger(__name__).warning("Ignoring unreadable %s: %s", path, e)
                cfg = {}

        kwargs: Dict[str, Any] = {}

        gemini = cfg.get("gemini")
        if isinstance(gemini, dict):
            model = gemini.get("model")
            if isinstance(model, str) and model:
                kwargs["model_name"] = model

        exam = cfg.get("exam")
        if isinstance(exam, dict):
            size = exam.get("practice_set_size")
            if isinstance(size, int) and size > 0:
                kwargs["practice_set_size"] = size

        app = cfg.get("app")
        if isinstance(app, dict):
            level = app.get("log_level")
            if isinstance(level, str) and level:
                kwargs["log_level"] = level.upper()
            data_dir = app.get("data_dir")
            if isinstance(data_dir, str) and data_dir:
                kwargs["data_dir"] = (ROOT_DIR / data_dir).resolve()

        return cls(**kwargs)

    # ============================================================
    # Internal
    # ============================================================

    def _load_api_key(self) -> str:
        """
        GEMINI_API_KEY first, then API_KEY, then a local .env file.
        An empty string means offline mode.
        """
        for name in ("GEMINI_API_KEY", "API_KEY"):
            key = os.environ.get(name)
            if key:
                return key

        env_path = ROOT_DIR / ".env"
        if env_path.exists():
            for line in env_path.read_text(encoding="utf-8").splitlines():
                for name in ("GEMINI_API_KEY", "API_KEY"):
                    if line.startswith(f"{name}="):
                        return line.split("=", 1)[1].strip()

        return ""


# ------------------------------------------------------------
# Logging
# ------------------------------------------------------------

def configure_logging(level: str = "INFO") -> None:
    """Root logger setup for app.py and the CLI tools."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
