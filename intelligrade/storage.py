"""
storage.py
======================

Locally persisted preferences, stored as a small JSON key-value file.

Keys:

{
  "intelligrade.theme": "light",
  "intelligrade.studyPlans": {
      "ap-biology": {
          "subject": "AP Biology",
          "schedule": "## Week 1 ...",
          "createdAt": "2026-01-01T00:00:00Z"
      }
  }
}

Everything here is best-effort: a missing, unreadable or unwritable file
means "no saved preferences" and the app carries on with defaults.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

logger = logging.getLogger(__name__)

Theme = Literal["light", "dark"]
THEMES = ("light", "dark")
DEFAULT_THEME: Theme = "light"

THEME_KEY = "intelligrade.theme"
STUDY_PLANS_KEY = "intelligrade.studyPlans"


def normalize_subject_id(subject: str) -> str:
    """'AP Calculus AB' -> 'ap-calculus-ab'"""
    return re.sub(r"[^a-z0-9]+", "-", subject.strip().lower()).strip("-")


class PreferenceStore:
    """
    JSON-file key-value store for theme and study plans.

    load() once at startup, every setter saves immediately.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.data: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------
    def load(self) -> None:
        self.data = {}
        if not self.path.exists():
            return
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.debug("Ignoring unreadable preferences %s: %s", self.path, e)
            return
        if isinstance(data, dict):
            self.data = data

    def save(self) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                json.dump(self.data, f, ensure_ascii=False, indent=2)
        except (OSError, TypeError) as e:
            logger.debug("Could not save preferences %s: %s", self.path, e)
            return False
        return True

    # ------------------------------------------------------------------
    # Theme
    # ------------------------------------------------------------------
    def get_theme(self) -> Theme:
        theme = self.data.get(THEME_KEY)
        return theme if theme in THEMES else DEFAULT_THEME

    def set_theme(self, theme: Theme) -> None:
        if theme not in THEMES:
            raise ValueError(f"unknown theme: {theme}")
        self.data[THEME_KEY] = theme
        self.save()

    # ------------------------------------------------------------------
    # Study plans
    # ------------------------------------------------------------------
    def _plans(self) -> Dict[str, Any]:
        plans = self.data.get(STUDY_PLANS_KEY)
        if not isinstance(plans, dict):
            plans = {}
            self.data[STUDY_PLANS_KEY] = plans
        return plans

    def save_plan(self, subject: str, schedule: str, replace: bool = False) -> Dict[str, str]:
        """
        Store a plan for subject. An existing plan is kept and returned
        unchanged unless replace is True.
        """
        existing = self.get_plan(subject)
        if existing is not None and not replace:
            logger.info("Keeping existing study plan for %s", subject)
            return existing
        entry = {
            "subject": subject,
            "schedule": schedule,
            "createdAt": _now_iso(),
        }
        self._plans()[normalize_subject_id(subject)] = entry
        self.save()
        return entry

    def get_plan(self, subject: str) -> Optional[Dict[str, str]]:
        entry = self._plans().get(normalize_subject_id(subject))
        if isinstance(entry, dict) and isinstance(entry.get("schedule"), str):
            return entry
        return None

    def list_plans(self) -> List[Dict[str, str]]:
        """Saved plans, newest first."""
        plans = [
            p for p in self._plans().values()
            if isinstance(p, dict) and isinstance(p.get("schedule"), str)
        ]
        return sorted(plans, key=lambda p: str(p.get("createdAt", "")), reverse=True)

    def delete_plan(self, subject: str) -> bool:
        removed = self._plans().pop(normalize_subject_id(subject), None)
        if removed is None:
            return False
        self.save()
        return True


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
