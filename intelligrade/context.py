"""
context.py
======================

AppContext: the one object the views receive. It bundles the config, the
preference store, the current theme and the content sources, and is built
once per browser session at startup.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import AppConfig
from .errors import ServiceError
from .gateway import AIGateway
from .model_manager import ModelManager
from .question_bank import LocalPracticeSource, LocalStudyPlanner
from .storage import PreferenceStore, Theme

logger = logging.getLogger(__name__)


class AppContext:
    def __init__(
        self,
        config: AppConfig,
        store: PreferenceStore,
        gateway: Optional[AIGateway] = None,
        offline_source: Optional[LocalPracticeSource] = None,
        offline_planner: Optional[LocalStudyPlanner] = None,
    ):
        self.config = config
        self.store = store
        self.gateway = gateway
        self.offline_source = offline_source or LocalPracticeSource(
            config.sample_bank_path, size=config.practice_set_size
        )
        self.offline_planner = offline_planner or LocalStudyPlanner()
        self.theme: Theme = store.get_theme()

    @classmethod
    def load(cls, config: Optional[AppConfig] = None) -> "AppContext":
        """Read preferences and connect to Gemini when a key is configured."""
        config = config or AppConfig.load()
        store = PreferenceStore(config.preferences_path)
        store.load()

        gateway = None
        if config.online:
            try:
                manager = ModelManager(config.gemini_api_key, config.model_name)
                gateway = AIGateway(manager, practice_set_size=config.practice_set_size)
            except ServiceError as e:
                logger.warning("Gemini unavailable, running offline: %s", e)
        else:
            logger.info("No API key configured, running offline")

        return cls(config, store, gateway)

    # ------------------------------------------------------------------
    # Content sources
    # ------------------------------------------------------------------
    @property
    def online(self) -> bool:
        return self.gateway is not None

    @property
    def practice_source(self):
        """Gateway when online, the local bank otherwise."""
        return self.gateway if self.gateway is not None else self.offline_source

    @property
    def study_plan_source(self):
        """Gateway when online, the fixed 12-week planner otherwise."""
        return self.gateway if self.gateway is not None else self.offline_planner

    # ------------------------------------------------------------------
    # Theme
    # ------------------------------------------------------------------
    def set_theme(self, theme: Theme) -> None:
        self.store.set_theme(theme)
        self.theme = theme

    def toggle_theme(self) -> Theme:
        self.set_theme("dark" if self.theme == "light" else "light")
        return self.theme
