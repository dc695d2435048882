"""
model_manager.py
======================

Google Gemini client wrapper.

- configure the API key once
- resolve the model name ("latest" picks the newest model that supports
  generateContent, by version number then pro > flash)
- generate(): one-shot request, optionally constrained to a JSON schema
- stream_chat(): streaming chat turn with history and a system instruction

Every library error is logged and re-raised as ServiceError. There is no
failover and no retry: one upstream request per call.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPIError, ResourceExhausted

from .errors import ServiceError

logger = logging.getLogger(__name__)

LATEST = "latest"


class ModelManager:
    """
    Gemini model access.

    Main entry points:
    - list_models(): models that support generateContent
    - select_best_model(): newest model by name
    - generate(): one-shot text / JSON reply
    - stream_chat(): streaming reply for a chat turn
    """

    def __init__(self, api_key: str, model_name: str = "gemini-2.5-flash"):
        if not api_key:
            raise ServiceError("GEMINI_API_KEY is not set.")
        self.api_key = api_key
        self.model_name = model_name
        genai.configure(api_key=api_key)
        self._cached_models: List[str] = []
        self._resolved_model: Optional[str] = None

    # ------------------------------------------------------------
    # Model list
    # ------------------------------------------------------------
    def list_models(self) -> List[str]:
        """
        Names of models that support generateContent, e.g.
        models/gemini-2.5-flash, models/gemini-2.5-pro.
        """
        if self._cached_models:
            return self._cached_models

        try:
            response = genai.list_models()
            models = [
                m.name
                for m in response
                if "generateContent" in getattr(m, "supported_generation_methods", [])
            ]
        except GoogleAPIError as e:
            logger.warning("Could not list Gemini models: %s", e)
            return []

        self._cached_models = models
        return models

    # ------------------------------------------------------------
    # Newest model
    # ------------------------------------------------------------
    def select_best_model(self) -> Optional[str]:
        """
        Highest (major, minor, pro-over-flash) by name.
        gemini-2.5-pro > gemini-2.5-flash > gemini-2.0-pro
        """
        models = self.list_models()
        if not models:
            return None
        return max(models, key=model_score)

    def resolve_model_name(self) -> str:
        if self._resolved_model:
            return self._resolved_model

        name = self.model_name
        if name == LATEST:
            best = self.select_best_model()
            if best is None:
                raise ServiceError("No Gemini model is available.")
            name = best

        self._resolved_model = name
        logger.info("Using Gemini model %s", name)
        return name

    # ------------------------------------------------------------
    # One-shot generation
    # ------------------------------------------------------------
    def generate(self, prompt: str, response_schema: Optional[Dict[str, Any]] = None) -> str:
        """
        Send one prompt and return the reply text.

        With response_schema the reply is requested as application/json
        matching that schema.
        """
        generation_config: Dict[str, Any] = {}
        if response_schema is not None:
            generation_config["response_mime_type"] = "application/json"
            generation_config["response_schema"] = response_schema

        model_name = self.resolve_model_name()
        try:
            model = genai.GenerativeModel(model_name)
            response = model.generate_content(prompt, generation_config=generation_config or None)
            text = response.text
        except ResourceExhausted as e:
            logger.warning("Gemini quota exhausted (%s): %s", model_name, e)
            raise ServiceError("The AI service is over its quota, please try again later.") from e
        except GoogleAPIError as e:
            logger.exception("Gemini request failed (%s)", model_name)
            raise ServiceError("The AI service request failed.") from e
        except ValueError as e:
            # response.text raises ValueError when the reply was blocked or empty
            logger.warning("Gemini returned no text (%s): %s", model_name, e)
            raise ServiceError("The AI service returned an empty reply.") from e

        return (text or "").strip()

    # ------------------------------------------------------------
    # Streaming chat
    # ------------------------------------------------------------
    def stream_chat(
        self,
        history: List[Dict[str, Any]],
        message: str,
        system_instruction: Optional[str] = None,
    ) -> Iterator[str]:
        """
        Open a chat with ``history`` ([{"role": "user"|"model", "parts": [text]}])
        and send ``message`` in streaming mode.

        Establishing the stream happens here, so connection failures raise
        ServiceError immediately. Iterating the result yields text chunks.
        """
        model_name = self.resolve_model_name()
        try:
            model = genai.GenerativeModel(model_name, system_instruction=system_instruction)
            chat = model.start_chat(history=history)
            response = chat.send_message(message, stream=True)
        except GoogleAPIError as e:
            logger.exception("Could not open Gemini chat stream (%s)", model_name)
            raise ServiceError("Failed to get response from AI tutor.") from e

        return _iter_chunks(response)


def _iter_chunks(response) -> Iterator[str]:
    for chunk in response:
        text = getattr(chunk, "text", "")
        if text:
            yield text


def model_score(model_name: str) -> tuple:
    """Sort key: models/gemini-2.5-pro -> (2, 5, 1)."""
    name = model_name.rsplit("/", 1)[-1]
    try:
        version_str = name.split("-")[1]
        major, minor = version_str.split(".")[:2]
        major_i, minor_i = int(major), int(minor)
    except (IndexError, ValueError):
        major_i, minor_i = (0, 0)

    priority = 1 if "pro" in name else 0
    return (major_i, minor_i, priority)
