"""
Runtime configuration for Rota Express.

Settings are read from a mapping first (normally Streamlit's
``st.secrets``, populated from ``.streamlit/secrets.toml``) and then
from environment variables of the same name. Nothing here talks to
Streamlit directly so the engine can be configured from tests and
scripts as well.

Recognised keys:

    GEMINI_API_KEY     – key for the Gemini API (``API_KEY`` also accepted).
    ROTA_GEOCODER      – "gemini" or "nominatim"; defaults to "gemini"
                         when a key is present, otherwise "nominatim".
    ROTA_DATA_DIR      – directory for the durable stop/origin files.
    ROTA_NAMESPACE     – storage namespace, one per installation.
    ROTA_HTTP_TIMEOUT  – timeout in seconds for outbound requests.
    ROTA_LOG_LEVEL     – logging level name, e.g. "INFO".
    ROTA_USER_AGENT    – user agent sent to Nominatim.
    ROTA_OCR_MODEL     – Gemini model used to read labels.
    ROTA_SEARCH_MODEL  – Gemini model used for place search.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

DEFAULT_NAMESPACE = "rota_express"
DEFAULT_OCR_MODEL = "gemini-3-flash-preview"
DEFAULT_SEARCH_MODEL = "gemini-2.5-flash"


@dataclass
class Settings:
    gemini_api_key: Optional[str] = None
    geocoder: str = "nominatim"
    data_dir: Path = Path.home() / ".rotaexpress"
    namespace: str = DEFAULT_NAMESPACE
    http_timeout: float = 30.0
    log_level: str = "INFO"
    user_agent: str = "rotaexpress_app"
    ocr_model: str = DEFAULT_OCR_MODEL
    search_model: str = DEFAULT_SEARCH_MODEL

    @property
    def has_credentials(self) -> bool:
        return bool(self.gemini_api_key)


def _lookup(key: str, secrets: Optional[Mapping[str, Any]]) -> Optional[str]:
    if secrets is not None:
        try:
            value = secrets.get(key)
        except FileNotFoundError:
            # st.secrets raises this when no secrets.toml exists
            value = None
        if value not in (None, ""):
            return str(value)
    value = os.environ.get(key)
    return value if value else None


def load_settings(secrets: Optional[Mapping[str, Any]] = None) -> Settings:
    """Build a ``Settings`` object from ``secrets`` and the environment.

    Args:
        secrets: Optional mapping consulted before the environment, such
            as ``st.secrets``.

    Returns:
        A populated ``Settings`` instance.

    Raises:
        ValueError: If ``ROTA_GEOCODER`` or ``ROTA_HTTP_TIMEOUT`` hold
            values that cannot be used.
    """
    api_key = _lookup("GEMINI_API_KEY", secrets) or _lookup("API_KEY", secrets)
    geocoder = (_lookup("ROTA_GEOCODER", secrets) or ("gemini" if api_key else "nominatim")).lower()
    if geocoder not in ("gemini", "nominatim"):
        raise ValueError(f"Unknown ROTA_GEOCODER {geocoder!r}; use 'gemini' or 'nominatim'")

    settings = Settings(gemini_api_key=api_key, geocoder=geocoder)
    data_dir = _lookup("ROTA_DATA_DIR", secrets)
    if data_dir:
        settings.data_dir = Path(data_dir).expanduser()
    settings.namespace = _lookup("ROTA_NAMESPACE", secrets) or settings.namespace
    timeout = _lookup("ROTA_HTTP_TIMEOUT", secrets)
    if timeout:
        settings.http_timeout = float(timeout)
        if settings.http_timeout <= 0:
            raise ValueError("ROTA_HTTP_TIMEOUT must be positive")
    settings.log_level = (_lookup("ROTA_LOG_LEVEL", secrets) or settings.log_level).upper()
    settings.user_agent = _lookup("ROTA_USER_AGENT", secrets) or settings.user_agent
    settings.ocr_model = _lookup("ROTA_OCR_MODEL", secrets) or settings.ocr_model
    settings.search_model = _lookup("ROTA_SEARCH_MODEL", secrets) or settings.search_model
    return settings


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging once for the app process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
