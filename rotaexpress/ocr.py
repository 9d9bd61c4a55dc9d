"""
Parcel label reading for Rota Express.

``ImageToText.extract`` sends a photo of a shipping label to Gemini and
asks for the delivery address only. The answer is collapsed into a
single line. When the model finds no address it is told to reply with
the ``NOT_FOUND`` sentinel, which is mapped to ``None``.
"""

from __future__ import annotations

import base64
import logging
from typing import Optional

from rotaexpress.gemini import GeminiClient
from rotaexpress.geocode import NO_MATCH_SENTINEL

logger = logging.getLogger(__name__)

EXTRACT_PROMPT = (
    "Extraia o endereço desta imagem. Retorne APENAS o texto do endereço. "
    "Se não houver endereço legível, responda apenas " + NO_MATCH_SENTINEL + "."
)


def _mime_type(image_bytes: bytes) -> str:
    if image_bytes.startswith(b"\x89PNG"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def normalise_extracted_text(text: Optional[str]) -> Optional[str]:
    """Collapse a model answer to one line, or ``None`` when it holds no address."""
    if not text:
        return None
    line = " ".join(part.strip() for part in text.splitlines() if part.strip())
    line = line.strip().strip('"').strip()
    if not line or NO_MATCH_SENTINEL in line.upper():
        return None
    return line


class ImageToText:
    def __init__(self, client: GeminiClient, model: str = "gemini-3-flash-preview") -> None:
        self.client = client
        self.model = model

    def extract(self, image_bytes: bytes) -> Optional[str]:
        """Read the delivery address printed in ``image_bytes``.

        Returns:
            A single-line address, or ``None`` when nothing address-like
            was found (including an empty image).

        Raises:
            ResolutionFailure: If the model could not be called.
        """
        if not image_bytes:
            return None
        parts = [
            {
                "inlineData": {
                    "mimeType": _mime_type(image_bytes),
                    "data": base64.b64encode(image_bytes).decode("ascii"),
                }
            },
            {"text": EXTRACT_PROMPT},
        ]
        text = normalise_extracted_text(self.client.generate(self.model, parts))
        if text is None:
            logger.info("No address found on captured label")
        else:
            logger.info("Read label address: %s", text)
        return text
