"""Extractor contract shared by every detector."""

from abc import ABC, abstractmethod
from typing import Any

from fwaguard.schemas.analysis import Finding


class Extractor(ABC):
    """
    ``detect(evidence) → [Finding]``.

    Implementations must not touch the incident store. Raising
    ExtractorUnavailableError (or any exception) is treated by the analyzer
    as "no finding from this source".
    """

    name: str = "extractor"

    @abstractmethod
    async def detect(self, evidence: Any) -> list[Finding]:
        ...
