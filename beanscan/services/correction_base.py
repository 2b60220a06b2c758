"""
BeanScan Backend - Abstract Text Correction Interface
=======================================================

What:  Contract for services that clean up OCR text with a language model.
How:   Concrete providers subclass TextCorrectionService. Routes depend only
       on this interface, so tests swap in a stub.
"""

from abc import ABC, abstractmethod

from beanscan.ocr.models import CorrectionResult


class TextCorrectionService(ABC):
    """
    Contract:
        - correct_text() never raises for provider failures; it returns the
          input unchanged with used_ai=False
        - health_check() is cheap and never consumes completion quota
    """

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def correct_text(self, text: str) -> CorrectionResult:
        """
        Correct spelling, punctuation and formatting of OCR text.

        Args:
            text: Raw OCR text.

        Returns:
            CorrectionResult. used_ai is True only when a model produced
            the corrected text.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the provider is reachable and the credential is accepted."""
        ...
