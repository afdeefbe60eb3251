"""
Text processing utilities for the pelada system.
"""

import re
import unicodedata


class TextUtils:
    """Utilities for text processing and normalization."""

    @staticmethod
    def strip_accents(text: str) -> str:
        """Remove diacritics ('Médio' -> 'Medio')."""
        decomposed = unicodedata.normalize('NFKD', text)
        return ''.join(c for c in decomposed if not unicodedata.combining(c))

    @staticmethod
    def normalize_label(label: str) -> str:
        """Normalize a free-text label for keyword matching."""
        if not label:
            return ""

        # Lowercase, trim and collapse inner whitespace
        normalized = re.sub(r'\s+', ' ', label.lower().strip())

        return TextUtils.strip_accents(normalized)

    @staticmethod
    def sort_name(name: str) -> str:
        """Key used to break ranking ties alphabetically."""
        return TextUtils.normalize_label(name or "")
