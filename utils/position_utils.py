"""
Position classification for free-text position labels.
"""

from typing import Optional, Union

from models.player import PositionGroup
from .text_utils import TextUtils

# Checked in order; the first group with a matching keyword wins.
POSITION_KEYWORDS = (
    (PositionGroup.GOALKEEPER, ('goleiro', 'goalkeeper', 'keeper', 'gol', 'gk')),
    (PositionGroup.DEFENDER, ('zagueiro', 'zag', 'defensor', 'defender', 'def', 'lateral')),
    (PositionGroup.MIDFIELDER, ('meia', 'meio', 'mei', 'volante', 'vol', 'midfield')),
    (PositionGroup.FORWARD, ('atacante', 'ata', 'ponta', 'pont', 'centroavante',
                             'forward', 'striker', 'winger')),
)


class PositionUtils:
    """Maps position labels onto the closed set of position groups."""

    @staticmethod
    def classify(label: Optional[str]) -> PositionGroup:
        """Classify a free-text position label ('Zagueiro', 'Meia', 'ATA') into a group."""
        normalized = TextUtils.normalize_label(label or "")
        if not normalized:
            return PositionGroup.OTHER

        for group, keywords in POSITION_KEYWORDS:
            if any(keyword in normalized for keyword in keywords):
                return group

        return PositionGroup.OTHER

    @staticmethod
    def to_group(value: Union[str, PositionGroup, None]) -> PositionGroup:
        """Read a stored group value, classifying legacy free text if needed."""
        if isinstance(value, PositionGroup):
            return value
        try:
            return PositionGroup(value)
        except ValueError:
            return PositionUtils.classify(value)
