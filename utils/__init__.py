"""
Utility functions package for the pelada system.
"""

from .text_utils import TextUtils
from .position_utils import PositionUtils
from .math_utils import MathUtils
from .date_utils import DateUtils

__all__ = ['TextUtils', 'PositionUtils', 'MathUtils', 'DateUtils']
