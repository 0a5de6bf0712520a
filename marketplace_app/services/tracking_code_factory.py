"""
Factory for creating tracking code generation strategies.
"""

from enum import Enum

from marketplace_app.services.tracking_code_strategies import (
    TrackingCodeStrategy,
    PrefixedTrackingCodeStrategy,
    Base62TrackingCodeStrategy,
)
from marketplace_app.config import settings


class TrackingCodeStrategyType(Enum):
    """Available tracking code generation strategies"""
    PREFIXED = "prefixed"
    BASE62 = "base62"


class TrackingCodeFactory:
    """Factory for tracking code strategies with instance caching"""

    _instances = {}

    @classmethod
    def create_strategy(
        cls,
        strategy_type: TrackingCodeStrategyType = None
    ) -> TrackingCodeStrategy:
        """
        Create or return cached tracking code strategy.

        Args:
            strategy_type: Type of strategy to create.
                          If None, uses value from settings.

        Raises:
            ValueError: If strategy_type is unknown
        """
        if strategy_type is None:
            strategy_type = TrackingCodeStrategyType(settings.tracking_code_strategy)

        if strategy_type in cls._instances:
            return cls._instances[strategy_type]

        if strategy_type == TrackingCodeStrategyType.PREFIXED:
            instance = PrefixedTrackingCodeStrategy()
        elif strategy_type == TrackingCodeStrategyType.BASE62:
            instance = Base62TrackingCodeStrategy(
                salt=settings.tracking_code_salt,
                max_length=settings.tracking_code_max_length
            )
        else:
            raise ValueError(f"Unknown strategy type: {strategy_type}")

        cls._instances[strategy_type] = instance
        return instance
