"""BetTips: sports tips and parlays behind subscription tiers."""

__version__ = "1.0.0"
