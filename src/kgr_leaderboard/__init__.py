"""KGR leaderboard API: payment-backed, ranked score submissions."""

__version__ = "1.0.0"
