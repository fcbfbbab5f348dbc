from .strava_source import StravaActivitySource

__all__ = ["StravaActivitySource"]
