"""Mission catalog."""

from seek.missions.catalog import MissionCatalog

__all__ = ["MissionCatalog"]
