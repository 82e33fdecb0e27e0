"""
rancher-upgrader - rolling Rancher stack upgrades driven by rancher-compose
"""

__version__ = "0.3.0"

from .core import RancherUpgrader, UpgraderError

__all__ = ["RancherUpgrader", "UpgraderError"]
