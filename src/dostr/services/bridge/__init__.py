"""Bridge orchestrator service.

See Also:
    [Bridge][dostr.services.bridge.service.Bridge]: The service class.
    [BridgeConfig][dostr.services.bridge.configs.BridgeConfig]: Service configuration.
"""

from .configs import BridgeConfig, ProfileConfig
from .service import Bridge


__all__ = ["Bridge", "BridgeConfig", "ProfileConfig"]
