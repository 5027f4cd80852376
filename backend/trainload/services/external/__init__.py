"""
External Services - Integration with wearable data platforms.

Services:
- TerraClient: Terra REST API (activity fetches, connect widget)
"""
from trainload.services.external.terra import TerraAPIError, TerraClient, TerraConfigurationError

__all__ = [
    "TerraClient",
    "TerraAPIError",
    "TerraConfigurationError",
]
