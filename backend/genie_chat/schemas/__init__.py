from genie_chat.schemas.health import HealthResponse, ServiceStatus
from genie_chat.schemas.relay import RelayEnvelope, RelayLiveness, RelayRequest

__all__ = [
    "HealthResponse",
    "RelayEnvelope",
    "RelayLiveness",
    "RelayRequest",
    "ServiceStatus",
]
