"""Findly — Database Models"""

from app.models.user import User
from app.models.subscription import Subscription
from app.models.tool import Tool, ToolOrigin
from app.models.tool_advertisement import (
    AdvertisementPlacement,
    AdvertisementStatus,
    ToolAdvertisement,
)

__all__ = [
    "User",
    "Subscription",
    "Tool",
    "ToolOrigin",
    "ToolAdvertisement",
    "AdvertisementStatus",
    "AdvertisementPlacement",
]
