"""Base definitions for charge status sources - data contracts and protocols"""
from dataclasses import dataclass
from typing import Protocol


class UpstreamError(Exception):
    """Raised when the charge status service cannot deliver a reading."""


@dataclass
class ChargeStatus:
    """
    Charge status of a single outlet, as reported by the vendor.

    Attributes:
        power: Vendor formatted power string, passed through untouched.
        used_minutes: Minutes the outlet has been charging, may be zero.
    """
    power: str
    used_minutes: int = 0


class ChargeStatusSource(Protocol):
    """
    Protocol for charge status clients.

    Uses Protocol for duck typing - implementations don't need to inherit,
    just implement the methods with matching signatures.
    """

    async def query(self, outlet_id: str) -> ChargeStatus:
        """
        Fetch the current status of one outlet.

        Should raise UpstreamError on transport failures, non-success
        responses and application level failure codes.
        """
        ...
