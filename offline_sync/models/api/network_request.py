# offline_sync/models/api/network_request.py
"""
Network API request models.
"""

from pydantic import BaseModel, Field


class ConnectivityUpdateRequest(BaseModel):
    """Link-layer change reported by the host."""

    results: list[str] = Field(
        ...,
        description="Reported link types, e.g. ['wifi'] or ['none']",
        examples=[["wifi"], ["mobile"], ["none"]],
    )
