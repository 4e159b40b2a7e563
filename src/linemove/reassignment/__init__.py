"""Line Reassignment Module.

This module moves a telephone line, its device, and the owner's voicemail
and directory phone attributes from one user to another:
- Validate every record up front, then mutate phase by phase
- Evict the outgoing and incoming owners' soft devices (hardphones stay)
- Re-point the line and device, bind the new owner
- Resolve voicemail extension conflicts by parking the previous holder
- Provision or update the new owner's voicemail account

Architecture: Clean Architecture with Hexagonal (Ports & Adapters)
"""

from .config import ReassignmentConfig
from .domain import ReassignmentRequest, ReassignmentResult
from .use_cases import ReassignLineUseCase

__all__ = [
    "ReassignmentConfig",
    "ReassignmentRequest",
    "ReassignmentResult",
    "ReassignLineUseCase",
]
