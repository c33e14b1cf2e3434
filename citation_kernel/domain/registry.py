"""
PartyRegistry -- protocol for the external driver / vehicle store.

Drivers and vehicles are owned by a collaborator outside the kernel.  When a
registry is wired into CitationService, issuance verifies that both exist
before allocating a citation number.
"""

from typing import Protocol, runtime_checkable
from uuid import UUID


@runtime_checkable
class PartyRegistry(Protocol):
    def driver_exists(self, driver_id: UUID) -> bool: ...

    def vehicle_exists(self, vehicle_id: UUID) -> bool: ...
