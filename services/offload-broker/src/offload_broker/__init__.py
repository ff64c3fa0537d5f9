"""
Offload-Broker: Contract-Based Computation Offloading

Part of Offload-X: Incentive-Driven Vehicular Offloading
"""

from offload_broker.broker import CycleReport, OffloadBroker
from offload_broker.catalog import Contract, ContractCatalog
from offload_broker.config import AddressPolicy, FallbackPolicy, Settings
from offload_broker.dispatcher import AssignmentDispatcher
from offload_broker.errors import (
    CatalogFetchFailed,
    MatchingFailed,
    OffloadError,
    UnknownParticipant,
)
from offload_broker.local_executor import LocalExecutor
from offload_broker.main import app
from offload_broker.matcher import (
    AssignmentEntry,
    CycleOutcome,
    MatchingResult,
    OffloadingMatcher,
)
from offload_broker.mobility import LinkModel
from offload_broker.registry import Participant, ParticipantRegistry

__all__ = [
    "app",
    "AddressPolicy",
    "AssignmentDispatcher",
    "AssignmentEntry",
    "CatalogFetchFailed",
    "Contract",
    "ContractCatalog",
    "CycleOutcome",
    "CycleReport",
    "FallbackPolicy",
    "LinkModel",
    "LocalExecutor",
    "MatchingFailed",
    "MatchingResult",
    "OffloadBroker",
    "OffloadError",
    "OffloadingMatcher",
    "Participant",
    "ParticipantRegistry",
    "Settings",
    "UnknownParticipant",
]

__version__ = "0.1.0"
