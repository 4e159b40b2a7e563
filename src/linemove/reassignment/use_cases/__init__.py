"""Use cases for line reassignment.

The workflow orchestrates the conflict resolver and the extension generator;
both only talk to the backends through the lookup and action ports.
"""

from .conflict_resolver import ExtensionConflictResolver
from .extension_generator import ParkedExtensionAllocator, generate_unique_extension
from .lookups import aliases_match, expect_any, expect_at_most_one, expect_one, expect_some
from .mutation_gate import MutationGate
from .reassign_line import ReassignLineUseCase

__all__ = [
    "ReassignLineUseCase",
    "ExtensionConflictResolver",
    "ParkedExtensionAllocator",
    "generate_unique_extension",
    "MutationGate",
    "expect_one",
    "expect_at_most_one",
    "expect_some",
    "expect_any",
    "aliases_match",
]
