"""Distribution pipeline — allocation, tree export and proof lookup."""

from merkledrop.distribution.allocation import (
    Allocation,
    AllocationError,
    Distribution,
    allocate,
    load_contributors,
    registrations,
)
from merkledrop.distribution.exporter import (
    DistributionExporter,
    ProofArtifact,
    RegistryExporter,
    find_in_tree,
    load_proof,
    load_root,
    load_tree_file,
)

__all__ = [
    "Allocation",
    "AllocationError",
    "Distribution",
    "DistributionExporter",
    "ProofArtifact",
    "RegistryExporter",
    "allocate",
    "find_in_tree",
    "load_contributors",
    "load_proof",
    "load_root",
    "load_tree_file",
    "registrations",
]
