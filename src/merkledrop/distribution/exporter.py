"""Distribution exporter — writes the artifacts claimants and operators need.

Two kinds of tree are exported. An entitlement tree (amount leaves) for
epoch N is written as:

    epoch-N-merkle.json       full tree: root, totals, every leaf and proof
    epoch-N-root.txt          the root alone, for create_epoch
    epoch-N-proofs/<name>.json  one file per claimant (label, else identity)
    epoch-N-structure.txt     level-by-level dump, for debugging

A registration tree (identity, label, score leaves) uses the prefix
``registry`` instead of ``epoch-N`` and feeds ContributorRegistry.

All digests are 0x-prefixed hex. Amounts and scores are decimal strings
so that uint256 values survive any JSON reader. Files are written with
sorted keys, so re-exporting an unchanged tree is byte-identical apart
from ``generatedAt``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_utils import decode_hex, encode_hex

from merkledrop.crypto.entitlement_tree import EntitlementTree, LeafRecord
from merkledrop.crypto.leaf import entitlement_leaf, normalize_identity, registration_leaf
from merkledrop.crypto.merkle import verify_proof
from merkledrop.models.entitlement import Entitlement, Registration

logger = logging.getLogger(__name__)

ENTITLEMENT_KIND = "entitlement"
REGISTRATION_KIND = "registration"

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class ExportPaths:
    tree_file: Path
    root_file: Path
    proofs_dir: Path
    structure_file: Optional[Path]


@dataclass(frozen=True)
class ProofArtifact:
    """The minimal artifact a claimant (or registrant) needs.

    Exactly one of ``amount`` and ``score`` is set; a score makes it a
    registration proof, whose leaf also commits the label.
    """
    identity: str
    proof: tuple[bytes, ...]
    root: bytes
    label: Optional[str] = None
    amount: Optional[int] = None
    score: Optional[int] = None

    @property
    def kind(self) -> str:
        return REGISTRATION_KIND if self.score is not None else ENTITLEMENT_KIND

    @property
    def leaf(self) -> bytes:
        if self.score is not None:
            return registration_leaf(self.identity, self.label or "", self.score)
        return entitlement_leaf(self.identity, self.amount)

    def verify(self) -> bool:
        return verify_proof(self.leaf, self.proof, self.root)

    def hex_proof(self) -> List[str]:
        return [encode_hex(p) for p in self.proof]


def format_units(amount: int, decimals: int) -> str:
    """Render base units as a decimal string (1500000, 6 -> "1.5")."""
    value = Decimal(amount).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def proof_file_name(identity: str, label: Optional[str]) -> str:
    name = _SAFE_NAME.sub("_", label) if label else identity
    return f"{name}.json"


def _dump(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")


class _TreeExporter:
    """Shared writer; subclasses describe the header and per-leaf fields."""

    kind = ""

    def __init__(self, out_dir: Path, prefix: str) -> None:
        self._out_dir = out_dir
        self._prefix = prefix

    def export(
        self,
        tree: EntitlementTree,
        generated_at: Optional[datetime] = None,
        write_structure: bool = True,
    ) -> ExportPaths:
        generated_at = generated_at or datetime.now(timezone.utc)
        root_hex = encode_hex(tree.root)

        leaves: List[Dict[str, Any]] = []
        for entry in tree:
            fields = self._leaf_fields(entry.record)
            fields.update({
                "identity": entry.identity,
                "label": getattr(entry.record, "label", None),
                "leaf": encode_hex(entry.leaf),
                "proof": entry.proof.hex_siblings(),
            })
            leaves.append(fields)

        self._out_dir.mkdir(parents=True, exist_ok=True)
        tree_file = self._out_dir / f"{self._prefix}-merkle.json"
        _dump(tree_file, {
            **self._header(leaves),
            "kind": self.kind,
            "root": root_hex,
            "totalLeaves": len(leaves),
            "generatedAt": generated_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "leaves": leaves,
        })

        root_file = self._out_dir / f"{self._prefix}-root.txt"
        root_file.write_text(root_hex, encoding="utf-8")

        proofs_dir = self._out_dir / f"{self._prefix}-proofs"
        proofs_dir.mkdir(parents=True, exist_ok=True)
        used: set[str] = set()
        for leaf in leaves:
            name = proof_file_name(leaf["identity"], leaf["label"])
            if name in used:
                name = proof_file_name(leaf["identity"], None)
            used.add(name)
            _dump(proofs_dir / name, {**leaf, **self._proof_extras(leaf), "root": root_hex})

        structure_file = None
        if write_structure:
            structure_file = self._out_dir / f"{self._prefix}-structure.txt"
            structure_file.write_text(tree.render(), encoding="utf-8")

        logger.info("Exported %s tree %s: %d proofs, root %s -> %s",
                    self.kind, self._prefix, len(leaves), root_hex, self._out_dir)
        return ExportPaths(tree_file, root_file, proofs_dir, structure_file)

    def _leaf_fields(self, record: LeafRecord) -> Dict[str, Any]:
        raise NotImplementedError

    def _header(self, leaves: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {}

    def _proof_extras(self, leaf: Dict[str, Any]) -> Dict[str, Any]:
        return {}


class DistributionExporter(_TreeExporter):
    """Serializes an amount tree for one epoch.

    Usage:
        exporter = DistributionExporter(out_dir, epoch_id=1, asset=USDC,
                                        asset_symbol="USDC", decimals=6)
        paths = exporter.export(tree)
    """

    kind = ENTITLEMENT_KIND

    def __init__(
        self,
        out_dir: Path,
        epoch_id: int,
        asset: str,
        asset_symbol: str = "",
        decimals: int = 18,
    ) -> None:
        super().__init__(out_dir, f"epoch-{epoch_id}")
        self._epoch_id = epoch_id
        self._asset = normalize_identity(asset)
        self._asset_symbol = asset_symbol
        self._decimals = decimals

    def _leaf_fields(self, record: LeafRecord) -> Dict[str, Any]:
        if not isinstance(record, Entitlement):
            raise ValueError(
                f"Epoch trees hold Entitlement records, got {type(record).__name__}; "
                "use RegistryExporter for registration trees"
            )
        return {"amount": str(record.amount)}

    def _header(self, leaves: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "epochId": self._epoch_id,
            "totalAmount": str(sum(int(leaf["amount"]) for leaf in leaves)),
            "asset": self._asset,
            "assetSymbol": self._asset_symbol,
            "decimals": self._decimals,
        }

    def _proof_extras(self, leaf: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "amountFormatted": format_units(int(leaf["amount"]), self._decimals),
            "assetSymbol": self._asset_symbol,
        }


class RegistryExporter(_TreeExporter):
    """Serializes a registration tree (identity, label, score).

    Usage:
        tree = EntitlementTree.build(registrations(contributors))
        paths = RegistryExporter(out_dir).export(tree)
    """

    kind = REGISTRATION_KIND

    def __init__(self, out_dir: Path, prefix: str = "registry") -> None:
        super().__init__(out_dir, prefix)

    def _leaf_fields(self, record: LeafRecord) -> Dict[str, Any]:
        if not isinstance(record, Registration):
            raise ValueError(
                f"Registration trees hold Registration records, got {type(record).__name__}"
            )
        return {"score": str(record.score)}


def load_tree_file(path: Path) -> Dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def load_root(path: Path) -> bytes:
    return decode_hex(path.read_text(encoding="utf-8").strip())


def _artifact(leaf: Dict[str, Any], root: str) -> ProofArtifact:
    score = leaf.get("score")
    amount = leaf.get("amount")
    return ProofArtifact(
        identity=normalize_identity(leaf["identity"]),
        proof=tuple(decode_hex(p) for p in leaf["proof"]),
        root=decode_hex(root),
        label=leaf.get("label"),
        amount=int(amount) if amount is not None else None,
        score=int(score) if score is not None else None,
    )


def load_proof(path: Path) -> ProofArtifact:
    data = json.loads(path.read_text(encoding="utf-8"))
    return _artifact(data, data["root"])


def find_in_tree(tree_data: Dict[str, Any], key: str) -> Optional[ProofArtifact]:
    """Look up a leaf in a tree file by identity or (case-insensitive) label."""
    wanted = key.strip().lower()
    for leaf in tree_data.get("leaves", []):
        label = (leaf.get("label") or "").lower()
        if leaf["identity"].lower() == wanted or (label and label == wanted):
            return _artifact(leaf, tree_data["root"])
    return None


def rebuild_tree(tree_data: Dict[str, Any]) -> EntitlementTree:
    """Recompute a tree from an exported file's records."""
    if tree_data.get("kind") == REGISTRATION_KIND:
        return EntitlementTree.build(
            Registration(leaf["identity"], leaf["label"], int(leaf["score"]))
            for leaf in tree_data["leaves"]
        )
    return EntitlementTree.build(
        Entitlement(leaf["identity"], int(leaf["amount"]), label=leaf.get("label"))
        for leaf in tree_data["leaves"]
    )
