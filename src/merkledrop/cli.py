"""merkledrop CLI — the off-chain side of a distribution cycle.

Usage:
    python -m merkledrop.cli allocate --config data/distribution-config.json \
        --contributors data/contributors.json
    python -m merkledrop.cli build-tree --distribution data/distributions/epoch-1.json
    python -m merkledrop.cli build-registry-tree --contributors data/contributors.json
    python -m merkledrop.cli verify-proof --tree data/merkle-trees/epoch-1-merkle.json \
        --identity vitalik
    python -m merkledrop.cli epoch-calldata --tree data/merkle-trees/epoch-1-merkle.json \
        --start 1767225600
    python -m merkledrop.cli publish --tree data/merkle-trees/epoch-1-merkle.json \
        --start 1767225600
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from eth_utils import decode_hex, encode_hex

from merkledrop.config import DistributionConfig, Settings
from merkledrop.crypto.anchor import create_epoch_calldata, publish_epoch
from merkledrop.crypto.entitlement_tree import EntitlementTree
from merkledrop.distribution.allocation import (
    Distribution,
    allocate,
    load_contributors,
    registrations,
)
from merkledrop.distribution.exporter import (
    DistributionExporter,
    RegistryExporter,
    find_in_tree,
    format_units,
    load_tree_file,
)


def _settings(args: argparse.Namespace) -> Settings:
    return Settings.from_env(args.env)


def _fail(message: str) -> int:
    print(f"Failed: {message}", file=sys.stderr)
    return 1


def _load_tree(path: Path) -> dict:
    if not path.exists():
        raise ValueError(f"Tree file not found: {path}. Run build-tree first.")
    return load_tree_file(path)


def cmd_allocate(args: argparse.Namespace) -> int:
    settings = _settings(args)
    config = DistributionConfig.from_file(args.config)
    distribution = allocate(config, load_contributors(args.contributors))
    out_dir = args.out or settings.data_dir / "distributions"
    path = distribution.save(out_dir)
    summary = {
        "epochId": config.epoch_id,
        "strategy": config.strategy,
        "totalAllocated": format_units(distribution.total_allocated, config.decimals),
        "assetSymbol": config.asset_symbol,
        "stats": distribution.stats(),
        "file": str(path),
    }
    print(json.dumps(summary, indent=2))
    return 0


def cmd_build_tree(args: argparse.Namespace) -> int:
    settings = _settings(args)
    distribution = Distribution.load(args.distribution)
    config = distribution.config
    tree = EntitlementTree.build(distribution.entitlements())
    out_dir = args.out or settings.data_dir / "merkle-trees"
    exporter = DistributionExporter(
        out_dir,
        epoch_id=config.epoch_id,
        asset=config.asset,
        asset_symbol=config.asset_symbol,
        decimals=config.decimals,
    )
    paths = exporter.export(tree, write_structure=not args.no_structure)
    print(json.dumps({
        "epochId": config.epoch_id,
        "root": encode_hex(tree.root),
        "totalLeaves": len(tree),
        "depth": tree.depth,
        "totalAmount": str(distribution.total_allocated),
        "treeFile": str(paths.tree_file),
        "rootFile": str(paths.root_file),
        "proofsDir": str(paths.proofs_dir),
    }, indent=2))
    return 0


def cmd_build_registry_tree(args: argparse.Namespace) -> int:
    settings = _settings(args)
    tree = EntitlementTree.build(registrations(load_contributors(args.contributors)))
    out_dir = args.out or settings.data_dir / "registry"
    paths = RegistryExporter(out_dir).export(tree, write_structure=not args.no_structure)
    print(json.dumps({
        "root": encode_hex(tree.root),
        "totalLeaves": len(tree),
        "depth": tree.depth,
        "treeFile": str(paths.tree_file),
        "rootFile": str(paths.root_file),
        "proofsDir": str(paths.proofs_dir),
    }, indent=2))
    return 0


def cmd_verify_proof(args: argparse.Namespace) -> int:
    tree_data = _load_tree(args.tree)
    artifact = find_in_tree(tree_data, args.identity)
    if artifact is None:
        return _fail(f"{args.identity} not found in {args.tree}")
    valid = artifact.verify()
    print(json.dumps({
        "identity": artifact.identity,
        "kind": artifact.kind,
        "label": artifact.label,
        **({"score": str(artifact.score)} if artifact.score is not None
           else {"amount": str(artifact.amount)}),
        "leaf": encode_hex(artifact.leaf),
        "proof": artifact.hex_proof(),
        "root": encode_hex(artifact.root),
        "valid": valid,
    }, indent=2))
    return 0 if valid else 1


def cmd_epoch_calldata(args: argparse.Namespace) -> int:
    tree_data = _load_tree(args.tree)
    calldata = create_epoch_calldata(
        decode_hex(tree_data["root"]),
        int(tree_data["totalAmount"]),
        tree_data["asset"],
        args.start,
        args.end,
    )
    print(encode_hex(calldata))
    return 0


def cmd_publish(args: argparse.Namespace) -> int:
    settings = _settings(args)
    settings.require_chain()
    tree_data = _load_tree(args.tree)
    record = publish_epoch(
        root=decode_hex(tree_data["root"]),
        total_amount=int(tree_data["totalAmount"]),
        asset=tree_data["asset"],
        start_time=args.start,
        end_time=args.end,
        distributor_address=settings.distributor_address,
        rpc_url=settings.rpc_url,
        private_key=settings.private_key,
        chain_id=settings.chain_id,
    )
    print(json.dumps(record.__dict__, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="merkledrop",
        description="Merkle-proof entitlement distribution tooling",
    )
    parser.add_argument("--env", type=Path, default=None, help="Path to a .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    p_alloc = sub.add_parser("allocate", help="Split an epoch's pool across contributors")
    p_alloc.add_argument("--config", type=Path, required=True, help="Distribution config JSON")
    p_alloc.add_argument("--contributors", type=Path, required=True, help="Contributors JSON")
    p_alloc.add_argument("--out", type=Path, help="Output directory (default: <data>/distributions)")

    p_build = sub.add_parser("build-tree", help="Build the Merkle tree and export proofs")
    p_build.add_argument("--distribution", type=Path, required=True, help="epoch-N.json from allocate")
    p_build.add_argument("--out", type=Path, help="Output directory (default: <data>/merkle-trees)")
    p_build.add_argument("--no-structure", action="store_true", help="Skip the tree dump file")

    p_reg = sub.add_parser("build-registry-tree", help="Build the contributor registration tree")
    p_reg.add_argument("--contributors", type=Path, required=True, help="Contributors JSON")
    p_reg.add_argument("--out", type=Path, help="Output directory (default: <data>/registry)")
    p_reg.add_argument("--no-structure", action="store_true", help="Skip the tree dump file")

    p_verify = sub.add_parser("verify-proof", help="Check one proof against the tree root")
    p_verify.add_argument("--tree", type=Path, required=True,
                          help="epoch-N-merkle.json or registry-merkle.json")
    p_verify.add_argument("--identity", required=True, help="Wallet address or label")

    for name, help_text in (
        ("epoch-calldata", "Print createEpoch calldata for a tree"),
        ("publish", "Send createEpoch for a tree to the distributor"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--tree", type=Path, required=True, help="epoch-N-merkle.json")
        p.add_argument("--start", type=int, required=True, help="Claim window start (unix seconds)")
        p.add_argument("--end", type=int, default=0, help="Claim window end (0 = open)")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "allocate": cmd_allocate,
        "build-tree": cmd_build_tree,
        "build-registry-tree": cmd_build_registry_tree,
        "verify-proof": cmd_verify_proof,
        "epoch-calldata": cmd_epoch_calldata,
        "publish": cmd_publish,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (ValueError, RuntimeError) as exc:
        return _fail(str(exc))
    except KeyError as exc:
        return _fail(f"Missing field {exc} in input file")


if __name__ == "__main__":
    raise SystemExit(main())
