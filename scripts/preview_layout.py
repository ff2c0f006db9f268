#!/usr/bin/env python3
"""Run the force layout headlessly and print node positions as JSON."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from backend.app.config import ConfigError, load_config
from backend.app.contracts import KnowledgeGraph
from backend.app.graph import generate_ambient_graph, graph_from_payload
from backend.app.layout import initialize, settle

LOGGER = logging.getLogger(__name__)


def _build_cli() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "graph",
        nargs="?",
        type=Path,
        help="Graph JSON file; an ambient graph is generated when omitted",
    )
    parser.add_argument(
        "--profile",
        choices=("ambient", "result"),
        default=None,
        help="Force profile (default: result for files, ambient otherwise)",
    )
    parser.add_argument("--steps", type=int, default=300, help="Maximum simulation steps (default: 300)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for generation and layout")
    parser.add_argument("--config", type=Path, default=None, help="Alternative config.yaml")
    return parser


def _load_graph(path: Path) -> KnowledgeGraph:
    with path.open("r", encoding="utf-8") as handle:
        return graph_from_payload(json.load(handle))


def preview(
    graph: KnowledgeGraph,
    *,
    profile: str,
    steps: int,
    seed: Optional[int] = None,
    config_path: Optional[Path] = None,
) -> Dict[str, Any]:
    """Lay out ``graph`` and return a JSON-serializable summary."""

    layout = load_config(config_path).layout
    state = initialize(
        graph,
        layout.profile(profile),
        initial_radius=layout.initial_radius,
        center=(layout.center_x, layout.center_y),
        seed=seed,
    )
    settle(state, steps)
    positions: List[Dict[str, Any]] = [
        {"id": node_id, "x": round(x, 3), "y": round(y, 3)}
        for node_id, (x, y) in state.positions_by_id().items()
    ]
    return {
        "profile": profile,
        "steps": state.tick_count,
        "settled": state.converged,
        "alpha": round(state.alpha, 6),
        "positions": positions,
    }


def main(argv: list[str] | None = None) -> int:
    """Entry point for the layout preview utility.

    Returns:
        int: Exit status code where ``0`` indicates success.
    """
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    args = _build_cli().parse_args(argv)
    if args.steps < 0:
        print("--steps must not be negative", file=sys.stderr)
        return 2

    try:
        if args.graph is not None:
            graph = _load_graph(args.graph)
            profile = args.profile or "result"
        else:
            graph = generate_ambient_graph(seed=args.seed)
            profile = args.profile or "ambient"
    except (OSError, ValueError) as exc:
        print(f"Unable to load graph: {exc}", file=sys.stderr)
        return 1

    try:
        summary = preview(graph, profile=profile, steps=args.steps, seed=args.seed, config_path=args.config)
    except ConfigError as exc:
        print(f"Unable to load configuration: {exc}", file=sys.stderr)
        return 1
    LOGGER.info("Laid out %d nodes in %d steps", len(summary["positions"]), summary["steps"])
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
