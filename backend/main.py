import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import load_config
from .services.engine import FlowEngine
from .services.flow_executor import execute_flow
from .services.flow_logging import configure_logging


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="nodeflow", description="Run node-graph flows")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Execute a flow JSON file")
    run.add_argument("flow", type=Path, help="Path to a {nodes, edges} JSON file")
    run.add_argument("--input", default=None, help="Initial input as a JSON object")
    run.add_argument("--flow-id", default=None)

    sub.add_parser("plugins", help="List registered node types")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, engine: FlowEngine) -> int:
    graph = json.loads(args.flow.read_text())
    initial_input = json.loads(args.input) if args.input else None
    result = await execute_flow(
        graph,
        engine,
        flow_id=args.flow_id or args.flow.stem,
        initial_input=initial_input,
    )
    await engine.event_bus.drain()

    for entry in result.entries:
        print(entry.model_dump_json())
    if result.status != "completed":
        print(f"Flow failed: {result.error}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    config = load_config()
    configure_logging(config.logging.level)

    engine = FlowEngine.create(config)
    try:
        if args.command == "plugins":
            for metadata in (engine.plugin_registry.get_metadata(t) for t in engine.plugin_registry.get_all_types()):
                print(f"{metadata.type:<14} {metadata.category:<10} {metadata.name}")
            return 0
        return asyncio.run(_run(args, engine))
    finally:
        engine.shutdown()


if __name__ == "__main__":
    sys.exit(main())
