"""Command line entry point: ``python -m blockmind``."""

from __future__ import annotations

import argparse
import asyncio
import importlib
import sys
from typing import Callable, List, Optional, Sequence

from blockmind.config import Config
from blockmind.environment.driver import EnvironmentDriver
from blockmind.errors import StartupError
from blockmind.logging_utils import log_error
from blockmind.persistence import LongTermStore, build_store
from blockmind.policy import OracleClient, PolicyGateway
from blockmind.roster import RosterLoader, default_roster, parse_agent_arg
from blockmind.runner import AgentRunner
from blockmind.schemas import AgentIdentity

DEFAULT_DRIVER = "blockmind.environment.simulated:create_driver"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blockmind", description="Run autonomous LLM-driven game agents"
    )
    parser.add_argument("--roster", help="Roster JSON file (path or name under examples/)")
    parser.add_argument(
        "--agent",
        action="append",
        default=[],
        metavar="NAME[:trait=value,...]",
        help="Add an agent, e.g. AI_Miner:curiosity=0.95,chattiness=0.1 (repeatable)",
    )
    parser.add_argument("--host", help=f"Game server host (default {Config.SERVER_HOST})")
    parser.add_argument("--port", type=int, help=f"Game server port (default {Config.SERVER_PORT})")
    parser.add_argument(
        "--store",
        choices=["sqlite", "jsonl", "memory", "postgres"],
        default=None,
        help=f"Long-term memory backend (default {Config.STORE_BACKEND})",
    )
    parser.add_argument("--store-path", help="SQLite file or JSONL directory for long-term memory")
    parser.add_argument(
        "--driver",
        default=DEFAULT_DRIVER,
        metavar="MODULE:FACTORY",
        help="Callable returning an environment driver (default: the simulated world)",
    )
    parser.add_argument("--provider", help=f"Oracle provider (default {Config.ORACLE_PROVIDER})")
    parser.add_argument("--model", help=f"Oracle model (default {Config.ORACLE_MODEL})")
    return parser.parse_args(argv)


def load_driver(target: str) -> EnvironmentDriver:
    """Import ``module:factory`` and call the factory."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"--driver must look like 'module:factory', got '{target}'")
    module = importlib.import_module(module_name)
    factory: Callable[[], EnvironmentDriver] = getattr(module, attr)
    return factory()


def resolve_identities(args: argparse.Namespace) -> List[AgentIdentity]:
    identities: List[AgentIdentity] = []
    if args.roster:
        identities.extend(
            RosterLoader().load(args.roster, host=args.host, port=args.port)
        )
    identities.extend(
        parse_agent_arg(value, host=args.host, port=args.port) for value in args.agent
    )
    if not identities:
        identities = default_roster(host=args.host, port=args.port)

    names = [identity.name for identity in identities]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate agent names: {', '.join(duplicates)}")
    return identities


def make_store_factory(args: argparse.Namespace) -> Callable[[str], LongTermStore]:
    def factory(_agent_name: str) -> LongTermStore:
        return build_store(args.store, path=args.store_path)

    return factory


def build_runner(args: argparse.Namespace) -> AgentRunner:
    Config.validate()

    gateway = PolicyGateway.from_config(OracleClient(args.provider, args.model))
    return AgentRunner(
        resolve_identities(args),
        driver=load_driver(args.driver),
        gateway=gateway,
        store_factory=make_store_factory(args),
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        runner = build_runner(args)
    except (ValueError, FileNotFoundError, ImportError, AttributeError) as exc:
        log_error(f"Invalid configuration: {exc}")
        return 2

    print(Config.display())
    print(f"Agents: {', '.join(agent.name for agent in runner.agents)}")
    try:
        asyncio.run(runner.run())
    except StartupError as exc:
        log_error(str(exc))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
