"""Tests for the command line surface."""

import pytest

from blockmind import cli
from blockmind.environment.simulated import SimulatedDriver


def test_parse_args_defaults():
    args = cli.parse_args([])
    assert args.roster is None
    assert args.agent == []
    assert args.driver == cli.DEFAULT_DRIVER
    assert args.store is None


def test_load_driver_imports_factory():
    assert isinstance(cli.load_driver(cli.DEFAULT_DRIVER), SimulatedDriver)
    with pytest.raises(ValueError):
        cli.load_driver("blockmind.environment.simulated")


def test_identities_from_agents_and_default():
    args = cli.parse_args(
        ["--agent", "AI_Miner:curiosity=0.95", "--agent", "AI_Builder", "--port", "25570"]
    )
    identities = cli.resolve_identities(args)
    assert [identity.name for identity in identities] == ["AI_Miner", "AI_Builder"]
    assert all(identity.port == 25570 for identity in identities)

    defaults = cli.resolve_identities(cli.parse_args([]))
    assert [identity.name for identity in defaults] == ["AI_Explorer", "AI_Friend"]


def test_duplicate_names_are_rejected():
    args = cli.parse_args(["--agent", "AI_Miner", "--agent", "AI_Miner"])
    with pytest.raises(ValueError):
        cli.resolve_identities(args)


def test_main_reports_bad_driver(capsys):
    assert cli.main(["--store", "memory", "--driver", "no_such_module:factory"]) == 2
    assert "Invalid configuration" in capsys.readouterr().out


def test_main_exits_when_oracle_is_down(monkeypatch, capsys):
    async def unavailable(self):
        return False

    monkeypatch.setattr("blockmind.policy.OracleClient.check_available", unavailable)

    assert cli.main(["--store", "memory", "--agent", "AI_Solo"]) == 1
    assert "policy oracle is not reachable" in capsys.readouterr().out
