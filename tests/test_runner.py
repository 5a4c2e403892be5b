import json

import pytest
from prometheus_client import REGISTRY

from sigtree.errors import TreeIntegrityError
from sigtree.keys.family import UserKeys
from sigtree.runner import Runner, RunOptions, verify_user
from sigtree.types import UserSigChain

pytestmark = pytest.mark.asyncio


def sample(mode, outcome):
    return REGISTRY.get_sample_value("sigtree_verifications_total", {"mode": mode, "outcome": outcome}) or 0


async def test_verify_user_keys(universe, api, anchors, alice):
    user = await verify_user("alice", config=universe.config, api=api, anchors=anchors)
    assert isinstance(user, UserKeys)
    assert {d.keys.sig for d in user.devices} == {alice.d1.kid, alice.d2.kid}
    assert user.puk.generation == 1


async def test_verify_user_tree_only(universe, api, anchors, alice):
    chain = await verify_user(alice.uid, tree_only=True, config=universe.config, api=api, anchors=anchors)
    assert isinstance(chain, UserSigChain)
    assert chain.uid == alice.uid


async def test_verify_user_raises(universe, api, anchors, alice):
    anchors.override = "00" * 32
    with pytest.raises(TreeIntegrityError):
        await verify_user("alice", config=universe.config, api=api, anchors=anchors)


async def test_runner_writes_json(universe, api, anchors, alice, tmp_path):
    out = tmp_path / "alice.json"
    before = sample("tree", "ok")
    runner = Runner(RunOptions(file=str(out), tree=True, quiet=True), "alice", universe.config, api, anchors)
    assert await runner.run()

    data = json.loads(out.read_text())
    assert data["uid"] == alice.uid
    assert data["maxes"] == {"sig": 4, "merkle": 4, "stellar": 2}
    assert len(data["links"]) == 4
    assert sample("tree", "ok") == before + 1


async def test_runner_keys_mode(universe, api, anchors, alice, tmp_path):
    out = tmp_path / "keys.json"
    runner = Runner(RunOptions(file=str(out)), "alice", universe.config, api, anchors)
    assert await runner.run()
    data = json.loads(out.read_text())
    assert data["eldest"] == alice.d1.kid
    assert len(data["devices"]) == 2


async def test_runner_reports_failure(universe, api, anchors, alice, tmp_path):
    anchors.override = "00" * 32
    out = tmp_path / "never.json"
    before = sample("keys", "error")
    runner = Runner(RunOptions(file=str(out)), "alice", universe.config, api, anchors)
    assert not await runner.run()
    assert not out.exists()
    assert sample("keys", "error") == before + 1


async def test_runner_keys_mode_counts_stale_chain(universe, api, anchors, alice, tmp_path):
    out = tmp_path / "keys.json"
    before = REGISTRY.get_sample_value("sigtree_stale_chains_total") or 0
    runner = Runner(RunOptions(file=str(out), quiet=True), "alice", universe.config, api, anchors)
    assert await runner.run()
    assert REGISTRY.get_sample_value("sigtree_stale_chains_total") == before + 1
    data = json.loads(out.read_text())
    assert data["maxes"] == {"sig": 4, "merkle": 4, "stellar": 2}


async def test_verify_user_keys_carry_maxes(universe, api, anchors, alice):
    universe.anchor(16)
    user = await verify_user("alice", config=universe.config, api=api, anchors=anchors)
    assert user.maxes.is_fresh()
