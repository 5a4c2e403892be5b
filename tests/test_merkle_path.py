import json

import pytest

from sigtree.errors import TreeIntegrityError
from sigtree.merkle.path import (
    candidate_uid,
    check_uid_against_legacy_tree,
    extract_uid,
    username_hash,
    walk_path,
    walk_path_to_leaf,
)
from sigtree.types import PathAndSigs, PathNode
from sigtree.util import sha256, sha512

from conftest import MerkleTree

UID = "a" * 30 + "19"
OTHER = "b" * 30 + "19"


def leaf_for(seqno):
    return [2, [seqno, "11" * 32, "22" * 32], None, "0120" + "33" * 32 + "0a"]


@pytest.fixture
def tree():
    return MerkleTree({UID: leaf_for(5), OTHER: leaf_for(1), "a" * 30 + "00": leaf_for(9)}, sha512)


def nodes(tree, key):
    return [PathNode.from_json(n) for n in tree.path(key)]


def test_walk_finds_leaf(tree):
    assert walk_path(nodes(tree, UID), UID, tree.root_hash, sha512) == leaf_for(5)


def test_walk_to_leaf_parses_tails(tree):
    pas = PathAndSigs.from_json({"uid": UID, "path": tree.path(UID)})
    tails = walk_path_to_leaf(pas, tree.root_hash, UID)
    assert tails.sig_tail.seqno == 5
    assert tails.sig_tail.link_hash == "11" * 32
    assert tails.eldest_kid.startswith("0120")
    assert tails.reset_tail is None


def test_corrupt_byte_is_detected(tree):
    path = tree.path(UID)
    val = path[1]["node"]["val"]
    path[1]["node"]["val"] = val.replace("11", "12", 1)
    path[1]["node"]["hash"] = ""
    with pytest.raises(TreeIntegrityError) as exc:
        walk_path([PathNode.from_json(n) for n in path], UID, tree.root_hash, sha512)
    assert exc.value.prefix == UID[:2]


def test_wrong_root_hash(tree):
    with pytest.raises(TreeIntegrityError):
        walk_path(nodes(tree, UID), UID, "00" * 64, sha512)


def test_wrong_prefix(tree):
    # a valid path, but to a different key
    with pytest.raises(TreeIntegrityError):
        walk_path(nodes(tree, OTHER), UID, tree.root_hash, sha512)


def test_missing_key_in_leaf(tree):
    missing = "a" * 30 + "11"
    with pytest.raises(TreeIntegrityError):
        walk_path(nodes(tree, missing), missing, tree.root_hash, sha512)


def test_walked_off_the_end(tree):
    with pytest.raises(TreeIntegrityError):
        walk_path(nodes(tree, UID)[:1], UID, tree.root_hash, sha512)


def test_unparseable_node():
    val = "not json"
    node = PathNode(prefix="", hash=sha512(val), val=val, type=1)
    with pytest.raises(TreeIntegrityError):
        walk_path([node], UID, sha512(val), sha512)


def test_candidate_uid_is_hash_derived():
    uid = candidate_uid("Alice")
    assert uid == sha256("alice")[:30] + "19"
    assert uid == candidate_uid("alice")


def test_extract_uid_via_hash():
    pas = PathAndSigs.from_json({"uid": candidate_uid("alice")})
    assert extract_uid("alice", pas, None) == candidate_uid("alice")


def test_extract_uid_via_legacy_tree():
    legacy_uid = "cd" * 15 + "00"
    legacy = MerkleTree({username_hash("max"): legacy_uid, username_hash("chris"): "ef" * 15 + "00"}, sha256)
    pas = PathAndSigs.from_json({"uid": legacy_uid, "uid_proof_path": legacy.path(username_hash("max"))})
    assert extract_uid("max", pas, legacy.root_hash) == legacy_uid


def test_extract_uid_rejects_lying_server():
    legacy = MerkleTree({username_hash("max"): "cd" * 15 + "00"}, sha256)
    # server claims a different uid than the legacy tree holds
    pas = PathAndSigs.from_json({"uid": "ef" * 15 + "00", "uid_proof_path": legacy.path(username_hash("max"))})
    with pytest.raises(TreeIntegrityError):
        extract_uid("max", pas, legacy.root_hash)


def test_extract_uid_without_legacy_root():
    pas = PathAndSigs.from_json({"uid": "ef" * 15 + "00"})
    with pytest.raises(TreeIntegrityError):
        extract_uid("max", pas, None)


def test_legacy_tree_uses_sha256():
    legacy = MerkleTree({username_hash("max"): "cd" * 15 + "00"}, sha256)
    path = [PathNode.from_json(n) for n in legacy.path(username_hash("max"))]
    check_uid_against_legacy_tree(username_hash("max"), "cd" * 15 + "00", path, legacy.root_hash)
    assert json.loads(path[0].val)["type"] == 1
