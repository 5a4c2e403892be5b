import pytest

from sigtree.errors import ResetChainIntegrityError
from sigtree.merkle.resets import check_reset_chain
from sigtree.types import ChainTails
from sigtree.util import sha512

UID = "a" * 30 + "19"
ELDEST = "0120" + "44" * 32 + "0a"


def tails_for(chain):
    leaf = [2, [3, "11" * 32, "22" * 32], None, ELDEST]
    if chain:
        leaf.append([len(chain), sha512(chain[-1])])
    return ChainTails.from_json(leaf)


@pytest.fixture
def resets(universe):
    universe.add_reset(UID, 3, ELDEST)
    universe.add_reset(UID, 5, ELDEST)
    return universe.reset_chains[UID]


def test_no_resets():
    assert check_reset_chain(None, tails_for([]), UID) is None


def test_valid_chain(resets):
    links = check_reset_chain(resets, tails_for(resets), UID)
    assert [l.reset_seqno for l in links] == [1, 2]
    assert links[0].prev_reset_hash is None
    assert links[-1].prev_public_seqno == 5


def test_missing_chain(resets):
    with pytest.raises(ResetChainIntegrityError):
        check_reset_chain(None, tails_for(resets), UID)


def test_wrong_length(resets):
    with pytest.raises(ResetChainIntegrityError):
        check_reset_chain(resets[1:], tails_for(resets), UID)


def test_tampered_link(resets):
    tampered = [resets[0].replace('"public_seqno":3', '"public_seqno":4'), resets[1]]
    with pytest.raises(ResetChainIntegrityError):
        check_reset_chain(tampered, tails_for(resets), UID)


def test_delete_only_at_head(universe):
    universe.add_reset(UID, 2, ELDEST, reset_type="delete")
    universe.add_reset(UID, 2, ELDEST)
    chain = universe.reset_chains[UID]
    with pytest.raises(ResetChainIntegrityError):
        check_reset_chain(chain, tails_for(chain), UID)


def test_delete_at_head_is_fine(universe):
    universe.add_reset(UID, 2, ELDEST)
    universe.add_reset(UID, 4, ELDEST, reset_type="delete")
    chain = universe.reset_chains[UID]
    links = check_reset_chain(chain, tails_for(chain), UID)
    assert links[-1].type == "delete"
