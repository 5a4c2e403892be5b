"""
Sigchain replay.

A sigchain accumulates links across account resets. The player crops it to
the subchain of the current eldest key, cross-checks that against the reset
chain, then replays the subchain into a KeyFamily.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..constants import HARDCODED_RESETS
from ..crypto.nacl import is_nacl_sig_kid, is_pgp_kid, verify_sig
from ..errors import ResetChainIntegrityError, SigChainIntegrityError
from ..freshness import ChainMaxes
from ..keys.family import KeyFamily, UserKeys
from ..keys.keyring import KeyRing
from ..reporter import Reporter, new_reporter
from ..types import Kid, SigId, Uid, UserSigChain
from ..util import sha256
from .links import (
    ChainLink,
    ChainLinkBundle,
    EldestBody,
    PerUserKeyBody,
    PgpUpdateBody,
    SibkeyBody,
    SubkeyBody,
)

logger = logging.getLogger(__name__)


def verify_bundle(bundle: ChainLinkBundle, keyring: KeyRing) -> Tuple[Kid, SigId]:
    """Check a bundle's signature and that it covers the hash-verified payload."""
    payload, sig_id = keyring.verify(bundle.kid, bundle.sig)
    if sha256(payload) != bundle.payload_hash:
        raise SigChainIntegrityError("verified payload didn't match expectations", seqno=bundle.inner.seqno)
    if bundle.inner.kid and bundle.inner.kid != bundle.kid:
        raise SigChainIntegrityError(
            f"link claims signer {bundle.inner.kid} but was signed by {bundle.kid}", seqno=bundle.inner.seqno
        )
    return bundle.kid, sig_id


def is_subchain_start(curr: ChainLink, prev: ChainLink) -> bool:
    """Whether curr starts a new subchain, given the link before it.

    Zero-length subchains (a new account, or a reset with no links since) are
    not detected here.
    """
    if curr.uid != prev.uid:
        raise SigChainIntegrityError("uid mismatch on two adjacent links", seqno=curr.seqno)

    # 1. the very first link
    if curr.seqno == 1:
        return True

    # 2. explicit eldest link, used by modern first links and resets
    if curr.is_eldest:
        return True

    # Cases 3 and 4 are from long before v2 sigs. Stubbed v2 links would also
    # break the eldest_kid comparison.
    if curr.sig_version > 1 or prev.sig_version > 1:
        return False

    # 3. a new eldest kid relative to the previous link
    if curr.eldest_kid and prev.eldest_kid and curr.eldest_kid != prev.eldest_kid:
        return True

    # 4. resets that reused the same eldest key
    if HARDCODED_RESETS.get(curr.uid) == curr.seqno:
        return True

    return False


def crop_to_rightmost_subchain(links: List[ChainLinkBundle], eldest: Optional[Kid]) -> List[ChainLinkBundle]:
    """Limit links to the suffix made under the current eldest key."""
    if not links:
        return []

    # The account was reset after its last link, so like a new account it has
    # no current subchain.
    if links[-1].inner.eldest_kid != eldest:
        return []

    for i in range(len(links) - 1, 0, -1):
        if is_subchain_start(links[i].inner, links[i - 1].inner):
            return links[i:]

    # No start found past the first link. Either this user never reset and the
    # whole chain is there back to seqno 1, or the chain was already cropped to
    # a single subchain, all of it under the current eldest key.
    if links[0].inner.seqno == 1 or links[0].inner.is_eldest:
        return list(links)
    if any(b.inner.eldest_kid != eldest for b in links):
        raise SigChainIntegrityError("chain ended unexpectedly before seqno 1", seqno=links[0].inner.seqno)
    return list(links)


def check_subchain_against_reset_chain(chain: UserSigChain, subchain: List[ChainLinkBundle]) -> List[ChainLinkBundle]:
    if not chain.links:
        return []

    resets = chain.resets
    if not subchain:
        if not resets:
            raise ResetChainIntegrityError("need a reset if our subchain is nil", key=chain.uid)
        return []

    first = subchain[0].inner.seqno
    last = subchain[-1].inner.seqno

    if not resets:
        if first != 1:
            raise ResetChainIntegrityError("got a reset account, but didn't have a reset chain", key=chain.uid, seqno=first)
        return subchain

    prev_seqno = resets[-1].prev_public_seqno
    if first == prev_seqno + 1:
        return subchain

    # reset on the server after this subchain was made; it is stale
    if last == prev_seqno:
        return []

    raise ResetChainIntegrityError("server's reset chain contradicts the cropped subchain", key=chain.uid, seqno=first)


class Player:
    """Replays a verified sigchain into the set of currently active keys."""

    def __init__(self, reporter: Optional[Reporter] = None):
        self.reporter = new_reporter(reporter)

    def play_eldest_link(self, uid: Uid, first: ChainLinkBundle, keyring: KeyRing, expected_eldest: Kid) -> KeyFamily:
        eldest_kid, sig_id = verify_bundle(first, keyring)
        if eldest_kid != expected_eldest:
            raise SigChainIntegrityError("got wrong eldest kid in first link", seqno=first.inner.seqno)
        family = KeyFamily(uid, eldest_kid)
        if is_nacl_sig_kid(eldest_kid):
            if not isinstance(first.inner.body, EldestBody):
                raise SigChainIntegrityError(
                    "modern keys should have an eldest link at beginning of subchain", seqno=first.inner.seqno
                )
            family.add_nacl_sibkey(eldest_kid, sig_id, first.inner.device)
        elif is_pgp_kid(eldest_kid):
            family.add_pgp_eldest_key(eldest_kid)
        else:
            raise SigChainIntegrityError(f"eldest key {eldest_kid} cannot sign", seqno=first.inner.seqno)
        return family

    def play_sibkey(self, link: ChainLink, body: SibkeyBody, sig_id: SigId, keyring: KeyRing, family: KeyFamily) -> None:
        if not body.reverse_sig:
            raise SigChainIntegrityError("sibkey without reverse sig", seqno=link.seqno)
        reverse_payload, _ = keyring.verify(body.kid, body.reverse_sig)
        expected = link.payload_with_nulled_reverse_sig("sibkey")
        if reverse_payload.decode("utf-8", errors="replace") != expected:
            raise SigChainIntegrityError("reverse payload mismatch after nulling out sig", seqno=link.seqno)

        if is_nacl_sig_kid(body.kid):
            family.add_nacl_sibkey(body.kid, sig_id, body.device)
        elif is_pgp_kid(body.kid):
            family.add_pgp_sibkey(body.kid, sig_id)
        else:
            raise SigChainIntegrityError(f"unexpected type of sibkey found {body.kid}", seqno=link.seqno)

    def play_subkey(self, link: ChainLink, body: SubkeyBody, sig_id: SigId, family: KeyFamily) -> None:
        family.add_nacl_subkey(body.kid, sig_id, body.parent_kid, body.device)

    def play_pgp_update(self, link: ChainLink, body: PgpUpdateBody, keyring: KeyRing) -> None:
        keyring.select_pgp_key(body.kid, body.full_hash)

    def play_per_user_key(self, link: ChainLink, body: PerUserKeyBody, sig_id: SigId, family: KeyFamily) -> None:
        if not body.reverse_sig:
            raise SigChainIntegrityError("per_user_key without reverse sig", seqno=link.seqno)
        # the new per-user signing key is not in the keyring; its kid is its public key
        reverse_payload, _ = verify_sig(body.puk.sig, body.reverse_sig)
        expected = link.payload_with_nulled_reverse_sig("per_user_key")
        if reverse_payload.decode("utf-8", errors="replace") != expected:
            raise SigChainIntegrityError("reverse sig mismatch in PUK after nulling out sig", seqno=link.seqno)
        family.add_per_user_key(body.puk, sig_id)

    def verify_link(self, bundle: ChainLinkBundle, keyring: KeyRing, family: KeyFamily) -> SigId:
        kid, sig_id = verify_bundle(bundle, keyring)
        if not family.is_active(kid):
            raise SigChainIntegrityError(f"key wasn't active {kid} for signature", seqno=bundle.inner.seqno)
        return sig_id

    def play_subchain(
        self,
        uid: Uid,
        chain: List[ChainLinkBundle],
        keyring: KeyRing,
        expected_eldest: Optional[Kid],
        maxes: Optional[ChainMaxes] = None,
    ) -> Optional[UserKeys]:
        if not chain:
            return None
        if not expected_eldest:
            raise SigChainIntegrityError("got a non-empty subchain but no eldest kid", seqno=chain[0].inner.seqno)

        step = self.reporter.step(f"play sigchain for {uid}")
        step.start(f"eldest key: {expected_eldest}")

        family = self.play_eldest_link(uid, chain[0], keyring, expected_eldest)

        for bundle in chain[1:]:
            link = bundle.inner
            sig_id = self.verify_link(bundle, keyring, family)
            body = link.body
            if isinstance(body, EldestBody):
                raise SigChainIntegrityError(f"unexpected eldest in middle of subchain {link.seqno}", seqno=link.seqno)
            elif isinstance(body, SibkeyBody):
                self.play_sibkey(link, body, sig_id, keyring, family)
            elif isinstance(body, SubkeyBody):
                self.play_subkey(link, body, sig_id, family)
            elif isinstance(body, PgpUpdateBody):
                self.play_pgp_update(link, body, keyring)
            elif isinstance(body, PerUserKeyBody):
                self.play_per_user_key(link, body, sig_id, family)
            family.revoke_batch(link.revoke)
            step.update(f"checked link {link.seqno}")

        summary = family.summary()
        step.success(f"got key family: {summary}")
        logger.info("replayed %d links for %s: %s", len(chain), uid, summary)
        return family.snapshot(keyring, maxes)

    def play(self, chain: UserSigChain, keyring: KeyRing) -> Optional[UserKeys]:
        subchain = crop_to_rightmost_subchain(chain.links, chain.eldest)
        subchain = check_subchain_against_reset_chain(chain, subchain)
        return self.play_subchain(chain.uid, subchain, keyring, chain.eldest, chain.maxes)


__all__ = [
    "verify_bundle",
    "is_subchain_start",
    "crop_to_rightmost_subchain",
    "check_subchain_against_reset_chain",
    "Player",
]
