"""
Tree walking pipeline.

Starting from the newest root commitment on the Stellar blockchain, walk the
identity server's merkle tree down to a user's leaf, prove the live tree
descends from the anchored one, and fetch the user's sigchain back from the
leaf's tail hash.

Layout of a merkle path response::

    PathAndSigs
      path            root -> leaf nodes for the uid
      root.sigs       signatures over TreeRoots
                        root              main tree root (users and teams)
                        legacy_uid_root   legacy username -> uid tree root
                        skips             seqno -> hash of earlier roots
      skips           serialized roots between this one and the live root
      reset_chain     the user's reset events
"""

import logging
from typing import Dict, List, Optional, Tuple

from .config import VerifierConfig
from .errors import SigtreeError, TransportError
from .freshness import ChainMaxes
from .merkle import check_reset_chain, check_root_sigs, check_skips, extract_uid, walk_path_to_leaf
from .reporter import Reporter, new_reporter
from .sigchain.links import ChainLinkBundle, check_chain_growth, check_chain_links
from .transport import AnchorSource, KeybaseAPI
from .types import (
    AnchorRecord,
    ChainTails,
    PathAndSigs,
    RawLink,
    ResetChainLink,
    Sha256Hash,
    Sha512Hash,
    TreeRoots,
    Uid,
    UserSigChain,
)
from .util import is_uid

logger = logging.getLogger(__name__)


class TreeWalker:
    def __init__(
        self,
        api: KeybaseAPI,
        anchors: AnchorSource,
        config: Optional[VerifierConfig] = None,
        reporter: Optional[Reporter] = None,
    ):
        self.api = api
        self.anchors = anchors
        self.config = config or VerifierConfig()
        self.reporter = new_reporter(reporter)

    async def fetch_latest_anchor(self) -> AnchorRecord:
        step = self.reporter.step("fetch latest root from stellar")
        step.start(f"contact {self.config.horizon_server_uri}")
        anchor = await self.anchors.fetch_latest_anchor()
        step.success(f"returned #{anchor.ledger}, closed at {anchor.created_at}")
        return anchor

    async def _fetch_path_and_sigs(self, title: str, **params) -> PathAndSigs:
        step = self.reporter.step(title)
        step.start()
        raw = await self.api.fetch_path_and_sigs(**params)
        try:
            ret = PathAndSigs.from_json(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise TransportError("malformed merkle path response") from e
        step.success(f"got back seqno #{ret.root_seqno}")
        return ret

    async def fetch_path_and_sigs_for_uid(self, uid: Uid) -> PathAndSigs:
        return await self._fetch_path_and_sigs(f"fetch keybase path from root for {uid}", uid=uid)

    async def fetch_path_and_sigs_for_username(self, username: str) -> PathAndSigs:
        return await self._fetch_path_and_sigs(f"fetch keybase path from root for {username}", username=username)

    async def fetch_path_and_sigs_historical(self, uid: Uid, anchor_hash: Sha256Hash, last: int) -> PathAndSigs:
        return await self._fetch_path_and_sigs(
            f"fetch historical keybase path from root for {uid}",
            uid=uid,
            start_hash256=anchor_hash,
            last=last,
        )

    def check_root_sigs(self, path_and_sigs: PathAndSigs, expected_hash: Optional[Sha256Hash]) -> Tuple[TreeRoots, Sha256Hash]:
        step = self.reporter.step(f"check hash equality for {expected_hash}")
        step.start()
        ret = check_root_sigs(path_and_sigs, expected_hash, self.config.root_kid)
        step.success("match" if expected_hash else "skipped")
        return ret

    def walk_path_to_leaf(self, path_and_sigs: PathAndSigs, expected_hash: Sha512Hash, uid: Uid) -> ChainTails:
        step = self.reporter.step(f"walk path to leaf for {uid}")
        step.start()
        tails = walk_path_to_leaf(path_and_sigs, expected_hash, uid, step)
        step.success(f"tail hash is {tails.sig_tail.link_hash}")
        return tails

    def extract_uid(self, username: str, path_and_sigs: PathAndSigs, legacy_uid_root: Optional[Sha256Hash]) -> Uid:
        step = self.reporter.step(f"extract UID for {username}")
        step.start()
        return extract_uid(username, path_and_sigs, legacy_uid_root, step)

    def check_skips(
        self,
        latest_roots: TreeRoots,
        historical: PathAndSigs,
        historical_roots: TreeRoots,
        historical_roots_hash: Sha256Hash,
    ) -> None:
        step = self.reporter.step(f"check skips from {latest_roots.seqno}<-{historical_roots.seqno}")
        step.start()
        hops = check_skips(latest_roots, historical_roots.seqno, historical_roots_hash, historical.skips, step)
        step.success("equal" if hops == 0 else f"done in {hops} hops")

    async def fetch_and_check_chain_links(self, assertions: Dict[int, Sha256Hash], uid: Uid) -> List[ChainLinkBundle]:
        """Fetch the sigchain and check it ends in the asserted hashes. Oldest first."""
        step = self.reporter.step(f"fetch sigchain from keybase for {uid}")
        step.start("fetch raw chain")
        sigs = await self.api.fetch_sig_chain(uid)
        try:
            raw_links = [RawLink.from_json(s) for s in sigs]
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"malformed sigchain response for {uid}") from e
        links = check_chain_links(raw_links, assertions)
        step.success(f"got back {len(links)} links")
        return links

    def check_reset_chain(self, path_and_sigs: PathAndSigs, tails: ChainTails, uid: Uid) -> Optional[List[ResetChainLink]]:
        return check_reset_chain(path_and_sigs.reset_chain, tails, uid)

    async def walk_common(self, latest: PathAndSigs, latest_roots: TreeRoots, uid: Uid) -> UserSigChain:
        anchor = await self.fetch_latest_anchor()
        stellar = await self.fetch_path_and_sigs_historical(uid, anchor.hash, latest_roots.seqno)

        latest_tails = self.walk_path_to_leaf(latest, latest_roots.root, uid)

        stellar_roots, stellar_roots_hash = self.check_root_sigs(stellar, anchor.hash)
        self.check_skips(latest_roots, stellar, stellar_roots, stellar_roots_hash)
        stellar_tails = self.walk_path_to_leaf(stellar, stellar_roots.root, uid)

        assertions = check_chain_growth(latest_tails.sig_tail, stellar_tails.sig_tail)
        links = await self.fetch_and_check_chain_links(assertions, uid)
        resets = self.check_reset_chain(latest, latest_tails, uid)

        maxes = ChainMaxes(
            sig=len(links),
            merkle=latest_tails.sig_tail.seqno,
            stellar=stellar_tails.sig_tail.seqno,
        )
        for warning in maxes.warnings():
            logger.warning("%s: %s", uid, warning)
        return UserSigChain(uid=uid, eldest=latest_tails.eldest_kid, links=links, resets=resets, maxes=maxes)

    async def walk_uid(self, uid: Uid) -> UserSigChain:
        latest = await self.fetch_path_and_sigs_for_uid(uid)
        latest_roots, _ = self.check_root_sigs(latest, None)
        return await self.walk_common(latest, latest_roots, uid)

    async def walk_username(self, username: str) -> UserSigChain:
        latest = await self.fetch_path_and_sigs_for_username(username)
        latest_roots, _ = self.check_root_sigs(latest, None)
        uid = self.extract_uid(username, latest, latest_roots.legacy_uid_root)
        return await self.walk_common(latest, latest_roots, uid)

    async def walk_uid_or_username(self, username_or_uid: str) -> UserSigChain:
        if is_uid(username_or_uid):
            return await self.walk_uid(Uid(username_or_uid))
        return await self.walk_username(username_or_uid)

    async def walk(self, username_or_uid: str) -> Optional[UserSigChain]:
        """Like walk_uid_or_username, but reports failures and returns None."""
        try:
            return await self.walk_uid_or_username(username_or_uid)
        except SigtreeError as e:
            logger.error("verification of %s failed: %s", username_or_uid, e)
            self.reporter.error(e)
            return None


__all__ = ["TreeWalker"]
