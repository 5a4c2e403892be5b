"""
Top-level entry points.

Runner wires the tree walker, the key ring and the sigchain player together
for one user, records the outcome in the metrics registry, and optionally
writes the verified result to a JSON file.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional, Union

from .config import VerifierConfig
from .errors import SigtreeError
from .keys.family import UserKeys
from .keys.keyring import KeyRing, PgpBackend
from .monitoring import get_registry
from .reporter import LoggingReporter, NullReporter, Reporter
from .sigchain.player import Player
from .transport import AnchorSource, HorizonClient, KeybaseAPI, KeybaseClient
from .types import UserSigChain
from .walker import TreeWalker

logger = logging.getLogger(__name__)

Result = Union[UserSigChain, UserKeys, None]


@dataclass
class RunOptions:
    file: Optional[str] = None
    tree: bool = False
    quiet: bool = False


async def verify_user(
    username_or_uid: str,
    tree_only: bool = False,
    config: Optional[VerifierConfig] = None,
    reporter: Optional[Reporter] = None,
    pgp_backend: Optional[PgpBackend] = None,
    api: Optional[KeybaseAPI] = None,
    anchors: Optional[AnchorSource] = None,
) -> Result:
    """Verify a user from the Stellar anchor down to their active keys.

    With tree_only the sigchain is not replayed and the verified
    UserSigChain is returned instead. Raises SigtreeError on any failure.
    """
    config = config or VerifierConfig()
    owned = []
    if api is None:
        api = KeybaseClient(config)
        owned.append(api)
    if anchors is None:
        anchors = HorizonClient(config)
        owned.append(anchors)

    try:
        walker = TreeWalker(api, anchors, config, reporter)
        chain = await walker.walk_uid_or_username(username_or_uid)
        if tree_only:
            return chain
        keyring = KeyRing(chain.uid, pgp_backend, reporter)
        await keyring.fetch(api)
        return Player(reporter).play(chain, keyring)
    finally:
        for client in owned:
            await client.close()


class Runner:
    def __init__(
        self,
        opts: RunOptions,
        username: str,
        config: Optional[VerifierConfig] = None,
        api: Optional[KeybaseAPI] = None,
        anchors: Optional[AnchorSource] = None,
        pgp_backend: Optional[PgpBackend] = None,
        reporter: Optional[Reporter] = None,
    ):
        self.opts = opts
        self.username = username
        self.config = config or VerifierConfig()
        self.api = api
        self.anchors = anchors
        self.pgp_backend = pgp_backend
        self.reporter = reporter
        self.metrics = get_registry()

    @property
    def mode(self) -> str:
        return "tree" if self.opts.tree else "keys"

    def _make_reporter(self) -> Reporter:
        if self.reporter is not None:
            return self.reporter
        return NullReporter() if self.opts.quiet else LoggingReporter()

    async def run_with_reporter(self, reporter: Reporter) -> Result:
        return await verify_user(
            self.username,
            tree_only=self.opts.tree,
            config=self.config,
            reporter=reporter,
            pgp_backend=self.pgp_backend,
            api=self.api,
            anchors=self.anchors,
        )

    def _write(self, result: Result) -> None:
        if not self.opts.file:
            return
        data = result.to_dict() if result is not None else None
        with open(self.opts.file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info("wrote result for %s to %s", self.username, self.opts.file)

    async def run(self) -> bool:
        """Verify the user; report failures instead of raising."""
        reporter = self._make_reporter()
        try:
            result = await self.run_with_reporter(reporter)
        except SigtreeError as e:
            logger.error("verification of %s failed: %s", self.username, e)
            reporter.error(e)
            self.metrics.observe_failure(self.mode, e)
            return False

        maxes = getattr(result, "maxes", None)
        fresh = maxes.is_fresh() if maxes is not None else True
        self.metrics.observe_success(self.mode, fresh)
        self._write(result)
        return True


__all__ = ["RunOptions", "Runner", "verify_user"]
