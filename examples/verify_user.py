#!/usr/bin/env python3
"""
Verify a Keybase user against the Stellar-anchored merkle root.

Usage:
    python examples/verify_user.py <username-or-uid> [--tree] [--out FILE]

Walks from the newest root published on Stellar down to the user's leaf,
checks the sigchain, and prints the currently active keys. With --tree the
replay is skipped and the verified sigchain summary is printed instead.
Endpoints can be overridden with SIGTREE_* environment variables.
"""

import asyncio
import json
import logging
import sys

from sigtree import Runner, RunOptions, VerifierConfig, verify_user
from sigtree.reporter import LoggingReporter
from sigtree.types import UserSigChain

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def demo_verify(username_or_uid: str, tree_only: bool) -> None:
    print(f"\n=== Verifying {username_or_uid} ===")
    config = VerifierConfig.from_env()
    result = await verify_user(username_or_uid, tree_only=tree_only, config=config, reporter=LoggingReporter())

    if isinstance(result, UserSigChain):
        print(f"✓ uid {result.uid}: {len(result.links)} links, eldest {result.eldest}")
        for warning in result.maxes.warnings():
            print(f"  ! {warning}")
    elif result is None:
        print("✓ verified, but the account has no live keys (reset or deleted)")
    else:
        print(json.dumps(result.to_dict(), indent=2))


async def demo_runner(username_or_uid: str, out: str, tree_only: bool) -> bool:
    print(f"\n=== Writing result for {username_or_uid} to {out} ===")
    runner = Runner(RunOptions(file=out, tree=tree_only, quiet=True), username_or_uid, VerifierConfig.from_env())
    ok = await runner.run()
    print("✓ done" if ok else "✗ verification failed")
    return ok


async def main() -> int:
    args = sys.argv[1:]
    if not args:
        print(__doc__)
        return 2
    tree_only = "--tree" in args
    out = None
    if "--out" in args:
        out = args[args.index("--out") + 1]
    target = [a for a in args if not a.startswith("--") and a != out][0]

    if out:
        return 0 if await demo_runner(target, out, tree_only) else 1
    try:
        await demo_verify(target, tree_only)
    except Exception as e:
        print(f"\n✗ Verification failed: {e}")
        logger.exception("Verification failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
