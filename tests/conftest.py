"""Builders for real signed roots, merkle trees, reset chains and sigchains."""

import copy
import json
import os
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import msgpack
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from sigtree.config import VerifierConfig
from sigtree.crypto.nacl import decode_sig_packet, public_key_to_kid, sign_packet
from sigtree.errors import SignatureInvalid
from sigtree.merkle.path import candidate_uid, username_hash
from sigtree.types import AnchorRecord
from sigtree.util import canonical_json, sha256, sha512

V2_LINK_TYPES = {"eldest": 1, "sibkey": 9, "subkey": 10, "pgp_update": 11, "per_user_key": 12, "track": 3}


class Signer:
    def __init__(self):
        self.private = Ed25519PrivateKey.generate()
        self.kid = public_key_to_kid(self.private.public_key())

    def sign(self, payload) -> str:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        return sign_packet(self.private, payload)

    def sig_id(self, sig: str) -> str:
        return packet_hash(sig)


def new_enc_kid() -> str:
    return "0121" + os.urandom(32).hex() + "0a"


def packet_hash(sig: str) -> str:
    return sha256(decode_sig_packet(sig).raw)


class FakePgpHandle:
    """Stands in for an imported PGP key; one kid may have several versions."""

    def __init__(self, kid: str, material: str):
        self.kid = kid
        self.material = material

    def verify(self, sig: str):
        try:
            obj = json.loads(sig)
        except ValueError as e:
            raise SignatureInvalid("not a fake PGP signature") from e
        if obj.get("kid") != self.kid or obj.get("key") != self.material:
            raise SignatureInvalid(f"not signed by {self.kid}/{self.material}")
        return obj["payload"].encode("utf-8"), sig.encode("utf-8")


class FakePgpBackend:
    def import_key(self, armored: str) -> FakePgpHandle:
        _, kid, material = armored.split(":")
        return FakePgpHandle(kid, material)


class FakePgpSigner:
    def __init__(self, kid: str, material: str):
        self.kid = kid
        self.material = material

    @property
    def armored(self) -> str:
        return f"PGPKEY:{self.kid}:{self.material}"

    def sign(self, payload) -> str:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.dumps({"kid": self.kid, "key": self.material, "payload": payload})

    def sig_id(self, sig: str) -> str:
        return sha256(sig)


class MerkleTree:
    """Two levels: an interior root keyed by first hex digit, then leaves."""

    def __init__(self, entries: Dict[str, Any], hasher: Callable[[str], str]):
        self.hasher = hasher
        buckets: Dict[str, Dict[str, Any]] = {}
        for key, value in entries.items():
            buckets.setdefault(key[:1], {})[key] = value
        self.leaves = {}
        tab = {}
        for prefix, entries_for_prefix in buckets.items():
            node = self._node(prefix, entries_for_prefix, 2)
            self.leaves[prefix] = node
            tab[prefix] = node["node"]["hash"]
        self.root = self._node("", tab, 1)
        self.root_hash = self.root["node"]["hash"]

    def _node(self, prefix, tab, node_type):
        val = json.dumps({"tab": tab, "type": node_type}, sort_keys=True)
        return {"prefix": prefix, "node": {"hash": self.hasher(val), "val": val, "type": node_type}}

    def path(self, key: str) -> List[Dict[str, Any]]:
        nodes = [self.root]
        if key[:1] in self.leaves:
            nodes.append(self.leaves[key[:1]])
        return copy.deepcopy(nodes)


class ChainBuilder:
    """Appends signed v1/v2 links to one user's sigchain."""

    def __init__(self, uid: str):
        self.uid = uid
        self.raw: List[Dict[str, Any]] = []
        self.hashes: List[str] = []
        self.sig_ids: List[str] = []

    @property
    def seqno(self) -> int:
        return len(self.raw)

    @property
    def tail(self) -> Optional[str]:
        return self.hashes[-1] if self.hashes else None

    def add(
        self,
        link_type: str,
        signer: Signer,
        eldest_kid: Optional[str] = None,
        sections: Optional[Dict[str, Any]] = None,
        device: Optional[Dict[str, Any]] = None,
        revoke: Optional[Dict[str, Any]] = None,
        sig_version: int = 1,
        reverse_signer: Optional[Signer] = None,
        reverse_section: Optional[str] = None,
    ) -> int:
        seqno = self.seqno + 1
        body: Dict[str, Any] = {
            "key": {"kid": signer.kid, "uid": self.uid},
            "type": link_type,
            "version": sig_version,
        }
        if eldest_kid:
            body["key"]["eldest_kid"] = eldest_kid
        body.update(copy.deepcopy(sections or {}))
        if device:
            body["device"] = device
        if revoke:
            body["revoke"] = revoke
        payload = {"body": body, "ctime": 1500000000 + seqno, "prev": self.tail, "seqno": seqno, "tag": "signature"}
        if reverse_signer is not None:
            body[reverse_section]["reverse_sig"] = None
            body[reverse_section]["reverse_sig"] = reverse_signer.sign(canonical_json(payload))
        payload_json = canonical_json(payload)

        if sig_version == 2:
            outer = msgpack.packb(
                [
                    2,
                    seqno,
                    bytes.fromhex(self.tail) if self.tail else None,
                    bytes.fromhex(sha256(payload_json)),
                    V2_LINK_TYPES.get(link_type, 0),
                    1,
                    False,
                ],
                use_bin_type=True,
            )
            sig = signer.sign(outer)
            link_hash = sha256(outer)
        else:
            sig = signer.sign(payload_json)
            link_hash = sha256(payload_json)

        self.raw.append({"seqno": seqno, "payload_json": payload_json, "sig": sig, "sig_version": sig_version, "kid": signer.kid})
        self.hashes.append(link_hash)
        self.sig_ids.append(signer.sig_id(sig))
        return seqno

    def eldest(self, signer: Signer, device: Optional[Dict[str, Any]] = None, **kw) -> int:
        return self.add("eldest", signer, eldest_kid=signer.kid, device=device, **kw)

    def sibkey(self, signer: Signer, new: Signer, eldest_kid: str, device: Optional[Dict[str, Any]] = None, **kw) -> int:
        return self.add(
            "sibkey",
            signer,
            eldest_kid=eldest_kid,
            sections={"sibkey": {"kid": new.kid}},
            device=device,
            reverse_signer=new,
            reverse_section="sibkey",
            **kw,
        )

    def subkey(self, signer: Signer, kid: str, parent_kid: str, eldest_kid: str, **kw) -> int:
        return self.add(
            "subkey",
            signer,
            eldest_kid=eldest_kid,
            sections={"subkey": {"kid": kid, "parent_kid": parent_kid}},
            **kw,
        )

    def per_user_key(self, signer: Signer, puk: Signer, enc: str, generation: int, eldest_kid: str, **kw) -> int:
        return self.add(
            "per_user_key",
            signer,
            eldest_kid=eldest_kid,
            sections={"per_user_key": {"generation": generation, "signing_kid": puk.kid, "encryption_kid": enc}},
            reverse_signer=puk,
            reverse_section="per_user_key",
            **kw,
        )


class Universe:
    """An identity server's history: signed roots, trees, chains and resets."""

    def __init__(self):
        self.root_signer = Signer()
        self.config = VerifierConfig(
            api_server_uri="https://keybase.test/_/api/1.0/",
            horizon_server_uri="https://horizon.test",
            root_kid=self.root_signer.kid,
        )
        self.roots: Dict[int, Dict[str, Any]] = {}
        self.leaves: Dict[str, Any] = {}
        self.legacy: Dict[str, str] = {}
        self.usernames: Dict[str, str] = {}
        self.chains: Dict[str, List[Dict[str, Any]]] = {}
        self.public_keys: Dict[str, List[str]] = {}
        self.reset_chains: Dict[str, List[str]] = {}
        self.anchored: Optional[int] = None

    @property
    def latest(self) -> int:
        return max(self.roots)

    def root_hash(self, seqno: int) -> str:
        return sha256(self.roots[seqno]["payload"])

    def add_user(self, username: str, uid: Optional[str] = None) -> str:
        """Register username; a uid not derived from it goes in the legacy tree."""
        uid = uid or candidate_uid(username)
        self.usernames[username] = uid
        if uid != candidate_uid(username):
            self.legacy[username_hash(username)] = uid
        return uid

    def publish(self, uid: str, chain: ChainBuilder, eldest_kid: Optional[str], upto: Optional[int] = None) -> None:
        """Serve chain and point uid's leaf at its link number upto."""
        n = upto if upto is not None else chain.seqno
        self.chains[uid] = chain.raw
        leaf: List[Any] = [2, [n, chain.hashes[n - 1] if n else "", "00" * 32], None, eldest_kid]
        resets = self.reset_chains.get(uid)
        if resets:
            leaf.append([len(resets), sha512(resets[-1])])
        self.leaves[uid] = leaf

    def add_reset(self, uid: str, prev_public_seqno: int, prev_eldest_kid: Optional[str], reset_type: str = "reset") -> None:
        chain = self.reset_chains.setdefault(uid, [])
        raw = canonical_json({
            "ctime": 1600000000 + len(chain),
            "prev": {
                "eldest_kid": prev_eldest_kid,
                "public_seqno": prev_public_seqno,
                "reset": sha512(chain[-1]) if chain else None,
            },
            "reset_seqno": len(chain) + 1,
            "type": reset_type,
        })
        chain.append(raw)

    def commit(self, count: int = 1) -> int:
        for _ in range(count):
            seqno = len(self.roots) + 1
            tree = MerkleTree(dict(self.leaves), sha512)
            legacy = MerkleTree(dict(self.legacy), sha256) if self.legacy else None
            skips = {}
            jump = 1
            while seqno - jump >= 1:
                skips[str(seqno - jump)] = self.root_hash(seqno - jump)
                jump <<= 1
            body = {
                "legacy_uid_root": legacy.root_hash if legacy else None,
                "root": tree.root_hash,
                "seqno": seqno,
                "skips": skips,
            }
            payload = canonical_json({"body": body, "tag": "signature"})
            self.roots[seqno] = {
                "payload": payload,
                "sig": self.root_signer.sign(payload),
                "tree": tree,
                "legacy": legacy,
            }
        return self.latest

    def anchor(self, seqno: Optional[int] = None) -> int:
        self.anchored = seqno or self.latest
        return self.anchored

    def anchor_hash(self, seqno: int) -> str:
        return packet_hash(self.roots[seqno]["sig"])

    def skip_path(self, latest: int, historical: int) -> List[str]:
        """Serialized roots at each intermediate stop from latest back to historical."""
        out = []
        curr = latest
        diff = latest - historical
        bit = 1
        while bit * 2 <= diff:
            bit <<= 1
        while bit:
            if diff & bit:
                curr -= bit
                if curr == historical:
                    break
                out.append(self.roots[curr]["payload"])
            bit >>= 1
        return out

    def path_response(self, uid: str, seqno: int, username: Optional[str] = None, skips=()) -> Dict[str, Any]:
        root = self.roots[seqno]
        resp: Dict[str, Any] = {
            "status": {"code": 0},
            "uid": uid,
            "username": username,
            "root": {"seqno": seqno, "sigs": {self.root_signer.kid: {"sig": root["sig"]}}},
            "path": root["tree"].path(uid),
            "skips": list(skips),
            "reset_chain": list(self.reset_chains[uid]) if uid in self.reset_chains else None,
        }
        if username and root["legacy"] is not None:
            resp["uid_proof_path"] = root["legacy"].path(username_hash(username))
        return resp


class FakeKeybase:
    def __init__(self, universe: Universe):
        self.universe = universe
        self.calls: List[Dict[str, Any]] = []
        self.tamper: Optional[Callable[[Dict[str, Any]], None]] = None

    async def fetch_path_and_sigs(self, uid=None, username=None, start_hash256=None, last=None):
        self.calls.append({"uid": uid, "username": username, "start_hash256": start_hash256, "last": last})
        u = self.universe
        if uid is None:
            uid = u.usernames[username]
        if start_hash256:
            seqno = next((s for s in u.roots if u.anchor_hash(s) == start_hash256), u.anchored)
            resp = u.path_response(uid, seqno, username, u.skip_path(last, seqno))
        else:
            resp = u.path_response(uid, u.latest, username)
        if self.tamper is not None:
            self.tamper(resp)
        return resp

    async def fetch_sig_chain(self, uid):
        return copy.deepcopy(self.universe.chains.get(uid, []))

    async def fetch_public_keys(self, uid):
        return list(self.universe.public_keys.get(uid, []))


class FakeAnchors:
    def __init__(self, universe: Universe):
        self.universe = universe
        self.override: Optional[str] = None

    async def fetch_latest_anchor(self) -> AnchorRecord:
        seqno = self.universe.anchored
        return AnchorRecord(
            hash=self.override or self.universe.anchor_hash(seqno),
            ledger=20000000 + seqno,
            created_at="2024-05-01T12:00:00Z",
        )


@pytest.fixture
def universe():
    return Universe()


@pytest.fixture
def api(universe):
    return FakeKeybase(universe)


@pytest.fixture
def anchors(universe):
    return FakeAnchors(universe)


@pytest.fixture
def chain_builder():
    return ChainBuilder


@pytest.fixture
def make_signer():
    return Signer


@pytest.fixture
def alice(universe):
    """Two devices, an encryption subkey and a per-user key.

    The anchored root commits to link 2, the live root to link 4.
    """
    username = "alice"
    uid = universe.add_user(username)
    d1, d2, puk = Signer(), Signer(), Signer()
    enc, puk_enc = new_enc_kid(), new_enc_kid()

    chain = ChainBuilder(uid)
    chain.eldest(d1, device={"id": "d1" * 16, "type": "desktop", "name": "laptop"})
    chain.sibkey(d1, d2, eldest_kid=d1.kid, device={"id": "d2" * 16, "type": "mobile", "name": "phone"})
    chain.subkey(d1, enc, parent_kid=d1.kid, eldest_kid=d1.kid)
    chain.per_user_key(d2, puk, puk_enc, generation=1, eldest_kid=d1.kid)
    universe.public_keys[uid] = [d1.kid, d2.kid, enc]

    universe.publish(uid, chain, d1.kid, upto=2)
    universe.commit(3)
    universe.anchor(3)
    universe.publish(uid, chain, d1.kid)
    universe.commit(13)

    return SimpleNamespace(
        username=username,
        uid=uid,
        chain=chain,
        d1=d1,
        d2=d2,
        puk=puk,
        enc=enc,
        puk_enc=puk_enc,
    )
