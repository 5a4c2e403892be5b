"""Chain freshness tracking.

Three independent views of how long a user's sigchain is: the signature
server's, the live merkle tree's, and the blockchain-anchored merkle tree's.
They only disagree when one stage lags another, which is worth a warning but
is never a verification failure.
"""

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class ChainMaxes:
    sig: int
    merkle: int
    stellar: int

    def is_fresh(self) -> bool:
        return self.sig == self.merkle == self.stellar

    def warnings(self) -> List[str]:
        """Describe each stage that lags the one before it."""
        out: List[str] = []
        if self.sig != self.merkle:
            out.append(
                f"sigchain has {self.sig} links but the merkle tree commits to {self.merkle}"
            )
        if self.merkle != self.stellar:
            out.append(
                f"merkle tree commits to {self.merkle} links but the stellar-anchored root commits to {self.stellar}"
            )
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {"sig": self.sig, "merkle": self.merkle, "stellar": self.stellar}


__all__ = ["ChainMaxes"]
