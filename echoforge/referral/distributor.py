from __future__ import annotations

"""
Referral forest & multi-level reward distribution.

Nodes live in an append-only arena (a list). Each node stores the arena index
of its sponsor, fixed when the node is created and never rewritten. A sponsor
is accepted only when it already owns a node, so every parent index is smaller
than the child's index and the graph is a forest by construction: there is no
back-edge to detect.

A node is created on an account's first stake. Later stakes that name a
different sponsor do not touch the link.

On each stake of amount X the distributor walks at most `len(rates)` ancestors
(nearest first) and computes, for the ancestor at depth d,

    reward_d = floor(X * rates[d-1] / 10_000)

stopping early at a root. With the rate schedule capped at 1_400 bps in total,
Σ reward_d <= 0.14 * X. Crediting the rewards into stake positions is the
engine's job; this module only updates the referral bookkeeping and returns
the credits.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from echoforge.fixedpoint import apply_bps
from echoforge.types import Address


@dataclass
class ReferralNode:
    account: Address
    parent: Optional[int] = None
    direct_referrals: List[Address] = field(default_factory=list)
    total_referral_volume: int = 0
    total_earned: int = 0

    @property
    def direct_referral_count(self) -> int:
        return len(self.direct_referrals)

    def to_dict(self) -> Dict[str, object]:
        return {
            "account": self.account,
            "parent": self.parent,
            "direct_referrals": list(self.direct_referrals),
            "total_referral_volume": str(self.total_referral_volume),
            "total_earned": str(self.total_earned),
        }

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "ReferralNode":
        parent = d.get("parent")
        return ReferralNode(
            account=Address(str(d["account"])),
            parent=None if parent is None else int(parent),  # type: ignore[arg-type]
            direct_referrals=[Address(str(a)) for a in d.get("direct_referrals", [])],  # type: ignore[union-attr]
            total_referral_volume=int(d.get("total_referral_volume", 0)),  # type: ignore[arg-type]
            total_earned=int(d.get("total_earned", 0)),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class ReferralCredit:
    depth: int
    account: Address
    rate_bps: int
    amount: int

    def to_dict(self) -> Dict[str, object]:
        return {"depth": self.depth, "account": self.account, "rate_bps": self.rate_bps, "amount": str(self.amount)}


class ReferralForest:
    def __init__(self) -> None:
        self._nodes: List[ReferralNode] = []
        self._by_account: Dict[Address, int] = {}

    # --- load/save ---

    def dump(self) -> List[Dict[str, object]]:
        return [n.to_dict() for n in self._nodes]

    @classmethod
    def load(cls, data: Sequence[Mapping[str, object]]) -> "ReferralForest":
        forest = cls()
        for i, d in enumerate(data):
            node = ReferralNode.from_dict(d)
            if node.parent is not None and not (0 <= node.parent < i):
                raise ValueError(f"referral node {i} has a non-ancestral parent index {node.parent}")
            forest._nodes.append(node)
            forest._by_account[node.account] = i
        return forest

    # --- introspection ---

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, account: object) -> bool:
        return account in self._by_account

    def node(self, account: Address) -> Optional[ReferralNode]:
        i = self._by_account.get(account)
        return None if i is None else self._nodes[i]

    def sponsor_of(self, account: Address) -> Optional[Address]:
        n = self.node(account)
        if n is None or n.parent is None:
            return None
        return self._nodes[n.parent].account

    def chain(self, account: Address, max_depth: int) -> List[ReferralNode]:
        """Ancestors of `account`, nearest first, at most `max_depth` of them."""
        out: List[ReferralNode] = []
        n = self.node(account)
        while n is not None and n.parent is not None and len(out) < max_depth:
            n = self._nodes[n.parent]
            out.append(n)
        return out

    # --- mutations ---

    def ensure_node(self, account: Address, sponsor: Optional[Address]) -> Tuple[ReferralNode, bool]:
        """
        Return (node, linked). A node is created only the first time an account
        is seen; `linked` is True when that creation also bound a sponsor.
        """
        existing = self.node(account)
        if existing is not None:
            return existing, False
        parent: Optional[int] = None
        if sponsor is not None and sponsor != account:
            parent = self._by_account.get(sponsor)
        node = ReferralNode(account=account, parent=parent)
        self._by_account[account] = len(self._nodes)
        self._nodes.append(node)
        if parent is not None:
            self._nodes[parent].direct_referrals.append(account)
        return node, parent is not None

    def distribute(self, account: Address, amount: int, rates_bps: Sequence[int]) -> List[ReferralCredit]:
        """Walk the sponsor chain for a stake of `amount` and book every credit."""
        credits: List[ReferralCredit] = []
        for depth, ancestor in enumerate(self.chain(account, len(rates_bps)), start=1):
            rate = rates_bps[depth - 1]
            reward = apply_bps(amount, rate)
            ancestor.total_referral_volume += amount
            ancestor.total_earned += reward
            credits.append(ReferralCredit(depth=depth, account=ancestor.account, rate_bps=rate, amount=reward))
        return credits


__all__ = ["ReferralNode", "ReferralCredit", "ReferralForest"]
