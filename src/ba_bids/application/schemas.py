"""Pydantic schemas for ba_bids API responses.

Decimals are serialized as strings so no precision is lost in JSON.
"""

from pydantic import BaseModel

from src.ba_bids.domain.models import Bid


class BidOut(BaseModel):
    user: str
    amount: str
    limit_price: str
    submitted_at: str
    source_tx_id: str
    status: str

    @classmethod
    def from_domain(cls, bid: Bid) -> "BidOut":
        return cls(
            user=bid.user,
            amount=str(bid.amount),
            limit_price=str(bid.limit_price),
            submitted_at=bid.submitted_at.isoformat(),
            source_tx_id=bid.source_tx_id,
            status=bid.status.value,
        )


class RoundBidsResponse(BaseModel):
    round_id: int
    count: int
    bids: list[BidOut]
