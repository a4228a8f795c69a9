"""Uniform clearing price discovery.

Bids are walked in priority order (limit price desc, submission time asc,
source tx id asc) accumulating units demanded (amount / limit_price). The
price is the limit of the first bid at which cumulative demand covers the
supply. An undersubscribed round clears at the lowest valid limit present,
so every bidder wins. A round with no valid bids clears at the band floor.
"""

import logging
from collections.abc import Iterable
from decimal import Decimal

from src.ba_bids.domain.models import Bid
from src.ba_clearing.domain.models import ClearingResult, DemandPoint, PriceBand
from src.ba_common.decimal_utils import ZERO, to_display, validate_positive

logger = logging.getLogger(__name__)


def priority_key(bid: Bid) -> tuple[Decimal, object, str]:
    return (-bid.limit_price, bid.submitted_at, bid.source_tx_id)


def solve(bids: Iterable[Bid], supply: Decimal, price_band: PriceBand) -> ClearingResult:
    validate_positive("supply", supply)

    valid: list[Bid] = []
    excluded: list[Bid] = []
    for bid in bids:
        if bid.is_well_formed:
            valid.append(bid)
        else:
            logger.warning(
                "Excluding malformed bid %s (round %d): amount=%s limit_price=%s",
                bid.source_tx_id,
                bid.round_id,
                bid.amount,
                bid.limit_price,
            )
            excluded.append(bid)

    ordered = tuple(sorted(valid, key=priority_key))
    if not ordered:
        return ClearingResult(
            clearing_price=price_band.floor,
            total_demand_units=ZERO,
            ordered_bids=(),
            excluded_bids=tuple(excluded),
            undersubscribed=True,
        )

    demand = ZERO
    curve: list[DemandPoint] = []
    marginal: Bid | None = None
    for bid in ordered:
        demand += bid.amount / bid.limit_price
        curve.append(DemandPoint(bid.limit_price, demand))
        if marginal is None and demand >= supply:
            marginal = bid

    if marginal is not None:
        raw_price = marginal.limit_price
    else:
        raw_price = ordered[-1].limit_price

    price, clamped = price_band.clamp(raw_price)
    if clamped:
        logger.warning(
            "Clearing price %s outside [%s, %s], clamped to %s",
            to_display(raw_price),
            price_band.floor,
            price_band.ceiling,
            to_display(price),
        )

    return ClearingResult(
        clearing_price=price,
        total_demand_units=demand,
        ordered_bids=ordered,
        marginal_bid=marginal,
        demand_curve=tuple(curve),
        excluded_bids=tuple(excluded),
        clamped=clamped,
        undersubscribed=marginal is None,
    )
