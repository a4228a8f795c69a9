"""Fair allocation at the uniform clearing price.

Single greedy pass over the winning bids in priority order. Each bid is
granted min(units wanted, the user's remaining cap headroom, remaining
supply). The cap check runs first, so a capped user keeps being reported
as USER_CAP_REACHED even after supply runs out.

Solvency is checked against the user's ledger balance minus what this pass
has already committed for them, because the ledger settles the whole list
in one transaction. A failed solvency check consumes no supply.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from decimal import Decimal

from src.ba_clearing.domain.models import Allocation, ClearingResult
from src.ba_common.decimal_utils import ZERO, cost_of, quantize_units, validate_positive
from src.ba_common.enums import AllocationReason

logger = logging.getLogger(__name__)


def _rejected(user: str, reason: AllocationReason, source_tx_id: str) -> Allocation:
    return Allocation(
        user=user,
        units_allocated=ZERO,
        cost_owed=ZERO,
        eligible=False,
        reason=reason,
        source_tx_id=source_tx_id,
    )


def allocate(
    result: ClearingResult,
    supply: Decimal,
    per_user_cap_ratio: Decimal,
    balance_of: Callable[[str], Decimal],
) -> list[Allocation]:
    validate_positive("supply", supply)
    if not (ZERO < per_user_cap_ratio <= 1):
        raise ValueError(f"per_user_cap_ratio must be in (0, 1], got {per_user_cap_ratio}")

    price = result.clearing_price
    user_cap = supply * per_user_cap_ratio
    remaining = supply
    allocated: dict[str, Decimal] = defaultdict(lambda: ZERO)
    committed: dict[str, Decimal] = defaultdict(lambda: ZERO)
    lines: list[Allocation] = []

    for bid in result.winning_bids:
        headroom = user_cap - allocated[bid.user]
        if headroom <= 0:
            lines.append(_rejected(bid.user, AllocationReason.USER_CAP_REACHED, bid.source_tx_id))
            continue

        want = bid.amount / price
        grant = quantize_units(min(want, headroom, remaining))
        if grant <= 0:
            lines.append(_rejected(bid.user, AllocationReason.SUPPLY_EXHAUSTED, bid.source_tx_id))
            continue

        cost = cost_of(grant, price)
        available = balance_of(bid.user) - committed[bid.user]
        if available < cost:
            logger.info(
                "Skipping %s (%s): balance %s < cost %s",
                bid.user,
                bid.source_tx_id,
                available,
                cost,
            )
            lines.append(
                _rejected(bid.user, AllocationReason.INSUFFICIENT_BALANCE, bid.source_tx_id)
            )
            continue

        remaining -= grant
        allocated[bid.user] += grant
        committed[bid.user] += cost
        lines.append(
            Allocation(
                user=bid.user,
                units_allocated=grant,
                cost_owed=cost,
                eligible=True,
                reason=AllocationReason.OK,
                source_tx_id=bid.source_tx_id,
            )
        )

    return lines


def summarize_allocations(lines: list[Allocation]) -> tuple[list[str], list[Decimal], list[Decimal]]:
    """Parallel (users, units, costs) lists of the eligible lines, in order."""
    eligible = [line for line in lines if line.eligible]
    return (
        [line.user for line in eligible],
        [line.units_allocated for line in eligible],
        [line.cost_owed for line in eligible],
    )
