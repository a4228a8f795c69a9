"""Allocation invariant verification before settlement submission."""

import logging
from collections import defaultdict
from decimal import Decimal

from src.ba_clearing.domain.models import Allocation
from src.ba_common.decimal_utils import ZERO, cost_of
from src.ba_common.enums import AllocationReason

logger = logging.getLogger(__name__)


def verify_allocation_invariants(
    allocations: list[Allocation],
    supply: Decimal,
    per_user_cap_ratio: Decimal,
    clearing_price: Decimal,
) -> None:
    """Verify an allocation list before it goes to the ledger. Raises AssertionError if violated.

    INV-1: sum of eligible units <= supply
    INV-2: each user's eligible units <= supply * per_user_cap_ratio
    INV-3: eligible lines are OK with positive units; rejected lines carry nothing
    INV-4: cost_owed == units_allocated * clearing_price (rounded up to the quantum)
    """
    total = ZERO
    per_user: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for line in allocations:
        if line.eligible:
            assert line.reason == AllocationReason.OK and line.units_allocated > 0, (
                f"INV-3 violated: eligible line {line.source_tx_id} "
                f"reason={line.reason.value} units={line.units_allocated}"
            )
            expected_cost = cost_of(line.units_allocated, clearing_price)
            assert line.cost_owed == expected_cost, (
                f"INV-4 violated: {line.source_tx_id} cost={line.cost_owed} "
                f"!= units * price = {expected_cost}"
            )
            total += line.units_allocated
            per_user[line.user] += line.units_allocated
        else:
            assert line.reason != AllocationReason.OK and line.units_allocated == 0, (
                f"INV-3 violated: rejected line {line.source_tx_id} "
                f"reason={line.reason.value} units={line.units_allocated}"
            )

    assert total <= supply, f"INV-1 violated: allocated={total} > supply={supply}"

    cap = supply * per_user_cap_ratio
    for user, units in per_user.items():
        assert units <= cap, f"INV-2 violated: user={user} units={units} > cap={cap}"

    logger.debug("Allocation invariants OK: lines=%d, units=%s", len(allocations), total)
