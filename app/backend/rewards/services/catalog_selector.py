"""
Catalog selection for daily task batches.

Two policies pick products out of an eligible pool:

* random: a uniform draw of distinct products, used when no price-sum
  constraint applies.
* price_banded: a staged pipeline over a price-ascending candidate list
  (greedy pass, retry pass, top-up pass) that returns exactly the requested
  number of products and keeps the batch total inside the price band
  whenever the pool allows it.

Everything here is pure: functions take a candidate list and return new
lists, nothing touches the database.
"""

import random
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Protocol, Sequence, Set, Tuple

import structlog

from rewards.core.exceptions import NoEligibleProductsError, ValidationError


logger = structlog.get_logger(__name__)


class SelectionPolicy(str, Enum):
    """Available selection policies."""
    RANDOM = "random"
    PRICE_BANDED = "price_banded"


class Candidate(Protocol):
    """Anything with an id and a price can be selected."""
    id: str
    price: Decimal


PriceBand = Tuple[Decimal, Decimal]


def parse_policy(value) -> SelectionPolicy:
    """Coerce a policy name, rejecting unknown ones."""
    try:
        return SelectionPolicy(value)
    except ValueError:
        raise ValidationError(
            f"Unknown selection policy: {value}",
            {"policy": str(value)}
        )


@dataclass
class SelectionResult:
    """Outcome of a batch selection."""
    products: List[Candidate]
    policy: SelectionPolicy
    band_satisfied: bool = True
    used_fallback: bool = False
    stages: List[str] = field(default_factory=list)

    @property
    def total_price(self) -> Decimal:
        return sum((Decimal(p.price) for p in self.products), Decimal("0"))

    @property
    def average_price(self) -> Decimal:
        if not self.products:
            return Decimal("0")
        return self.total_price / len(self.products)


def _total(products: Sequence[Candidate]) -> Decimal:
    return sum((Decimal(p.price) for p in products), Decimal("0"))


def _validate_band(price_band: PriceBand) -> PriceBand:
    lo, hi = Decimal(price_band[0]), Decimal(price_band[1])
    if lo < 0 or hi < 0:
        raise ValidationError(
            "Price band bounds must be non-negative",
            {"priceBand": f"[{lo}, {hi}]"}
        )
    if lo > hi:
        raise ValidationError(
            "Price band lower bound exceeds upper bound",
            {"priceBand": f"[{lo}, {hi}]"}
        )
    return lo, hi


def sort_by_price(products: Sequence[Candidate]) -> List[Candidate]:
    """Price ascending, id as tie-breaker so the order is stable."""
    return sorted(products, key=lambda p: (Decimal(p.price), str(p.id)))


def select_random(
    products: Sequence[Candidate],
    target_count: int,
    rng: Optional[random.Random] = None
) -> List[Candidate]:
    """Draw up to target_count distinct products uniformly at random."""
    rng = rng or random.Random()
    return rng.sample(list(products), min(target_count, len(products)))


def greedy_pass(
    candidates: Sequence[Candidate],
    target_count: int,
    upper: Decimal,
    selected: Optional[List[Candidate]] = None
) -> List[Candidate]:
    """
    Accumulate candidates in order while the running sum stays within upper.

    Starts from an existing selection when given and never picks the same
    product twice.
    """
    batch = list(selected or [])
    taken: Set[str] = {str(p.id) for p in batch}
    total = _total(batch)

    for product in candidates:
        if len(batch) >= target_count:
            break
        if str(product.id) in taken:
            continue
        price = Decimal(product.price)
        if total + price <= upper:
            batch.append(product)
            taken.add(str(product.id))
            total += price

    return batch


def _best_swap(
    batch: Sequence[Candidate],
    pool: Sequence[Candidate],
    room: Decimal
) -> Optional[Tuple[Decimal, int, int]]:
    """Largest price increase over all (slot, replacement) pairs that fits in room."""
    best = None
    for index, current in enumerate(batch):
        current_price = Decimal(current.price)
        # pool is price descending, so the first fit is the largest for this slot
        for pool_index, replacement in enumerate(pool):
            delta = Decimal(replacement.price) - current_price
            if delta <= 0:
                break
            if delta <= room:
                if best is None or delta > best[0]:
                    best = (delta, index, pool_index)
                break
    return best


def lift_into_band(
    selected: Sequence[Candidate],
    candidates: Sequence[Candidate],
    lower: Decimal,
    upper: Decimal
) -> List[Candidate]:
    """
    Raise a selection's total towards lower without crossing upper.

    Each round applies the single swap with the largest price increase that
    still fits under upper, looking across every slot, and repeats until the
    total reaches lower or no swap raises it. Slot order is preserved.
    """
    batch = list(selected)
    total = _total(batch)
    taken: Set[str] = {str(p.id) for p in batch}
    pool = sorted(
        (p for p in candidates if str(p.id) not in taken),
        key=lambda p: Decimal(p.price),
        reverse=True
    )

    while total < lower and pool:
        swap = _best_swap(batch, pool, upper - total)
        if swap is None:
            break
        delta, index, pool_index = swap
        batch[index], pool[pool_index] = pool[pool_index], batch[index]
        total += delta
        pool.sort(key=lambda p: Decimal(p.price), reverse=True)

    return batch


def top_up(
    selected: Sequence[Candidate],
    candidates: Sequence[Candidate],
    target_count: int
) -> List[Candidate]:
    """Fill remaining slots with the cheapest unselected candidates, ignoring the band."""
    batch = list(selected)
    taken: Set[str] = {str(p.id) for p in batch}

    for product in candidates:
        if len(batch) >= target_count:
            break
        if str(product.id) not in taken:
            batch.append(product)
            taken.add(str(product.id))

    return batch


def select_price_banded(
    products: Sequence[Candidate],
    target_count: int,
    price_band: PriceBand
) -> SelectionResult:
    """Greedy, retry and top-up stages; see module docstring."""
    lower, upper = _validate_band(price_band)
    candidates = sort_by_price(products)
    result = SelectionResult(products=[], policy=SelectionPolicy.PRICE_BANDED)

    batch = greedy_pass(candidates, target_count, upper)
    result.stages.append("greedy")

    if len(batch) < target_count or _total(batch) < lower:
        batch = greedy_pass(candidates, target_count, upper, selected=batch)
        batch = lift_into_band(batch, candidates, lower, upper)
        result.stages.append("retry")

    if len(batch) < target_count:
        batch = top_up(batch, candidates, target_count)
        result.stages.append("top_up")
        result.used_fallback = True

    result.products = batch
    total = _total(batch)
    result.band_satisfied = lower <= total <= upper

    if result.used_fallback or not result.band_satisfied:
        logger.warning(
            "Price band not satisfied by batch selection",
            target_count=target_count,
            selected=len(batch),
            total_price=str(total),
            band_low=str(lower),
            band_high=str(upper),
            used_fallback=result.used_fallback
        )

    return result


def select_batch(
    products: Sequence[Candidate],
    target_count: int,
    price_band: Optional[PriceBand] = None,
    policy: SelectionPolicy = SelectionPolicy.PRICE_BANDED,
    rng: Optional[random.Random] = None
) -> SelectionResult:
    """
    Pick a batch of products for a user's task list.

    Args:
        products: Eligible products (active and task-flagged)
        target_count: Requested batch size
        price_band: Inclusive (low, high) bounds for the batch total;
            required by the price-banded policy
        policy: Selection policy
        rng: Random source for the random policy

    Returns:
        SelectionResult with the ordered products and band diagnostics

    Raises:
        NoEligibleProductsError: The pool is empty
        ValidationError: Bad target count or price band
    """
    if target_count < 1:
        raise ValidationError(
            "Target count must be at least 1",
            {"targetCount": target_count}
        )
    if not products:
        raise NoEligibleProductsError()

    policy = parse_policy(policy)

    if policy == SelectionPolicy.RANDOM or price_band is None:
        picked = select_random(products, target_count, rng)
        return SelectionResult(
            products=picked,
            policy=SelectionPolicy.RANDOM,
            stages=["random"]
        )

    return select_price_banded(products, target_count, price_band)
