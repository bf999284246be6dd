"""
Mutation Applier - writes resolved values to one variant.

Sub-steps run in sequence and each is retried on its own:

1. price         (only when a price was resolved)
2. tracking      (enable inventory tracking if it is off)
3. inventory     (on-hand quantity at the primary location)
4. cost          (durable variant attribute, falling back to the inventory item cost)

A failing sub-step is recorded and classified but never stops the later
ones, and never stops the run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol

import httpx

from ..errors import (
    AuthExpired,
    MutationFailure,
    ThrottledError,
    is_auth_message,
    is_scope_message,
)
from .models import InternalProduct, InternalVariant, ProductStatus, ResolvedValues

logger = logging.getLogger(__name__)


class CatalogMutations(Protocol):
    """Write access to the merchant catalog.

    Every call returns the list of user-facing error messages (empty on
    success) and raises only on transport or credential failures.
    """

    async def set_price(self, product_id: str, variant_id: str, amount: Decimal) -> List[str]: ...

    async def set_tracked(self, inventory_item_id: str, tracked: bool) -> List[str]: ...

    async def set_on_hand(self, inventory_item_id: str, location_id: str, quantity: int) -> List[str]: ...

    async def set_cost(self, variant_id: str, amount: Decimal) -> List[str]: ...

    async def set_item_cost(self, inventory_item_id: str, amount: Decimal) -> List[str]: ...

    async def set_product_status(self, product_id: str, status: ProductStatus) -> List[str]: ...

    async def primary_location_id(self) -> Optional[str]: ...


class StepStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StepResult:
    step: str
    status: StepStatus
    detail: str = ""
    error: Optional[MutationFailure] = None


@dataclass
class VariantOutcome:
    """What happened to one variant."""

    variant: InternalVariant
    steps: List[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(s.status == StepStatus.FAILED for s in self.steps)

    @property
    def errors(self) -> List[MutationFailure]:
        return [s.error for s in self.steps if s.error is not None]

    def status_of(self, step: str) -> Optional[StepStatus]:
        for result in self.steps:
            if result.step == step:
                return result.status
        return None


class LocationCache:
    """Primary location id, resolved once per run."""

    def __init__(self, mutations: CatalogMutations):
        self.mutations = mutations
        self._location_id: Optional[str] = None
        self._resolved = False

    def invalidate(self) -> None:
        self._location_id = None
        self._resolved = False

    async def get(self) -> Optional[str]:
        if self._resolved:
            return self._location_id

        try:
            self._location_id = await self.mutations.primary_location_id()
        except Exception as e:
            logger.warning(f"Could not resolve primary location: {e}")
            return None

        self._resolved = True
        if self._location_id:
            logger.info(f"Using location {self._location_id}")
        else:
            logger.warning("No location found, inventory quantities will not be set")
        return self._location_id


def _failure(step: str, messages: List[str]) -> MutationFailure:
    if any(is_auth_message(m) for m in messages):
        return AuthExpired(step, messages)
    return MutationFailure(step, messages)


class MutationApplier:
    """Applies ResolvedValues to variants through CatalogMutations."""

    def __init__(
        self,
        mutations: CatalogMutations,
        locations: Optional[LocationCache] = None,
        retry_max: int = 3,
        retry_base_delay: float = 1.0,
        dry_run: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.mutations = mutations
        self.locations = locations or LocationCache(mutations)
        self.retry_max = max(1, retry_max)
        self.retry_base_delay = retry_base_delay
        self.dry_run = dry_run
        self._sleep = sleep

    async def _run(
        self,
        step: str,
        call: Callable[[], Awaitable[List[str]]],
        label: str,
    ) -> StepResult:
        """Run one sub-step, retrying throttling and transport errors."""
        attempt = 0
        while True:
            attempt += 1
            try:
                messages = await call()
            except AuthExpired as e:
                return StepResult(step, StepStatus.FAILED, str(e), e)
            except (ThrottledError, httpx.TransportError) as e:
                if attempt < self.retry_max:
                    delay = self.retry_base_delay * (2 ** (attempt - 1))
                    logger.debug(f"{step} for {label} retrying in {delay:.1f}s: {e}")
                    await self._sleep(delay)
                    continue
                error = e if isinstance(e, MutationFailure) else _failure(step, [str(e)])
                return StepResult(step, StepStatus.FAILED, str(error), error)
            except MutationFailure as e:
                return StepResult(step, StepStatus.FAILED, str(e), e)
            except Exception as e:
                error = _failure(step, [str(e)])
                return StepResult(step, StepStatus.FAILED, str(error), error)

            if messages:
                error = _failure(step, messages)
                if is_scope_message(" ".join(messages)):
                    logger.warning(f"{step} skipped for {label}: missing API scope ({error})")
                return StepResult(step, StepStatus.FAILED, str(error), error)

            return StepResult(step, StepStatus.APPLIED)

    async def apply(self, variant: InternalVariant, resolved: ResolvedValues) -> VariantOutcome:
        outcome = VariantOutcome(variant=variant)
        label = variant.label

        if self.dry_run:
            for step in ("price", "tracking", "inventory", "cost"):
                outcome.steps.append(StepResult(step, StepStatus.SKIPPED, "dry run"))
            return outcome

        # 1. Price
        if resolved.price is None:
            outcome.steps.append(StepResult("price", StepStatus.SKIPPED, "no usable price"))
        else:
            outcome.steps.append(
                await self._run(
                    "price",
                    lambda: self.mutations.set_price(variant.product_id, variant.id, resolved.price),
                    label,
                )
            )

        item_id = variant.inventory_item_id

        # 2. Tracking
        if not item_id:
            outcome.steps.append(StepResult("tracking", StepStatus.SKIPPED, "no inventory item"))
        elif variant.tracked:
            outcome.steps.append(StepResult("tracking", StepStatus.SKIPPED, "already tracked"))
        else:
            outcome.steps.append(
                await self._run("tracking", lambda: self.mutations.set_tracked(item_id, True), label)
            )

        # 3. Inventory
        location_id = await self.locations.get()
        if not item_id:
            outcome.steps.append(StepResult("inventory", StepStatus.SKIPPED, "no inventory item"))
        elif not location_id:
            outcome.steps.append(StepResult("inventory", StepStatus.SKIPPED, "no location"))
        else:
            outcome.steps.append(
                await self._run(
                    "inventory",
                    lambda: self.mutations.set_on_hand(item_id, location_id, resolved.inventory_qty),
                    label,
                )
            )

        # 4. Cost
        outcome.steps.append(await self._apply_cost(variant, resolved, label))

        return outcome

    async def _apply_cost(
        self, variant: InternalVariant, resolved: ResolvedValues, label: str
    ) -> StepResult:
        if resolved.cost is None:
            return StepResult("cost", StepStatus.SKIPPED, "no usable cost")

        primary = await self._run(
            "cost", lambda: self.mutations.set_cost(variant.id, resolved.cost), label
        )
        if primary.status == StepStatus.APPLIED:
            return primary
        if isinstance(primary.error, AuthExpired) or not variant.inventory_item_id:
            return primary

        fallback = await self._run(
            "cost",
            lambda: self.mutations.set_item_cost(variant.inventory_item_id, resolved.cost),
            label,
        )
        if fallback.status == StepStatus.APPLIED:
            fallback.detail = "inventory item cost"
            return fallback

        fallback.detail = f"{primary.detail}; fallback: {fallback.detail}"
        return fallback

    async def apply_visibility(self, product: InternalProduct, matched: bool) -> StepResult:
        """Set a product ACTIVE if any variant matched, DRAFT otherwise."""
        target = ProductStatus.ACTIVE if matched else ProductStatus.DRAFT
        if product.status == target:
            return StepResult("status", StepStatus.SKIPPED, f"already {target.value}")
        if self.dry_run:
            return StepResult("status", StepStatus.SKIPPED, "dry run")

        return await self._run(
            "status",
            lambda: self.mutations.set_product_status(product.id, target),
            product.title or product.id,
        )
