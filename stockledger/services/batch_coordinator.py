"""StockLedger — BatchCoordinator: bulk fulfill / delete runs with per-item outcomes and a live progress stream.

- fulfill:              prepare every order against one shared stock snapshot,
                        then commit the prepared plans one at a time.
- delete_orders /
  delete_import_batch /
  delete_purchases:     fixed-size chunks of items run one after another, with
                        the pause between chunks growing while the store
                        keeps rate limiting.

A run never stops early and never rolls back. Every item ends up in the log
as a success or a failure with its reason.
"""
import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import asdict, dataclass, field
from enum import Enum
from uuid import UUID

from stockledger.config import get_settings
from stockledger.core.errors import StockLedgerError, TransientError, ValidationError
from stockledger.core.retry import backoff_delay
from stockledger.models.order import OrderStatus
from stockledger.services.fulfillment_service import FulfillmentPlan, FulfillmentService, StockSnapshot
from stockledger.services.purchase_service import PurchaseDeleteMode, PurchaseService
from stockledger.store.base import Collection, RecordStore

logger = logging.getLogger(__name__)


class BatchOperation(str, Enum):
    FULFILL = "fulfill"
    DELETE_ORDERS = "delete_orders"
    DELETE_IMPORT_BATCH = "delete_import_batch"
    DELETE_PURCHASES = "delete_purchases"


@dataclass
class BatchLogEntry:
    label: str
    success: bool
    error: str | None = None
    code: str | None = None


@dataclass
class BatchProgress:
    """One event of the progress stream. The last event has ``completed`` set."""

    total: int
    current: int = 0
    success_count: int = 0
    fail_count: int = 0
    completed: bool = False
    log: list[BatchLogEntry] = field(default_factory=list)
    stock_shortages: list[dict] = field(default_factory=list)

    def record(self, label: str, error: BaseException | None = None) -> None:
        self.current += 1
        if error is None:
            self.success_count += 1
            self.log.append(BatchLogEntry(label=label, success=True))
        else:
            self.fail_count += 1
            code = getattr(error, "code", "INTERNAL_ERROR")
            self.log.append(BatchLogEntry(label=label, success=False, error=str(error), code=code))

    def snapshot(self) -> "BatchProgress":
        return BatchProgress(
            total=self.total,
            current=self.current,
            success_count=self.success_count,
            fail_count=self.fail_count,
            completed=self.completed,
            log=list(self.log),
            stock_shortages=list(self.stock_shortages),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["log"] = [{k: v for k, v in entry.items() if v is not None} for entry in data["log"]]
        return data


class BatchCoordinator:
    """Runs one batch operation over a list of record ids for a single tenant store."""

    def __init__(
        self,
        store: RecordStore,
        *,
        chunk_size: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.store = store
        self.chunk_size = max(1, chunk_size or settings.DELETE_CHUNK_SIZE)
        self.base_delay = settings.DELETE_BASE_DELAY_SECONDS if base_delay is None else base_delay
        self.max_delay = settings.DELETE_MAX_DELAY_SECONDS if max_delay is None else max_delay
        self._sleep = sleep

    @staticmethod
    def validate_request(operation: BatchOperation, purchase_mode: PurchaseDeleteMode | None) -> BatchOperation:
        operation = BatchOperation(operation)
        if operation is BatchOperation.DELETE_PURCHASES and purchase_mode is None:
            raise ValidationError("delete_purchases needs a mode: 'deduct' or 'keep'")
        return operation

    async def run(
        self,
        operation: BatchOperation,
        item_ids: list[UUID],
        *,
        purchase_mode: PurchaseDeleteMode | None = None,
        acknowledge_negative: bool = False,
    ) -> AsyncIterator[BatchProgress]:
        """Yield a progress event at the start and after every item; the final one is ``completed``."""
        operation = self.validate_request(operation, purchase_mode)

        item_ids = list(dict.fromkeys(item_ids))
        progress = BatchProgress(total=len(item_ids))
        logger.info("Batch %s started: %s items", operation.value, len(item_ids))

        if operation is BatchOperation.FULFILL:
            try:
                progress.stock_shortages = await self.validate_bulk_stock(item_ids)
            except Exception:
                logger.exception("Bulk stock check failed, continuing without shortage report")
            yield progress.snapshot()
            async for event in self._run_fulfill(item_ids, progress):
                yield event
        else:
            yield progress.snapshot()
            action = self._delete_action(operation, purchase_mode, acknowledge_negative)
            async for event in self._run_throttled(item_ids, action, progress):
                yield event

        progress.completed = True
        logger.info(
            "Batch %s finished: %s succeeded, %s failed",
            operation.value, progress.success_count, progress.fail_count,
        )
        yield progress.snapshot()

    async def collect(self, operation: BatchOperation, item_ids: list[UUID], **kwargs) -> BatchProgress:
        """Drain ``run`` and return the final event."""
        final = None
        async for event in self.run(operation, item_ids, **kwargs):
            final = event
        return final

    # ── Fulfillment ──────────────────────────────────────────────

    async def validate_bulk_stock(self, order_ids: list[UUID]) -> list[dict]:
        """Per-SKU shortfall of available stock against all selected pending orders together."""
        required: dict[UUID, int] = defaultdict(int)
        for order_id in order_ids:
            order = await self.store.get(Collection.ORDERS, order_id)
            if order is None or order.status != OrderStatus.PENDING:
                continue
            for line in await FulfillmentService.get_lines(self.store, order.id):
                if not line.is_returned:
                    required[line.sku_id] += line.quantity

        shortages = []
        for sku_id, qty in required.items():
            stock = await self.store.first(Collection.CURRENT_STOCK, {"sku_id": sku_id})
            available = stock.quantity_available if stock else 0
            if available < qty:
                sku = await self.store.get(Collection.SKUS, sku_id)
                shortages.append({
                    "sku_id": str(sku_id),
                    "sku_code": sku.sku_code if sku else None,
                    "required": qty,
                    "available": available,
                    "shortage": qty - available,
                })
        if shortages:
            logger.info("Bulk stock check: %s SKU(s) short across %s orders", len(shortages), len(order_ids))
        return shortages

    async def _label_for(self, order_id: UUID) -> str:
        try:
            order = await self.store.get(Collection.ORDERS, order_id)
        except Exception:
            logger.warning("Could not load order %s for its label", order_id)
            return str(order_id)
        return order.order_number if order else str(order_id)

    async def _run_fulfill(self, order_ids: list[UUID], progress: BatchProgress) -> AsyncIterator[BatchProgress]:
        snapshot = StockSnapshot(self.store)
        prepared: list[FulfillmentPlan] = []

        for order_id in order_ids:
            try:
                prepared.append(await FulfillmentService.prepare_fulfillment(self.store, order_id, snapshot))
            except StockLedgerError as exc:
                label = await self._label_for(order_id)
                logger.warning("Order %s not prepared: %s", label, exc)
                progress.record(label, exc)
                yield progress.snapshot()
            except Exception as exc:
                label = await self._label_for(order_id)
                logger.exception("Unexpected failure preparing order %s", label)
                progress.record(label, exc)
                yield progress.snapshot()

        for plan in prepared:
            label = plan.order.order_number
            try:
                await FulfillmentService.commit_fulfillment(self.store, plan)
            except StockLedgerError as exc:
                logger.warning("Order %s not committed: %s", label, exc)
                progress.record(label, exc)
            except Exception as exc:
                logger.exception("Unexpected failure committing order %s", label)
                progress.record(label, exc)
            else:
                progress.record(label)
            yield progress.snapshot()

    # ── Throttled deletes ────────────────────────────────────────

    def _delete_action(
        self,
        operation: BatchOperation,
        purchase_mode: PurchaseDeleteMode | None,
        acknowledge_negative: bool,
    ) -> Callable[[UUID], Awaitable[object]]:
        if operation is BatchOperation.DELETE_ORDERS:
            return lambda item_id: FulfillmentService.delete_order(self.store, item_id)
        if operation is BatchOperation.DELETE_IMPORT_BATCH:
            return lambda item_id: FulfillmentService.delete_import_batch(
                self.store, item_id,
                purchase_mode=purchase_mode or PurchaseDeleteMode.DEDUCT,
                acknowledge_negative=acknowledge_negative,
            )
        mode = PurchaseDeleteMode(purchase_mode)
        return lambda item_id: PurchaseService.delete_purchase(
            self.store, item_id, mode=mode, acknowledge_negative=acknowledge_negative
        )

    @staticmethod
    async def _attempt(action, item_id: UUID) -> BaseException | None:
        try:
            await action(item_id)
        except StockLedgerError as exc:
            logger.warning("Delete of %s failed: %s", item_id, exc)
            return exc
        except Exception as exc:
            logger.exception("Unexpected failure deleting %s", item_id)
            return exc
        return None

    def chunk_delay(self, consecutive_rate_limited: int) -> float:
        """Pause before the next chunk; doubles per consecutive rate-limited chunk."""
        if consecutive_rate_limited <= 0:
            return self.base_delay
        return backoff_delay(consecutive_rate_limited, self.base_delay, self.max_delay)

    async def _run_throttled(self, item_ids: list[UUID], action, progress: BatchProgress) -> AsyncIterator[BatchProgress]:
        consecutive = 0
        chunks = [item_ids[i:i + self.chunk_size] for i in range(0, len(item_ids), self.chunk_size)]
        for index, chunk in enumerate(chunks):
            # Items run one at a time: two deletes on one SKU would race on its CurrentStock version.
            errors = []
            for item_id in chunk:
                error = await self._attempt(action, item_id)
                errors.append(error)
                progress.record(str(item_id), error)
                yield progress.snapshot()

            if any(isinstance(e, TransientError) for e in errors):
                consecutive += 1
            else:
                consecutive = 0
            if index < len(chunks) - 1:
                delay = self.chunk_delay(consecutive)
                if consecutive:
                    logger.warning("Rate limited in %s consecutive chunk(s), pausing %.2fs", consecutive, delay)
                await self._sleep(delay)
