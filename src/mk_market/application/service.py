"""MarketActionService — submit a marketplace transaction and record it.

Write order per action:
  1. Preconditions on the referenced listing (buy/subscribe/edit/cancel).
  2. Prepare the intent; NoExchangeRateError / validation errors persist nothing.
  3. Submit. A SubmissionError records list/buy/subscribe as 'failed' and re-raises.
  4. Record the tx hash as 'pending'; optionally await the ConfirmationTracker.
"""
import logging
import uuid
from typing import Any

from src.mk_chain.application.submitter import TransactionSubmitter
from src.mk_chain.domain.datum import SubscribeDatum
from src.mk_chain.domain.models import TransactionIntent
from src.mk_common.database import SessionFactory, unit_of_work
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import (
    AccessType,
    ListingStatus,
    MarketAction,
    PurchaseStatus,
    RecordKind,
)
from src.mk_common.errors import (
    AccessTypeMismatchError,
    ListingNotEditableError,
    ListingNotFoundError,
    ListingNotPurchasableError,
    SubmissionError,
    UnknownActionError,
)
from src.mk_ledger.domain.models import Listing, Purchase
from src.mk_ledger.domain.repository import LedgerStoreProtocol
from src.mk_market.domain.models import ActionResult
from src.mk_reconcile.application.tracker import ConfirmationTracker

logger = logging.getLogger(__name__)

_EDITABLE = (ListingStatus.CONFIRMED.value, ListingStatus.ACTIVE.value)


class MarketActionService:
    def __init__(
        self,
        submitter: TransactionSubmitter,
        ledger: LedgerStoreProtocol,
        session_factory: SessionFactory,
        tracker: ConfirmationTracker | None = None,
    ) -> None:
        self._submitter = submitter
        self._ledger = ledger
        self._session_factory = session_factory
        self._tracker = tracker

    async def execute(
        self, action: str, params: dict[str, Any], await_confirmation: bool = False
    ) -> ActionResult:
        try:
            market_action = MarketAction(action)
        except ValueError:
            raise UnknownActionError(action) from None

        if market_action == MarketAction.LIST:
            result = await self._list(params)
        elif market_action in (MarketAction.EDIT, MarketAction.CANCEL):
            result = await self._change_listing(market_action, params)
        else:
            result = await self._purchase(market_action, params)

        if await_confirmation and self._tracker is not None:
            handle = await self._tracker.track(result.tx_hash, result.kind, result.record_id)
            result.track_state = handle.state
        return result

    async def _load_listing(self, listing_id: str) -> Listing:
        async with unit_of_work(self._session_factory) as db:
            record = await self._ledger.get_record(RecordKind.LISTING, listing_id, db)
        if not isinstance(record, Listing):
            raise ListingNotFoundError(listing_id)
        return record

    # --- list ---------------------------------------------------------------

    async def _list(self, params: dict[str, Any]) -> ActionResult:
        datum_params = {"listing_id": str(uuid.uuid4()), **params}
        seller_id = datum_params.pop("seller_id", None)
        intent = await self._submitter.prepare(MarketAction.LIST.value, datum_params)
        datum = intent.datum
        listing = Listing(
            id=str(datum.listing_id),
            seller_id=str(seller_id or datum.seller),
            seller_address=datum.seller,
            price=datum.price,
            full_price=getattr(datum, "full_price", None),
            access_type=getattr(datum, "access_type", AccessType.LIFETIME.value),
            pending_action=MarketAction.LIST.value,
            metadata=datum.metadata.model_dump(mode="json"),
        )
        tx_hash = await self._submit_or_record_failure(intent, listing)
        listing.tx_hash = tx_hash
        listing.submitted_at = utc_now()
        async with unit_of_work(self._session_factory) as db:
            await self._ledger.create_listing(listing, db)
        logger.info("listing %s submitted as %s", listing.id, tx_hash)
        return ActionResult("list", RecordKind.LISTING, listing.id, tx_hash, listing.status)

    # --- edit / cancel ------------------------------------------------------

    async def _change_listing(self, action: MarketAction, params: dict[str, Any]) -> ActionResult:
        listing = await self._load_listing(str(params["listing_id"]))
        if listing.status not in _EDITABLE:
            raise ListingNotEditableError(listing.id, listing.status)

        datum_params: dict[str, Any] = {
            "listing_id": listing.id,
            "seller": listing.seller_address,
            "price": params.get("price", listing.price),
            "metadata": params.get("metadata", listing.metadata),
        }
        if action == MarketAction.EDIT:
            datum_params["full_price"] = params.get("full_price", listing.full_price)
        intent = await self._submitter.prepare(action.value, datum_params)

        # Seller-side rejection leaves the live listing as it was
        tx_hash = await self._submitter.submit_intent(intent)
        listing.pending_action = action.value
        listing.tx_hash = tx_hash
        listing.price = intent.datum.price
        listing.full_price = getattr(intent.datum, "full_price", listing.full_price)
        listing.submitted_at = utc_now()
        async with unit_of_work(self._session_factory) as db:
            attached = await self._ledger.attach_listing_transaction(listing, _EDITABLE, db)
        if not attached:
            # Someone else moved the listing meanwhile; the chain tx still stands
            logger.warning(
                "listing %s changed concurrently; %s tx %s left for reconciliation",
                listing.id, action.value, tx_hash,
            )
        return ActionResult(
            action.value, RecordKind.LISTING, listing.id, tx_hash, ListingStatus.PENDING.value
        )

    # --- buy / subscribe ----------------------------------------------------

    async def _purchase(self, action: MarketAction, params: dict[str, Any]) -> ActionResult:
        listing = await self._load_listing(str(params["listing_id"]))
        if not listing.is_purchasable:
            raise ListingNotPurchasableError(listing.id, listing.status)
        if (
            action == MarketAction.SUBSCRIBE
            and listing.access_type != AccessType.SUBSCRIPTION.value
        ):
            raise AccessTypeMismatchError(listing.id, listing.access_type)

        datum_params: dict[str, Any] = {
            "listing_id": listing.id,
            "seller": listing.seller_address,
            # Priced by the listing in the requested currency; never by the caller
            "price": listing.price,
            "currency": params.get("currency", "ADA"),
            "metadata": listing.metadata,
            "buyer": params.get("buyer"),
        }
        if action == MarketAction.SUBSCRIBE:
            datum_params["subscription"] = {"duration_days": params.get("duration_days", 30)}
        intent = await self._submitter.prepare(action.value, datum_params)

        purchase = Purchase(
            id=str(uuid.uuid4()),
            buyer_id=str(params.get("buyer_id", params.get("buyer"))),
            listing_id=listing.id,
            amount=intent.payment_amount if intent.payment_amount is not None else listing.price,
            currency=intent.requested_currency or "ADA",
            subscription_days=(
                intent.datum.subscription.duration_days
                if isinstance(intent.datum, SubscribeDatum)
                else None
            ),
            listing_access_type=listing.access_type,
        )
        tx_hash = await self._submit_or_record_failure(intent, purchase)
        purchase.tx_hash = tx_hash
        purchase.submitted_at = utc_now()
        async with unit_of_work(self._session_factory) as db:
            await self._ledger.create_purchase(purchase, db)
        logger.info("purchase %s of listing %s submitted as %s", purchase.id, listing.id, tx_hash)
        return ActionResult(action.value, RecordKind.PURCHASE, purchase.id, tx_hash, purchase.status)

    async def _submit_or_record_failure(
        self, intent: TransactionIntent, record: Listing | Purchase
    ) -> str:
        try:
            return await self._submitter.submit_intent(intent)
        except SubmissionError as exc:
            record.status = (
                ListingStatus.FAILED.value if isinstance(record, Listing)
                else PurchaseStatus.FAILED.value
            )
            record.failure_reason = exc.message
            record.submitted_at = utc_now()
            async with unit_of_work(self._session_factory) as db:
                if isinstance(record, Listing):
                    await self._ledger.create_listing(record, db)
                else:
                    await self._ledger.create_purchase(record, db)
            logger.warning("%s %s recorded as failed: %s", record.kind.value, record.id, exc.message)
            raise
