"""Versioned datum payloads attached to marketplace transactions.

A tagged union keyed by ``action``; listing metadata is itself tagged by ``type``.
Field names go on chain in camelCase (listingId, fullPrice).
"""
from decimal import Decimal
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from src.mk_common.errors import DatumValidationError, UnknownActionError
from src.mk_common.enums import MarketAction

DATUM_VERSION = 1


class _ChainModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


# --- Listing metadata -------------------------------------------------------

class AgentMetadata(_ChainModel):
    type: Literal["agent"]
    name: str = Field(min_length=1)
    version: str = "1.0.0"
    description: str | None = None
    abilities: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    ipfs_hash: str | None = None


class ModelMetadata(_ChainModel):
    type: Literal["model"]
    name: str = Field(min_length=1)
    version: str = "1.0.0"
    description: str | None = None
    model_type: str | None = None
    supported_tasks: list[str] = Field(default_factory=list)
    api_endpoint: str | None = None
    ipfs_hash: str | None = None


ListingMetadata = Annotated[Union[AgentMetadata, ModelMetadata], Field(discriminator="type")]


class SubscriptionTerms(_ChainModel):
    duration_days: int = Field(gt=0)


# --- Datum variants ---------------------------------------------------------

class _DatumBase(_ChainModel):
    version: Literal[1] = DATUM_VERSION
    listing_id: UUID
    seller: str = Field(min_length=1)
    price: Decimal = Field(gt=0)
    metadata: ListingMetadata


class ListDatum(_DatumBase):
    action: Literal["list"]
    full_price: Decimal | None = Field(default=None, gt=0)
    access_type: Literal["lifetime", "subscription"] = "lifetime"


class EditDatum(_DatumBase):
    action: Literal["edit"]
    full_price: Decimal | None = Field(default=None, gt=0)


class CancelDatum(_DatumBase):
    action: Literal["cancel"]


class BuyDatum(_DatumBase):
    action: Literal["buy"]
    buyer: str = Field(min_length=1)


class SubscribeDatum(_DatumBase):
    action: Literal["subscribe"]
    buyer: str = Field(min_length=1)
    subscription: SubscriptionTerms


MarketDatum = Annotated[
    Union[ListDatum, EditDatum, CancelDatum, BuyDatum, SubscribeDatum],
    Field(discriminator="action"),
]

_DATUM_ADAPTER: TypeAdapter[Any] = TypeAdapter(MarketDatum)


def build_datum(action: str, params: dict[str, Any]) -> MarketDatum:
    """Validate params into the datum variant for action.

    Raises UnknownActionError for an unsupported action and DatumValidationError
    when a required field is missing or malformed.
    """
    try:
        MarketAction(action)
    except ValueError:
        raise UnknownActionError(action) from None
    try:
        return _DATUM_ADAPTER.validate_python({**params, "action": action})
    except ValidationError as exc:
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise DatumValidationError(action, detail) from exc


def datum_to_payload(datum: MarketDatum) -> dict[str, Any]:
    """JSON-safe on-chain representation (camelCase keys, Decimals as strings)."""
    return datum.model_dump(mode="json", by_alias=True, exclude_none=True)
