"""Schema drift checks: ORM table definitions vs. raw SQL and domain models."""
from dataclasses import fields

from src.mk_common.enums import AccessType, ListingStatus, PurchaseStatus
from src.mk_ledger.domain.models import Fee, Listing, Purchase
from src.mk_ledger.infrastructure import persistence
from src.mk_ledger.infrastructure.db_models import FeeORM, ListingORM, PurchaseORM


def _selected(columns_sql: str) -> set[str]:
    names = set()
    for part in columns_sql.split(","):
        token = part.strip().split(" AS ")[0]
        names.add(token.split(".")[-1])
    return names


def _columns(orm) -> set[str]:
    return {c.name for c in orm.__table__.columns}


class TestListingsTable:
    def test_selected_columns_exist(self) -> None:
        assert _selected(persistence._LISTING_COLUMNS) <= _columns(ListingORM)

    def test_domain_fields_are_columns(self) -> None:
        assert {f.name for f in fields(Listing)} <= _columns(ListingORM)

    def test_defaults_match_enums(self) -> None:
        table = ListingORM.__table__
        assert table.c.status.default.arg == ListingStatus.PENDING.value
        assert table.c.access_type.default.arg == AccessType.LIFETIME.value


class TestPurchasesTable:
    def test_selected_columns_exist(self) -> None:
        selected = _selected(persistence._PURCHASE_COLUMNS) - {"access_type"}
        assert selected <= _columns(PurchaseORM)

    def test_domain_fields_are_columns(self) -> None:
        joined = {"listing_access_type"}
        assert {f.name for f in fields(Purchase)} - joined <= _columns(PurchaseORM)

    def test_default_status(self) -> None:
        assert PurchaseORM.__table__.c.status.default.arg == PurchaseStatus.PENDING.value


class TestFeesTable:
    def test_one_fee_per_purchase(self) -> None:
        assert FeeORM.__table__.c.purchase_id.unique is True

    def test_domain_fields_are_columns(self) -> None:
        assert {f.name for f in fields(Fee)} == _columns(FeeORM)
