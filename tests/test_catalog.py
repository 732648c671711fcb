import pytest
from sqlalchemy.exc import IntegrityError

from stock_service import catalog, ledger, models
from stock_service.exceptions import DuplicateSku, InvalidInput, NotFound
from stock_service.models import MovementType, StockStatus


@pytest.mark.parametrize(
    "balance,min_stock,expected",
    [
        (0, 5, StockStatus.OUT),
        (0, 0, StockStatus.OUT),
        (1, 5, StockStatus.ATTN),
        (4, 5, StockStatus.ATTN),
        (5, 5, StockStatus.OK),
        (50, 5, StockStatus.OK),
        (1, 0, StockStatus.OK),
    ],
)
def test_status_for(balance, min_stock, expected):
    assert catalog.status_for(balance, min_stock) is expected


def test_status_follows_movements(db):
    p = catalog.create_product(db, name="Produto ABC", sku="ABC-1", min_stock=5, initial_stock=10)
    assert (p["balance"], p["status"]) == (10, StockStatus.OK)

    ledger.record_movement(db, p["id"], MovementType.OUT, 7)
    view = catalog.get_product(db, p["id"])
    assert (view["balance"], view["status"]) == (3, StockStatus.ATTN)

    ledger.record_movement(db, p["id"], MovementType.OUT, 3)
    view = catalog.get_product(db, p["id"])
    assert (view["balance"], view["status"]) == (0, StockStatus.OUT)


def test_create_with_initial_stock_writes_in_movement(db):
    p = catalog.create_product(db, name="Cola", sku="COLA-90", initial_stock=12)
    movements = db.query(models.StockMovement).filter(models.StockMovement.product_id == p["id"]).all()
    assert len(movements) == 1
    assert movements[0].type is MovementType.IN
    assert movements[0].quantity == 12
    assert movements[0].note == catalog.INITIAL_STOCK_NOTE


def test_create_without_initial_stock_has_no_movement(db):
    p = catalog.create_product(db, name="Cola", sku="COLA-90")
    assert p["balance"] == 0
    assert p["status"] is StockStatus.OUT
    assert db.query(models.StockMovement).count() == 0


def test_duplicate_sku_is_exact_match(db):
    catalog.create_product(db, name="Caneta", sku="ABC-1")
    with pytest.raises(DuplicateSku):
        catalog.create_product(db, name="Outra caneta", sku="ABC-1", initial_stock=3)
    # differently cased SKUs are distinct
    catalog.create_product(db, name="Caneta minúscula", sku="abc-1")
    assert db.query(models.Product).count() == 2
    assert db.query(models.StockMovement).count() == 0



def test_create_rolls_back_product_when_opening_movement_fails(db, monkeypatch):
    def failing_append(*args, **kwargs):
        raise RuntimeError("storage failure")

    monkeypatch.setattr(ledger, "append_movement", failing_append)
    with pytest.raises(RuntimeError):
        catalog.create_product(db, name="Cola", sku="COLA-90", initial_stock=12)
    monkeypatch.undo()

    assert db.query(models.Product).count() == 0
    assert db.query(models.StockMovement).count() == 0


def test_unique_index_violation_is_reported_as_duplicate_sku(db, monkeypatch):
    catalog.create_product(db, name="Caneta", sku="ABC-1")
    # skip the lookup so the database constraint has to catch it
    monkeypatch.setattr(catalog, "_sku_owner", lambda db, sku: None)
    with pytest.raises(DuplicateSku):
        catalog.create_product(db, name="Outra caneta", sku="ABC-1")
    assert db.query(models.Product).count() == 1


def test_other_integrity_errors_are_not_reported_as_duplicate_sku(db, monkeypatch):
    p = catalog.create_product(db, name="Caneta", sku="ABC-1", min_stock=3)
    monkeypatch.setattr(catalog, "_require_count", lambda value, field: value)

    with pytest.raises(IntegrityError):
        catalog.create_product(db, name="Lápis", sku="LAP-1", min_stock=-1)
    with pytest.raises(IntegrityError):
        catalog.update_product(db, p["id"], {"min_stock": -1})

    monkeypatch.undo()
    assert catalog.get_product(db, p["id"])["min_stock"] == 3
    assert db.query(models.Product).count() == 1

@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": "", "sku": "X"},
        {"name": "   ", "sku": "X"},
        {"name": "Produto", "sku": ""},
        {"name": "Produto", "sku": "X", "min_stock": -1},
        {"name": "Produto", "sku": "X", "initial_stock": -2},
        {"name": "Produto", "sku": "X", "min_stock": 2.5},
    ],
)
def test_create_rejects_invalid_input(db, kwargs):
    with pytest.raises(InvalidInput):
        catalog.create_product(db, **kwargs)
    assert db.query(models.Product).count() == 0


def test_update_partial_fields(db):
    p = catalog.create_product(db, name="Caneta", sku="CAN-1", min_stock=5, initial_stock=3)
    updated = catalog.update_product(db, p["id"], {"min_stock": 2, "description": "Tinta azul"})
    assert updated["name"] == "Caneta"
    assert updated["description"] == "Tinta azul"
    assert updated["status"] is StockStatus.OK


def test_update_sku_conflicts_only_with_other_products(db):
    a = catalog.create_product(db, name="A", sku="SKU-A")
    catalog.create_product(db, name="B", sku="SKU-B")

    assert catalog.update_product(db, a["id"], {"sku": "SKU-A"})["sku"] == "SKU-A"
    with pytest.raises(DuplicateSku):
        catalog.update_product(db, a["id"], {"sku": "SKU-B"})
    assert catalog.get_product(db, a["id"])["sku"] == "SKU-A"


def test_update_unknown_product_and_fields(db):
    with pytest.raises(NotFound):
        catalog.update_product(db, 404, {"name": "x"})
    p = catalog.create_product(db, name="A", sku="SKU-A")
    with pytest.raises(InvalidInput):
        catalog.update_product(db, p["id"], {"balance": 100})


def test_delete_removes_movements(db):
    p = catalog.create_product(db, name="A", sku="SKU-A", initial_stock=4)
    ledger.record_movement(db, p["id"], MovementType.OUT, 1)
    other = catalog.create_product(db, name="B", sku="SKU-B", initial_stock=2)

    catalog.delete_product(db, p["id"])

    with pytest.raises(NotFound):
        catalog.get_product(db, p["id"])
    remaining = db.query(models.StockMovement).all()
    assert [m.product_id for m in remaining] == [other["id"]]


def test_delete_unknown_product(db):
    with pytest.raises(NotFound):
        catalog.delete_product(db, 1)


def test_delete_is_all_or_nothing(db, monkeypatch):
    p = catalog.create_product(db, name="A", sku="SKU-A", initial_stock=4)

    def broken_delete(instance):
        raise RuntimeError("storage failure")

    monkeypatch.setattr(db, "delete", broken_delete)
    with pytest.raises(RuntimeError):
        catalog.delete_product(db, p["id"])
    monkeypatch.undo()

    view = catalog.get_product(db, p["id"])
    assert view["balance"] == 4
    assert db.query(models.StockMovement).count() == 1


def _seed_listing(db):
    catalog.create_product(db, name="Abacate", sku="FRU-1", min_stock=2, initial_stock=5)
    catalog.create_product(db, name="Caneta", sku="ABC-1", min_stock=5, initial_stock=3)
    catalog.create_product(db, name="Ábaco", sku="BRQ-7", min_stock=1)
    catalog.create_product(db, name="Borracha", sku="BOR-2", min_stock=10, initial_stock=3)


def test_search_matches_name_or_sku_ignoring_case_and_accents(db):
    _seed_listing(db)
    items, total = catalog.list_products(db, search="ABC")
    assert [i["sku"] for i in items] == ["ABC-1"]

    items, total = catalog.list_products(db, search="ABA")
    assert total == 2
    assert {i["name"] for i in items} == {"Abacate", "Ábaco"}

    items, total = catalog.list_products(db, search="fru")
    assert [i["name"] for i in items] == ["Abacate"]

    items, total = catalog.list_products(db, search="abaco")
    assert [i["name"] for i in items] == ["Ábaco"]


def test_status_filter_runs_before_paging(db):
    _seed_listing(db)
    items, total = catalog.list_products(db, statuses=["ATTN"], page_size=1)
    assert total == 2
    assert len(items) == 1
    assert items[0]["status"] is StockStatus.ATTN

    items, total = catalog.list_products(db, statuses=["OK", "OUT"])
    assert {i["sku"] for i in items} == {"FRU-1", "BRQ-7"}

    with pytest.raises(InvalidInput):
        catalog.list_products(db, statuses=["LOW"])


def test_sort_by_derived_balance_with_id_tie_break(db):
    _seed_listing(db)
    items, _ = catalog.list_products(db, sort_by="balance", sort_dir="desc")
    assert [i["balance"] for i in items] == [5, 3, 3, 0]
    # equal balances keep creation order in both directions
    assert [i["sku"] for i in items[1:3]] == ["ABC-1", "BOR-2"]

    items, _ = catalog.list_products(db, sort_by="balance", sort_dir="asc")
    assert [i["sku"] for i in items] == ["BRQ-7", "ABC-1", "BOR-2", "FRU-1"]


def test_sort_by_name_and_sku(db):
    _seed_listing(db)
    items, _ = catalog.list_products(db, sort_by="name")
    assert [i["name"] for i in items] == ["Abacate", "Ábaco", "Borracha", "Caneta"]

    items, _ = catalog.list_products(db, sort_by="sku", sort_dir="desc")
    assert [i["sku"] for i in items] == ["FRU-1", "BRQ-7", "BOR-2", "ABC-1"]


def test_list_rejects_unknown_sort(db):
    with pytest.raises(InvalidInput):
        catalog.list_products(db, sort_by="price")
    with pytest.raises(InvalidInput):
        catalog.list_products(db, sort_dir="up")
