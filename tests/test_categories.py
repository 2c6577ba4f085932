from __future__ import annotations

import pytest
from wallet_ledger import Ledger
from wallet_ledger.categories import DEFAULT_CATEGORIES, normalize_name, validate_name
from wallet_ledger.errors import NotFoundError, PermissionDeniedError, ValidationError
from wallet_ledger.models import CategoryAffinity

PHONE = "+55 11 91234-5678"
OTHER = "+55 21 98888-7777"


def test_normalize_name_trims_and_collapses_spaces():
    assert normalize_name("  Pet   Food ") == "Pet Food"


@pytest.mark.parametrize(
    ("name", "ok"),
    [
        ("Food & Drinks", True),
        ("Café/Bar", True),
        ("Kids - School", True),
        ("", False),
        ("   ", False),
        ("bad_name", False),
        ("Tips!", False),
        ("x" * 65, False),
    ],
)
def test_validate_name(name: str, ok: bool):
    result = validate_name(name)
    assert result.ok is ok
    assert (result.reason is None) is ok


def test_defaults_are_listed_for_everyone(ledger: Ledger):
    cats = ledger.list_categories()
    assert len(cats) == len(DEFAULT_CATEGORIES) == 13
    assert all(c.is_default and c.user_id is None for c in cats)

    inflow = ledger.list_categories(affinity="inflow")
    assert {c.name for c in inflow} == {"Salary", "Freelance", "Investments", "Sales", "Other"}
    assert len(ledger.list_categories(affinity="outflow")) == 8


def test_unknown_phone_sees_only_defaults(ledger: Ledger):
    assert len(ledger.list_categories("+55 31 90000-0000")) == 13


def test_create_and_list_custom_category(ledger: Ledger):
    pets = ledger.create_category(PHONE, name="  Pets ", color="#ABCDEF", description="Vet")
    assert (pets.name, pets.color, pets.is_default) == ("Pets", "#abcdef", False)
    assert pets.direction_affinity is CategoryAffinity.OUTFLOW

    mine = ledger.list_categories(PHONE)
    assert len(mine) == 14
    assert mine[-1].id == pets.id
    # Not visible to other users.
    ledger.register_identity(OTHER)
    assert pets.id not in {c.id for c in ledger.list_categories(OTHER)}


def test_both_affinity_matches_any_direction(ledger: Ledger):
    gift = ledger.create_category(PHONE, name="Gifts", direction_affinity="both")
    assert gift.id in {c.id for c in ledger.list_categories(PHONE, affinity="inflow")}
    assert gift.id in {c.id for c in ledger.list_categories(PHONE, affinity="outflow")}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": "bad_name"},
        {"name": "Pets", "color": "red"},
        {"name": "Pets", "direction_affinity": "sideways"},
    ],
)
def test_create_category_validation(ledger: Ledger, kwargs):
    with pytest.raises(ValidationError):
        ledger.create_category(PHONE, **kwargs)


def test_duplicate_names_are_rejected_case_insensitively(ledger: Ledger):
    ledger.create_category(PHONE, name="Pets")
    with pytest.raises(ValidationError):
        ledger.create_category(PHONE, name="PETS")
    # Another user may reuse the name.
    assert ledger.create_category(OTHER, name="Pets").name == "Pets"


def test_update_and_delete_own_category(ledger: Ledger):
    pets = ledger.create_category(PHONE, name="Pets")
    ledger.create_category(PHONE, name="Garden")

    renamed = ledger.update_category(PHONE, pets.id, name="Pet Care", color="#112233")
    assert (renamed.name, renamed.color) == ("Pet Care", "#112233")
    with pytest.raises(ValidationError):
        ledger.update_category(PHONE, pets.id, name="garden")

    ledger.delete_category(PHONE, pets.id)
    assert pets.id not in {c.id for c in ledger.list_categories(PHONE)}
    with pytest.raises(NotFoundError):
        ledger.delete_category(PHONE, pets.id)


def test_defaults_and_foreign_categories_are_protected(ledger: Ledger):
    ledger.register_identity(PHONE)
    food = next(c for c in ledger.list_categories() if c.name == "Food")
    with pytest.raises(PermissionDeniedError):
        ledger.update_category(PHONE, food.id, name="Meals")
    with pytest.raises(PermissionDeniedError):
        ledger.delete_category(PHONE, food.id)

    theirs = ledger.create_category(OTHER, name="Boat")
    with pytest.raises(PermissionDeniedError):
        ledger.delete_category(PHONE, theirs.id)
