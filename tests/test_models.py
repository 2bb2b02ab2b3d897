"""Tests for the program model types."""

import pytest

from accountguard.analysis.models import (
    FieldSpec,
    Mutate,
    RawExpr,
    SeedsBump,
    Transfer,
    effect_slots,
    seed_reference,
)
from accountguard.errors import ModelError

from conftest import initialize_vault, program


@pytest.mark.parametrize("seed,expected", [
    ('b"vault"', None),
    ("'config'", None),
    ("user.key().as_ref()", "user"),
    ("user.key()", "user"),
    ("authority", "authority"),
    ("&[1, 2]", None),
])
def test_seed_reference(seed, expected):
    assert seed_reference(seed) == expected


def test_seed_slot_references():
    seeds = SeedsBump(seeds=('b"pool"', "mint.key().as_ref()", "owner"), bump="pool.bump")
    assert seeds.slot_references() == ("mint", "owner", "pool")


def test_raw_expr_references():
    expr = RawExpr("pool.mint == mint.key() && pool.amount > 0")
    assert expr.dotted_references() == (("pool", "mint"), ("mint", "key"), ("pool", "amount"))


@pytest.mark.parametrize("type_name,variable", [
    ("String", True),
    ("Vec<u8>", True),
    ("bytes", True),
    ("u64", False),
    ("Pubkey", False),
])
def test_field_is_variable_length(type_name, variable):
    assert FieldSpec("f", type_name).is_variable_length == variable


def test_effect_slots():
    assert effect_slots(Transfer("a", "b")) == ("a", "b")
    assert effect_slots(Mutate("a")) == ("a",)


def test_program_lookup_and_summary():
    prog = program(initialize_vault(), name="vault")

    assert prog.get_instruction("initialize_vault").get_account("vault").has_capacity
    assert prog.get_instruction("missing") is None
    assert "initialize_vault (3 accounts, 2 effects)" in prog.summary()


def test_model_error_location():
    error = ModelError("cites unknown slot", "deposit", "vault")

    assert str(error) == "deposit.vault: cites unknown slot"
    assert error.detail == "cites unknown slot"
    assert str(ModelError("bad", "deposit")) == "deposit: bad"
