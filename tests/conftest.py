"""Shared fixtures: small program models covering each rule."""

from __future__ import annotations

import pytest

from accountguard.analysis.models import (
    AccountKind,
    AccountRequirement,
    Arithmetic,
    FieldSpec,
    HasOne,
    Instruction,
    Invoke,
    Mutate,
    OwnerCheck,
    ProgramModel,
    RawExpr,
    SeedsBump,
    Transfer,
)
from accountguard.config import EngineOptions
from accountguard.rules.engine import RuleEngine

SIGNER = AccountKind.SIGNER
TYPED = AccountKind.TYPED_DATA
PROGRAM = AccountKind.TYPED_PROGRAM
RAW = AccountKind.RAW
UNCHECKED = AccountKind.UNCHECKED

PROFILE_SEEDS = SeedsBump(seeds=('b"profile"', "user.key().as_ref()"))


def account(name, kind=TYPED, **kwargs) -> AccountRequirement:
    kwargs.setdefault("constraints", ())
    kwargs["constraints"] = tuple(kwargs["constraints"])
    kwargs["fields"] = tuple(kwargs.get("fields", ()))
    return AccountRequirement(name=name, kind=kind, **kwargs)


def instruction(name, accounts, effects=()) -> Instruction:
    return Instruction(name=name, accounts=tuple(accounts), effects=tuple(effects))


def program(*instructions, name="test_program") -> ProgramModel:
    return ProgramModel(name=name, instructions=tuple(instructions))


def evaluate(prog: ProgramModel, ix_name: str, options: EngineOptions | None = None):
    engine = RuleEngine(prog, options)
    return list(engine.evaluate(prog.get_instruction(ix_name)))


# ---------------------------------------------------------------------------
# Scenario instructions
# ---------------------------------------------------------------------------

def transfer_tokens(with_mint_check: bool = False) -> Instruction:
    to_constraints = []
    if with_mint_check:
        to_constraints.append(RawExpr("from_account.mint == to_account.mint"))
    return instruction(
        "transfer_tokens",
        [
            account("authority", SIGNER),
            account("from_account", TYPED, is_mut=True, constraints=[HasOne("authority")]),
            account("to_account", TYPED, is_mut=True, constraints=to_constraints),
            account("token_program", PROGRAM),
        ],
        [Transfer("from_account", "to_account"), Invoke("token_program")],
    )


def update_greeting(with_binding: bool = False) -> Instruction:
    user_constraints = [HasOne("greeting_account")] if with_binding else []
    return instruction(
        "update_greeting",
        [
            account("greeting_account", TYPED, is_mut=True),
            account("user", SIGNER, constraints=user_constraints),
        ],
        [Mutate("greeting_account", "message")],
    )


def initialize_vault(checked: bool = False) -> Instruction:
    return instruction(
        "initialize_vault",
        [
            account("user", SIGNER, is_mut=True),
            account(
                "vault", TYPED, is_mut=True, is_init=True,
                space_expr="8 + Vault::INIT_SPACE",
                constraints=[SeedsBump(seeds=('b"vault"', "user.key().as_ref()"))],
                fields=[FieldSpec("balance", "u64"), FieldSpec("bump", "u8")],
            ),
            account("system_program", PROGRAM),
        ],
        [Mutate("vault", "bump"), Arithmetic("+", checked=checked, target="vault.balance")],
    )


def profile_init(name: str, guarded: bool = False) -> Instruction:
    constraints = [PROFILE_SEEDS]
    if guarded:
        constraints.append(RawExpr("!profile.is_initialized"))
    return instruction(
        name,
        [
            account("user", SIGNER, is_mut=True),
            account(
                "profile", TYPED, is_mut=True, is_init=True,
                space_expr="8 + Profile::INIT_SPACE",
                constraints=constraints,
                fields=[FieldSpec("bump", "u8")],
            ),
            account("system_program", PROGRAM),
        ],
        [Mutate("profile", "bump")],
    )


def call_external(documented: bool = False) -> Instruction:
    return instruction(
        "call_external",
        [
            account("authority", SIGNER),
            account(
                "external_program", UNCHECKED,
                constraints=[OwnerCheck("BPFLoaderUpgradeab1e11111111111111111111111")],
                documented=documented,
            ),
        ],
        [Invoke("external_program")],
    )


def create_escrow() -> Instruction:
    return instruction(
        "create_escrow",
        [
            account("maker", SIGNER, is_mut=True),
            account(
                "escrow", TYPED, is_mut=True, is_init=True, space=200,
                fields=[FieldSpec("maker", "Pubkey"), FieldSpec("memo", "String")],
            ),
            account("system_program", PROGRAM),
        ],
        [Mutate("escrow", "maker")],
    )


@pytest.fixture
def vulnerable_program() -> ProgramModel:
    """A program with findings from every rule."""
    return program(
        transfer_tokens(),
        update_greeting(),
        initialize_vault(),
        profile_init("create_profile"),
        profile_init("reset_profile"),
        call_external(),
        create_escrow(),
        name="vulnerable",
    )
