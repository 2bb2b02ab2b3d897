"""
Data models for the Program Model.

These models represent the instructions of an Anchor-style Solana program,
the accounts each instruction declares, the constraints attached to those
accounts, and the abstracted operations the instruction body performs.
They are produced by a Model Extractor and are immutable once built.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union
from enum import Enum


# `vault.owner`, `user.key()`
_DOTTED_REF = re.compile(r"\b([A-Za-z_]\w*)\s*\.\s*([A-Za-z_]\w*)")
_BARE_IDENT = re.compile(r"^[A-Za-z_]\w*$")
_QUOTED = re.compile(r"""^b?(["']).*\1$""")

VARIABLE_LENGTH_TYPES = ("string", "vec", "bytes", "str")


class AccountKind(Enum):
    """How an account slot is declared."""
    RAW = "raw"                      # AccountInfo<'info>
    TYPED_DATA = "typed_data"        # Account<'info, T>
    SIGNER = "signer"                # Signer<'info>
    TYPED_PROGRAM = "typed_program"  # Program<'info, T>
    UNCHECKED = "unchecked"          # UncheckedAccount<'info>


@dataclass(frozen=True)
class FieldSpec:
    """A stored field of an account's data type."""
    name: str
    type_name: str
    max_len: Optional[int] = None  # #[max_len(..)] if enforced

    @property
    def is_variable_length(self) -> bool:
        lowered = self.type_name.lower()
        return any(lowered.startswith(t) for t in VARIABLE_LENGTH_TYPES)

    @property
    def is_pubkey(self) -> bool:
        return self.type_name.lower() in ("pubkey", "publickey")


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SeedsBump:
    """`seeds = [...], bump` or `bump = stored.bump`."""
    seeds: Tuple[str, ...]
    bump: Optional[str] = None  # None: canonical bump recomputed

    def slot_references(self) -> Tuple[str, ...]:
        """Identifiers the seeds (and stored bump) read from, in order."""
        refs = []
        for seed in self.seeds:
            ref = seed_reference(seed)
            if ref:
                refs.append(ref)
        if self.bump:
            ref = seed_reference(self.bump)
            if ref:
                refs.append(ref)
        return tuple(refs)


@dataclass(frozen=True)
class HasOne:
    """`has_one = target`: the account stores a field equal to target's key."""
    target: str


@dataclass(frozen=True)
class OwnerCheck:
    """`owner = program`: the account must be owned by the given program."""
    program: str


@dataclass(frozen=True)
class Close:
    """`close = refund_to`: lamports go to refund_to when the account closes."""
    refund_to: str


@dataclass(frozen=True)
class RawExpr:
    """`constraint = <predicate>`: a free-form boolean check."""
    predicate: str

    def dotted_references(self) -> Tuple[Tuple[str, str], ...]:
        """(base, attribute) pairs such as ('vault', 'owner')."""
        return tuple(
            (m.group(1), m.group(2)) for m in _DOTTED_REF.finditer(self.predicate)
        )


Constraint = Union[SeedsBump, HasOne, OwnerCheck, Close, RawExpr]


def seed_reference(seed: str) -> Optional[str]:
    """
    Return the identifier a seed expression reads from.

    `b"vault"` and `"vault"` are constants and return None. `user.key()`
    and `user.key().as_ref()` return 'user'; a bare `user` returns 'user'.
    """
    text = seed.strip()
    if not text or _QUOTED.match(text):
        return None
    match = _DOTTED_REF.match(text)
    if match:
        return match.group(1)
    if _BARE_IDENT.match(text):
        return text
    return None


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Mutate:
    """A write to state stored in slot (optionally a named field)."""
    slot: str
    field: Optional[str] = None


@dataclass(frozen=True)
class Transfer:
    """Value moves from from_slot to to_slot."""
    from_slot: str
    to_slot: str


@dataclass(frozen=True)
class CloseAccount:
    slot: str


@dataclass(frozen=True)
class Invoke:
    """A cross-program invocation into program_slot."""
    program_slot: str


@dataclass(frozen=True)
class Arithmetic:
    op: str
    checked: bool = False
    target: Optional[str] = None  # value written, e.g. 'vault.balance'


@dataclass(frozen=True)
class IndexedAccess:
    collection_slot: str
    index_source: str
    bounds_known: bool = False


@dataclass(frozen=True)
class TimestampCompare:
    lhs: str
    rhs: str
    checked: bool = False


Effect = Union[
    Mutate, Transfer, CloseAccount, Invoke, Arithmetic, IndexedAccess, TimestampCompare
]


def effect_slots(effect: Effect) -> Tuple[str, ...]:
    """Slot names an effect names directly."""
    if isinstance(effect, Mutate):
        return (effect.slot,)
    if isinstance(effect, Transfer):
        return (effect.from_slot, effect.to_slot)
    if isinstance(effect, CloseAccount):
        return (effect.slot,)
    if isinstance(effect, Invoke):
        return (effect.program_slot,)
    return ()


# ---------------------------------------------------------------------------
# Program structure
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AccountRequirement:
    """One declared account slot within an instruction."""
    name: str
    kind: AccountKind
    is_mut: bool = False
    is_init: bool = False
    space: Optional[int] = None        # fixed literal, e.g. `space = 8 + 32`
    space_expr: Optional[str] = None   # computed, e.g. `8 + Vault::INIT_SPACE`
    constraints: Tuple[Constraint, ...] = ()
    documented: bool = False           # has a `/// CHECK:` comment
    fields: Tuple[FieldSpec, ...] = ()

    @property
    def has_capacity(self) -> bool:
        return self.space is not None or self.space_expr is not None

    def constraints_of(self, kind: type) -> Tuple[Constraint, ...]:
        return tuple(c for c in self.constraints if isinstance(c, kind))


@dataclass(frozen=True)
class Instruction:
    """One externally callable entry point of the program."""
    name: str
    accounts: Tuple[AccountRequirement, ...] = ()
    effects: Tuple[Effect, ...] = ()

    def get_account(self, name: str) -> Optional[AccountRequirement]:
        for acc in self.accounts:
            if acc.name == name:
                return acc
        return None

    @property
    def slot_names(self) -> Tuple[str, ...]:
        return tuple(acc.name for acc in self.accounts)

    @property
    def signers(self) -> Tuple[str, ...]:
        return tuple(acc.name for acc in self.accounts if acc.kind == AccountKind.SIGNER)


@dataclass(frozen=True)
class ProgramModel:
    """Complete model of a program, as handed over by the Model Extractor."""
    name: str = "Unknown"
    program_id: Optional[str] = None
    instructions: Tuple[Instruction, ...] = field(default_factory=tuple)

    def get_instruction(self, name: str) -> Optional[Instruction]:
        """Get instruction by name."""
        for ix in self.instructions:
            if ix.name == name:
                return ix
        return None

    def summary(self) -> str:
        """Return a human-readable summary."""
        lines = [
            f"Program: {self.name}",
            f"Instructions: {len(self.instructions)}",
        ]
        for ix in self.instructions:
            lines.append(f"  • {ix.name} ({len(ix.accounts)} accounts, {len(ix.effects)} effects)")
        return "\n".join(lines)
