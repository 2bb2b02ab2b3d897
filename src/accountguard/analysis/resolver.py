"""
Constraint Resolver: normalizes declared constraints into resolved accounts.

The resolver never mutates the Program Model. It derives a view per account
that answers the three questions every rule asks: does this account carry
signing authority, which other slots is it bound to, and is its type safe.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from ..errors import ModelError
from .models import (
    AccountKind,
    AccountRequirement,
    Close,
    HasOne,
    IndexedAccess,
    Instruction,
    Invoke,
    Mutate,
    OwnerCheck,
    RawExpr,
    SeedsBump,
    CloseAccount,
    Transfer,
    seed_reference,
)

logger = logging.getLogger(__name__)

TYPE_SAFE_KINDS = (AccountKind.TYPED_DATA, AccountKind.SIGNER, AccountKind.TYPED_PROGRAM)

_CLAUSE_SPLIT = re.compile(r"&&|\|\||\band\b|\bor\b")
_SIDE_REF = re.compile(r"\b([A-Za-z_]\w*)\s*\.\s*([A-Za-z_]\w*)")

# Predicates that check an account has not been initialized yet
_INIT_GUARD = re.compile(
    r"is_initialized|initialized|data_is_empty|is_empty\s*\(\s*\)"
    r"|data_len\s*\(\s*\)\s*==\s*0|lamports\s*\(\s*\)\s*==\s*0"
)


@dataclass(frozen=True)
class SlotRef:
    """One side of an equality clause, e.g. `vault.owner`."""
    slot: str
    attr: str

    @property
    def is_key(self) -> bool:
        return self.attr == "key"


def equality_clauses(predicate: str, slot_names: FrozenSet[str]) -> List[Tuple[SlotRef, SlotRef]]:
    """
    Extract `a.x == b.y` clauses joining two different slots.

    Clauses are split on `&&`/`||`; each side contributes its first
    reference whose base is a slot of the instruction.
    """
    pairs = []
    for clause in _CLAUSE_SPLIT.split(predicate):
        if "==" not in clause:
            continue
        lhs, _, rhs = clause.partition("==")
        left = _first_slot_ref(lhs, slot_names)
        right = _first_slot_ref(rhs, slot_names)
        if left and right and left.slot != right.slot:
            pairs.append((left, right))
    return pairs


def _first_slot_ref(text: str, slot_names: FrozenSet[str]) -> Optional[SlotRef]:
    for match in _SIDE_REF.finditer(text):
        if match.group(1) in slot_names:
            return SlotRef(slot=match.group(1), attr=match.group(2))
    return None


def is_init_guard(predicate: str) -> bool:
    return bool(_INIT_GUARD.search(predicate))


@dataclass(frozen=True)
class ResolvedAccount:
    """Derived, order-independent view of one account requirement."""
    requirement: AccountRequirement
    has_authority: bool
    bindings: FrozenSet[str]
    type_safe: bool
    seeds: Optional[SeedsBump] = None
    owner_programs: FrozenSet[str] = frozenset()
    close_to: FrozenSet[str] = frozenset()
    has_init_guard: bool = False
    references: FrozenSet[str] = frozenset()  # slots read by seeds/RawExpr

    @property
    def name(self) -> str:
        return self.requirement.name

    @property
    def kind(self) -> AccountKind:
        return self.requirement.kind

    @property
    def is_init(self) -> bool:
        return self.requirement.is_init

    @property
    def unsafe_unchecked(self) -> bool:
        return self.kind == AccountKind.UNCHECKED and not self.type_safe

    def is_bound_to(self, slot: str) -> bool:
        return slot in self.bindings


@dataclass(frozen=True)
class ResolvedInstruction:
    """All resolved accounts of one instruction, in declaration order."""
    instruction: Instruction
    accounts: Tuple[ResolvedAccount, ...]

    @property
    def name(self) -> str:
        return self.instruction.name

    def account(self, name: str) -> Optional[ResolvedAccount]:
        for acc in self.accounts:
            if acc.name == name:
                return acc
        return None

    @property
    def signers(self) -> Tuple[ResolvedAccount, ...]:
        return tuple(acc for acc in self.accounts if acc.has_authority)


class ConstraintResolver:
    """
    Resolves every account requirement of an instruction.

    Validation failures raise ModelError: the model handed over by the
    extractor is inconsistent, which is not a security finding.
    """

    def resolve(self, instruction: Instruction) -> ResolvedInstruction:
        """
        Resolve an instruction's accounts.

        Args:
            instruction: Instruction from the Program Model

        Returns:
            ResolvedInstruction with one ResolvedAccount per requirement

        Raises:
            ModelError: if the instruction references missing slots,
                declares an init account without capacity, or has cyclic
                constraint references
        """
        slot_names = self._check_slots(instruction)
        self._check_effects(instruction, slot_names)

        resolved = tuple(
            self._resolve_account(instruction, acc, slot_names)
            for acc in instruction.accounts
        )
        self._check_cycles(instruction, resolved)

        logger.debug(
            "resolved %s: %d accounts, %d signers",
            instruction.name, len(resolved), sum(1 for r in resolved if r.has_authority),
        )
        return ResolvedInstruction(instruction=instruction, accounts=resolved)

    def _check_slots(self, instruction: Instruction) -> FrozenSet[str]:
        seen: Set[str] = set()
        for acc in instruction.accounts:
            if acc.name in seen:
                raise ModelError("duplicate account slot", instruction.name, acc.name)
            seen.add(acc.name)
            if acc.is_init and not acc.has_capacity:
                raise ModelError(
                    "init account declares no byte capacity", instruction.name, acc.name
                )
        return frozenset(seen)

    def _check_effects(self, instruction: Instruction, slot_names: FrozenSet[str]):
        for index, effect in enumerate(instruction.effects):
            if isinstance(effect, (Mutate, CloseAccount)):
                cited = [effect.slot]
            elif isinstance(effect, Transfer):
                cited = [effect.from_slot, effect.to_slot]
            elif isinstance(effect, Invoke):
                cited = [effect.program_slot]
            elif isinstance(effect, IndexedAccess):
                cited = [effect.collection_slot]
            else:
                continue
            for slot in cited:
                if slot not in slot_names:
                    raise ModelError(
                        f"effect #{index} ({type(effect).__name__}) cites unknown slot '{slot}'",
                        instruction.name,
                    )

    def _resolve_account(
        self,
        instruction: Instruction,
        acc: AccountRequirement,
        slot_names: FrozenSet[str],
    ) -> ResolvedAccount:
        # Constraints only add to sets; the result is independent of their order.
        bindings: Set[str] = set()
        owner_programs: Set[str] = set()
        close_to: Set[str] = set()
        references: Set[str] = set()
        has_guard = False

        seeds_constraints = acc.constraints_of(SeedsBump)
        if len(seeds_constraints) > 1:
            raise ModelError("more than one seeds declaration", instruction.name, acc.name)

        for constraint in acc.constraints:
            if isinstance(constraint, HasOne):
                self._require_slot(instruction, acc, constraint.target, slot_names, "has_one")
                bindings.add(constraint.target)

            elif isinstance(constraint, SeedsBump):
                for seed in constraint.seeds:
                    ref = seed_reference(seed)
                    if ref in slot_names and ref != acc.name:
                        bindings.add(ref)
                        references.add(ref)
                if constraint.bump and "." in constraint.bump:
                    base = seed_reference(constraint.bump)
                    self._require_slot(instruction, acc, base, slot_names, "bump")
                    if base != acc.name:
                        references.add(base)

            elif isinstance(constraint, OwnerCheck):
                owner_programs.add(constraint.program)

            elif isinstance(constraint, Close):
                self._require_slot(instruction, acc, constraint.refund_to, slot_names, "close")
                close_to.add(constraint.refund_to)

            elif isinstance(constraint, RawExpr):
                for base, _attr in constraint.dotted_references():
                    if base in slot_names and base != acc.name:
                        references.add(base)
                bindings.update(self._owner_bindings(acc.name, constraint, slot_names))
                has_guard = has_guard or is_init_guard(constraint.predicate)

        kind = acc.kind
        if kind in TYPE_SAFE_KINDS:
            type_safe = True
        elif kind == AccountKind.UNCHECKED:
            type_safe = bool(owner_programs) and acc.documented
        else:
            type_safe = False

        return ResolvedAccount(
            requirement=acc,
            has_authority=kind == AccountKind.SIGNER,
            bindings=frozenset(bindings),
            type_safe=type_safe,
            seeds=seeds_constraints[0] if seeds_constraints else None,
            owner_programs=frozenset(owner_programs),
            close_to=frozenset(close_to),
            has_init_guard=has_guard,
            references=frozenset(references),
        )

    def _owner_bindings(self, holder: str, constraint: RawExpr, slot_names: FrozenSet[str]) -> Set[str]:
        """Slots bound to holder by `holder.<field> == other.key()` clauses."""
        bound = set()
        for left, right in equality_clauses(constraint.predicate, slot_names):
            for mine, other in ((left, right), (right, left)):
                if mine.slot == holder and not mine.is_key and other.is_key:
                    bound.add(other.slot)
        return bound

    def _require_slot(
        self,
        instruction: Instruction,
        acc: AccountRequirement,
        target: Optional[str],
        slot_names: FrozenSet[str],
        what: str,
    ):
        if target not in slot_names:
            raise ModelError(
                f"{what} constraint references unknown slot '{target}'",
                instruction.name,
                acc.name,
            )

    def _check_cycles(self, instruction: Instruction, resolved: Tuple[ResolvedAccount, ...]):
        """Depth-first search over constraint references; any cycle is fatal."""
        graph: Dict[str, FrozenSet[str]] = {acc.name: acc.references for acc in resolved}
        white, grey, black = 0, 1, 2
        colour = {name: white for name in graph}

        def visit(node: str, path: List[str]):
            colour[node] = grey
            path.append(node)
            for nxt in sorted(graph.get(node, ())):
                if colour.get(nxt) == grey:
                    cycle = path[path.index(nxt):] + [nxt]
                    raise ModelError(
                        f"cyclic constraint references: {' -> '.join(cycle)}",
                        instruction.name,
                        nxt,
                    )
                if colour.get(nxt) == white:
                    visit(nxt, path)
            path.pop()
            colour[node] = black

        for name in graph:
            if colour[name] == white:
                visit(name, [])
