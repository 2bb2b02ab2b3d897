"""
Rule checks: one generator per rule.

Each check reads a RuleContext and yields findings. Checks never mutate
the context and never look at each other's output, so they can run in any
order and the same account may collect findings from several rules.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterator, List, Optional, Tuple

from ..analysis.models import (
    AccountKind,
    Arithmetic,
    CloseAccount,
    IndexedAccess,
    Instruction,
    Invoke,
    Mutate,
    TimestampCompare,
    Transfer,
    effect_slots,
    seed_reference,
)
from ..analysis.program_index import ProgramIndex
from ..analysis.relation_graph import RelationGraph, RelationKind
from ..analysis.resolver import ResolvedAccount, ResolvedInstruction
from ..findings import Finding, Remediation, Severity
from .playbook import (
    INPUT_VALIDATION,
    OWNERSHIP_CONSTRAINT,
    PDA_DERIVATION,
    REINITIALIZATION_GUARD,
    SIGNER_AUTHORITY,
    TYPED_ACCOUNT,
)

# Names that suggest a value affecting balances or counts
VALUE_KEYWORDS = [
    "amount", "balance", "lamports", "supply", "count", "total", "fee",
    "reward", "price", "deposit", "stake", "share", "debt", "reserve",
]


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may read about one instruction."""
    resolved: ResolvedInstruction
    graph: RelationGraph
    index: ProgramIndex

    @property
    def instruction(self) -> Instruction:
        return self.resolved.instruction

    @property
    def name(self) -> str:
        return self.resolved.name

    @property
    def slot_names(self) -> FrozenSet[str]:
        return frozenset(self.instruction.slot_names)

    def account(self, name: str) -> Optional[ResolvedAccount]:
        return self.resolved.account(name)


# ---------------------------------------------------------------------------
# AG001 Signer-Authority
# ---------------------------------------------------------------------------

def check_signer_authority(ctx: RuleContext) -> Iterator[Finding]:
    """Every mutated, debited or closed account needs a bound signer."""
    targets: List[Tuple[str, Optional[int], str]] = []
    for i, effect in enumerate(ctx.instruction.effects):
        if isinstance(effect, Mutate):
            targets.append((effect.slot, i, "mutates"))
        elif isinstance(effect, Transfer):
            targets.append((effect.from_slot, i, "transfers value out of"))
        elif isinstance(effect, CloseAccount):
            targets.append((effect.slot, i, "closes"))
    for acc in ctx.resolved.accounts:
        if acc.close_to:
            targets.append((acc.name, None, "declares close on"))

    for slot, index, verb in targets:
        if _has_authority_over(ctx, slot):
            continue
        yield Finding(
            rule_id=SIGNER_AUTHORITY,
            severity=Severity.CRITICAL,
            instruction=ctx.name,
            slots=(slot,),
            message=f"'{ctx.name}' {verb} '{slot}' but no signer is bound to it",
            remediation=Remediation.ADD_SIGNER_CHECK,
            effect_index=index,
        )


def _has_authority_over(ctx: RuleContext, slot: str) -> bool:
    target = ctx.account(slot)
    if target is None:
        return False
    if target.has_authority:
        return True
    for signer in ctx.resolved.signers:
        if signer.is_bound_to(slot) or target.is_bound_to(signer.name):
            return True
        if ctx.graph.has_edge(signer.name, slot, RelationKind.OWNER_EQUALITY):
            return True
    return False


# ---------------------------------------------------------------------------
# AG002 Typed-Account
# ---------------------------------------------------------------------------

def check_typed_accounts(ctx: RuleContext) -> Iterator[Finding]:
    """Invoked and mutated accounts must be type safe."""
    seen = set()
    for i, effect in enumerate(ctx.instruction.effects):
        if isinstance(effect, Invoke):
            slot, use = effect.program_slot, "invoked"
        elif isinstance(effect, Mutate):
            slot, use = effect.slot, "mutated"
        else:
            continue
        if slot in seen:
            continue
        seen.add(slot)

        acc = ctx.account(slot)
        if acc is None or acc.type_safe:
            continue

        if acc.kind == AccountKind.RAW:
            severity = Severity.CRITICAL
            reason = "is a raw account with no owner or discriminator check"
        else:
            severity = Severity.WARNING
            missing = []
            if not acc.owner_programs:
                missing.append("an owner constraint")
            if not acc.requirement.documented:
                missing.append("a safety comment")
            reason = f"is unchecked and lacks {' and '.join(missing)}"

        yield Finding(
            rule_id=TYPED_ACCOUNT,
            severity=severity,
            instruction=ctx.name,
            slots=(slot,),
            message=f"'{slot}' is {use} but {reason}",
            remediation=Remediation.USE_TYPED_ACCOUNT_OR_DOCUMENT,
            effect_index=i,
        )


# ---------------------------------------------------------------------------
# AG003 Ownership-Constraint
# ---------------------------------------------------------------------------

def check_ownership_constraints(ctx: RuleContext) -> Iterator[Finding]:
    """Transfers need resource identity; stored owners need a binding."""
    for i, effect in enumerate(ctx.instruction.effects):
        if not isinstance(effect, Transfer):
            continue
        if ctx.graph.has_edge(effect.from_slot, effect.to_slot, RelationKind.MINT_EQUALITY):
            continue
        yield Finding(
            rule_id=OWNERSHIP_CONSTRAINT,
            severity=Severity.CRITICAL,
            instruction=ctx.name,
            slots=(effect.from_slot, effect.to_slot),
            message=(
                f"Transfer from '{effect.from_slot}' to '{effect.to_slot}' without "
                f"a constraint that both hold the same mint"
            ),
            remediation=Remediation.ADD_RELATIONAL_CONSTRAINT,
            effect_index=i,
        )

    operated = set()
    for effect in ctx.instruction.effects:
        operated.update(effect_slots(effect))

    for acc in ctx.resolved.accounts:
        if acc.name not in operated:
            continue
        for f in acc.requirement.fields:
            if not f.is_pubkey or f.name == acc.name or f.name not in ctx.slot_names:
                continue
            if _is_related(ctx, acc, f.name):
                continue
            yield Finding(
                rule_id=OWNERSHIP_CONSTRAINT,
                severity=Severity.WARNING,
                instruction=ctx.name,
                slots=(acc.name, f.name),
                message=(
                    f"'{acc.name}' stores '{f.name}' but the instruction never checks "
                    f"that the '{f.name}' account passed in is the stored one"
                ),
                remediation=Remediation.ADD_RELATIONAL_CONSTRAINT,
            )


def _is_related(ctx: RuleContext, acc: ResolvedAccount, other: str) -> bool:
    if acc.is_bound_to(other):
        return True
    other_acc = ctx.account(other)
    if other_acc is not None and other_acc.is_bound_to(acc.name):
        return True
    return ctx.graph.has_edge(acc.name, other, RelationKind.OWNER_EQUALITY) or \
        ctx.graph.has_edge(acc.name, other, RelationKind.MINT_EQUALITY)


# ---------------------------------------------------------------------------
# AG004 PDA-Derivation
# ---------------------------------------------------------------------------

def check_pda_derivation(ctx: RuleContext) -> Iterator[Finding]:
    """Owner-scoped init accounts must be derived from the signer and store the bump."""
    signer_names = frozenset(s.name for s in ctx.resolved.signers)

    for acc in ctx.resolved.accounts:
        if acc.is_init:
            if not signer_names or acc.has_authority:
                continue
            if ctx.index.is_shared(acc.name, ctx.name, signer_names):
                continue
            yield from _check_init_derivation(ctx, acc, signer_names)

        elif acc.seeds is not None and acc.seeds.bump is None and _stores_bump(acc):
            yield Finding(
                rule_id=PDA_DERIVATION,
                severity=Severity.INFO,
                instruction=ctx.name,
                slots=(acc.name,),
                message=f"'{acc.name}' stores its bump but the instruction recomputes it",
                remediation=Remediation.PERSIST_BUMP,
            )


def _check_init_derivation(
    ctx: RuleContext,
    acc: ResolvedAccount,
    signer_names: FrozenSet[str],
) -> Iterator[Finding]:
    seed_refs = set()
    if acc.seeds is not None:
        seed_refs = {seed_reference(s) for s in acc.seeds.seeds}

    if acc.seeds is None or not (seed_refs & signer_names):
        detail = "is not a PDA" if acc.seeds is None else "has seeds that omit every signer"
        yield Finding(
            rule_id=PDA_DERIVATION,
            severity=Severity.CRITICAL,
            instruction=ctx.name,
            slots=(acc.name,),
            message=(
                f"'{acc.name}' is initialized for {', '.join(sorted(signer_names))} "
                f"but {detail}"
            ),
            remediation=Remediation.DERIVE_FROM_SIGNER_SEEDS,
        )
        return

    if not _persists_bump(ctx, acc.name):
        yield Finding(
            rule_id=PDA_DERIVATION,
            severity=Severity.WARNING,
            instruction=ctx.name,
            slots=(acc.name,),
            message=f"'{acc.name}' is initialized without storing its canonical bump",
            remediation=Remediation.PERSIST_BUMP,
        )


def _persists_bump(ctx: RuleContext, slot: str) -> bool:
    for effect in ctx.instruction.effects:
        if isinstance(effect, Mutate) and effect.slot == slot and effect.field:
            if "bump" in effect.field.lower():
                return True
    return False


def _stores_bump(acc: ResolvedAccount) -> bool:
    return any("bump" in f.name.lower() for f in acc.requirement.fields)


# ---------------------------------------------------------------------------
# AG005 Input-Validation
# ---------------------------------------------------------------------------

def check_input_validation(ctx: RuleContext) -> Iterator[Finding]:
    """Arithmetic, indexing, timestamps and init space."""
    for i, effect in enumerate(ctx.instruction.effects):
        if isinstance(effect, Arithmetic) and not effect.checked:
            yield _arithmetic_finding(ctx, effect, i)

        elif isinstance(effect, IndexedAccess) and not effect.bounds_known:
            yield Finding(
                rule_id=INPUT_VALIDATION,
                severity=Severity.CRITICAL,
                instruction=ctx.name,
                slots=(effect.collection_slot,),
                message=(
                    f"'{effect.collection_slot}' is indexed by '{effect.index_source}' "
                    f"without a bounds check"
                ),
                remediation=Remediation.ADD_BOUNDS_CHECK,
                effect_index=i,
            )

        elif isinstance(effect, TimestampCompare) and not effect.checked:
            yield Finding(
                rule_id=INPUT_VALIDATION,
                severity=Severity.WARNING,
                instruction=ctx.name,
                slots=(),
                message=f"'{effect.lhs}' is compared to '{effect.rhs}' without validating their order",
                remediation=Remediation.VALIDATE_TIME_ORDERING,
                effect_index=i,
            )

    for acc in ctx.resolved.accounts:
        req = acc.requirement
        if not req.is_init or req.space is None or req.space_expr is not None:
            continue
        unbounded = [f.name for f in req.fields if f.is_variable_length and f.max_len is None]
        if unbounded:
            yield Finding(
                rule_id=INPUT_VALIDATION,
                severity=Severity.CRITICAL,
                instruction=ctx.name,
                slots=(acc.name,),
                message=(
                    f"'{acc.name}' reserves a fixed {req.space} bytes but stores "
                    f"unbounded field(s): {', '.join(unbounded)}"
                ),
                remediation=Remediation.FIX_SPACE_CALCULATION,
            )


def _arithmetic_finding(ctx: RuleContext, effect: Arithmetic, index: int) -> Finding:
    target = effect.target
    base = seed_reference(target) if target else None
    slots = (base,) if base in ctx.slot_names else ()

    if _is_value_bearing(target, bool(slots)):
        severity = Severity.CRITICAL
    else:
        severity = Severity.INFO

    described = f"on '{target}'" if target else ""
    return Finding(
        rule_id=INPUT_VALIDATION,
        severity=severity,
        instruction=ctx.name,
        slots=slots,
        message=f"Unchecked '{effect.op}' {described}".rstrip(),
        remediation=Remediation.USE_CHECKED_ARITHMETIC,
        effect_index=index,
    )


def _is_value_bearing(target: Optional[str], stored: bool) -> bool:
    if target is None or stored:
        return True
    lowered = target.lower()
    return any(kw in lowered for kw in VALUE_KEYWORDS)


# ---------------------------------------------------------------------------
# AG006 Reinitialization-Guard
# ---------------------------------------------------------------------------

def check_reinitialization(ctx: RuleContext) -> Iterator[Finding]:
    """A seeded address initialized by an earlier instruction needs a guard here."""
    for acc in ctx.resolved.accounts:
        if not acc.is_init or acc.seeds is None or acc.has_init_guard:
            continue
        earlier = ctx.index.earlier_init_sites(acc.seeds.seeds, ctx.name)
        if not earlier:
            continue
        first = earlier[0]
        yield Finding(
            rule_id=REINITIALIZATION_GUARD,
            severity=Severity.CRITICAL,
            instruction=ctx.name,
            slots=(acc.name,),
            message=(
                f"'{acc.name}' uses the same seeds as '{first.slot}' in "
                f"'{first.instruction}' and can be initialized again without a guard"
            ),
            remediation=Remediation.GUARD_AGAINST_REINITIALIZATION,
        )
