"""
Relation Graph: links accounts that an instruction ties together.

Relational rules ask questions such as "is the destination token account
known to hold the same mint as the source?". The graph answers them from
declared constraints and transfer effects, one instruction at a time.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple
from enum import Enum

from .models import HasOne, RawExpr, Transfer, seed_reference
from .resolver import ResolvedInstruction, SlotRef, equality_clauses

logger = logging.getLogger(__name__)


class RelationKind(Enum):
    """What a relation edge asserts about its two accounts."""
    MINT_EQUALITY = "mint-equality"
    OWNER_EQUALITY = "owner-equality"
    SEED_PREFIX_MATCH = "seed-prefix-match"


OWNER_ATTRS = ("owner", "authority")
MINT_ATTRS = ("mint",)


@dataclass(frozen=True)
class RelationEdge:
    """A pairing between two accounts of the same instruction."""
    source: str
    target: str
    kind: RelationKind
    origin: str  # raw_expr, has_one, seeds or transfer

    def joins(self, a: str, b: str) -> bool:
        return {self.source, self.target} == {a, b}


@dataclass
class RelationGraph:
    """
    Relation edges of a single instruction.

    Edges are undirected for queries; both kinds are kept when an account
    pair is linked in more than one way.
    """
    instruction: str
    nodes: List[str] = field(default_factory=list)
    edges: List[RelationEdge] = field(default_factory=list)

    def add_edge(self, edge: RelationEdge):
        """Add an edge unless an identical one exists."""
        if edge.source == edge.target:
            return
        if edge not in self.edges:
            self.edges.append(edge)

    def edges_between(self, a: str, b: str) -> List[RelationEdge]:
        return [e for e in self.edges if e.joins(a, b)]

    def has_edge(self, a: str, b: str, kind: Optional[RelationKind] = None) -> bool:
        return any(kind is None or e.kind == kind for e in self.edges_between(a, b))

    def neighbours(self, node: str, kind: Optional[RelationKind] = None) -> Set[str]:
        """Accounts joined to node, optionally by edges of one kind."""
        found = set()
        for e in self.edges:
            if kind is not None and e.kind != kind:
                continue
            if e.source == node:
                found.add(e.target)
            elif e.target == node:
                found.add(e.source)
        return found

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "instruction": self.instruction,
            "nodes": list(self.nodes),
            "edges": [
                {
                    "source": e.source,
                    "target": e.target,
                    "kind": e.kind.value,
                    "origin": e.origin,
                }
                for e in self.edges
            ],
        }

    def to_mermaid(self) -> str:
        """Generate Mermaid diagram syntax."""
        lines = ["graph LR"]
        linked = {e.source for e in self.edges} | {e.target for e in self.edges}
        for node in self.nodes:
            if node not in linked:
                lines.append(f"    {node}")
        for e in self.edges:
            lines.append(f"    {e.source} -- {e.kind.value} --- {e.target}")
        return "\n".join(lines)


class RelationGraphBuilder:
    """
    Builds the relation graph of one resolved instruction.

    Nothing is carried over between instructions: two slots with the same
    name in different instructions are different accounts.
    """

    def build(self, resolved: ResolvedInstruction) -> RelationGraph:
        """
        Build a relation graph.

        Args:
            resolved: Output of the constraint resolver for one instruction

        Returns:
            RelationGraph with declared and inferred edges
        """
        graph = RelationGraph(
            instruction=resolved.name,
            nodes=[acc.name for acc in resolved.accounts],
        )
        slot_names = frozenset(graph.nodes)

        for acc in resolved.accounts:
            for constraint in acc.requirement.constraints:
                if isinstance(constraint, HasOne):
                    kind = (
                        RelationKind.MINT_EQUALITY
                        if _is_mint_slot(constraint.target)
                        else RelationKind.OWNER_EQUALITY
                    )
                    graph.add_edge(RelationEdge(acc.name, constraint.target, kind, "has_one"))

                elif isinstance(constraint, RawExpr):
                    for left, right in equality_clauses(constraint.predicate, slot_names):
                        for kind in _clause_kinds(left, right):
                            graph.add_edge(RelationEdge(left.slot, right.slot, kind, "raw_expr"))

            if acc.seeds:
                for seed in acc.seeds.seeds:
                    ref = seed_reference(seed)
                    if ref in slot_names:
                        graph.add_edge(RelationEdge(
                            acc.name, ref, RelationKind.SEED_PREFIX_MATCH, "seeds"
                        ))

        for effect in resolved.instruction.effects:
            if isinstance(effect, Transfer):
                self._link_transfer(graph, effect)

        logger.debug("relation graph for %s: %d edges", resolved.name, len(graph.edges))
        return graph

    def _link_transfer(self, graph: RelationGraph, transfer: Transfer):
        """Derive a direct edge when both ends share a relation with a third account."""
        a, b = transfer.from_slot, transfer.to_slot
        for kind in (RelationKind.MINT_EQUALITY, RelationKind.OWNER_EQUALITY):
            if graph.has_edge(a, b, kind):
                continue
            shared = (graph.neighbours(a, kind) & graph.neighbours(b, kind)) - {a, b}
            if shared:
                graph.add_edge(RelationEdge(a, b, kind, "transfer"))


def _is_mint_slot(name: str) -> bool:
    lowered = name.lower()
    return lowered == "mint" or lowered.endswith("_mint")


def _clause_kinds(left: SlotRef, right: SlotRef) -> Tuple[RelationKind, ...]:
    kinds = []
    attrs = (left.attr, right.attr)
    if any(a in MINT_ATTRS for a in attrs):
        kinds.append(RelationKind.MINT_EQUALITY)
    if any(a in OWNER_ATTRS for a in attrs):
        kinds.append(RelationKind.OWNER_EQUALITY)
    elif left.is_key != right.is_key and not kinds:
        # `pool.config == config.key()` ties a stored field to an account
        kinds.append(RelationKind.OWNER_EQUALITY)
    return tuple(kinds)
