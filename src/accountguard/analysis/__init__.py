"""
Analysis module for resolving and relating a program's account constraints.
"""

from .models import (
    ProgramModel,
    Instruction,
    AccountRequirement,
    AccountKind,
    FieldSpec,
    SeedsBump,
    HasOne,
    OwnerCheck,
    Close,
    RawExpr,
    Mutate,
    Transfer,
    CloseAccount,
    Invoke,
    Arithmetic,
    IndexedAccess,
    TimestampCompare,
)
from .model_loader import ModelLoader, load_program
from .resolver import ConstraintResolver, ResolvedAccount, ResolvedInstruction
from .relation_graph import RelationGraph, RelationGraphBuilder, RelationEdge, RelationKind
from .program_index import ProgramIndex, InitSite

__all__ = [
    "ProgramModel",
    "Instruction",
    "AccountRequirement",
    "AccountKind",
    "FieldSpec",
    "SeedsBump",
    "HasOne",
    "OwnerCheck",
    "Close",
    "RawExpr",
    "Mutate",
    "Transfer",
    "CloseAccount",
    "Invoke",
    "Arithmetic",
    "IndexedAccess",
    "TimestampCompare",
    "ModelLoader",
    "load_program",
    "ConstraintResolver",
    "ResolvedAccount",
    "ResolvedInstruction",
    "RelationGraph",
    "RelationGraphBuilder",
    "RelationEdge",
    "RelationKind",
    "ProgramIndex",
    "InitSite",
]
