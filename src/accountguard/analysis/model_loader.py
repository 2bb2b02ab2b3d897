"""
Model Loader for extracted program models.

Reads the JSON document a Model Extractor writes and builds the immutable
ProgramModel. Account kinds may be given either as model names
(`typed_data`) or as the Anchor wrapper they come from (`Account`).
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from solders.pubkey import Pubkey

from ..errors import ModelError
from .models import (
    AccountKind,
    AccountRequirement,
    Arithmetic,
    Close,
    CloseAccount,
    Constraint,
    Effect,
    FieldSpec,
    HasOne,
    IndexedAccess,
    Instruction,
    Invoke,
    Mutate,
    OwnerCheck,
    ProgramModel,
    RawExpr,
    SeedsBump,
    TimestampCompare,
    Transfer,
)


class ModelLoader:
    """
    Parser for serialized program models.

    Structural problems in the document (unknown kinds, missing names,
    duplicate instructions) raise ModelError.
    """

    KIND_ALIASES = {
        "accountinfo": AccountKind.RAW,
        "account": AccountKind.TYPED_DATA,
        "accountloader": AccountKind.TYPED_DATA,
        "interfaceaccount": AccountKind.TYPED_DATA,
        "signer": AccountKind.SIGNER,
        "program": AccountKind.TYPED_PROGRAM,
        "interface": AccountKind.TYPED_PROGRAM,
        "uncheckedaccount": AccountKind.UNCHECKED,
    }

    def __init__(self):
        self.document: Optional[Dict] = None

    def parse_file(self, path: Union[str, Path]) -> ProgramModel:
        """Parse a model file from disk."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Model file not found: {path}")

        with open(path, "r") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ModelError(f"invalid JSON in {path}: {e}")

        return self.parse(data)

    def parse(self, document: Dict) -> ProgramModel:
        """Parse a model dictionary."""
        if not isinstance(document, dict):
            raise ModelError("model document must be a JSON object")
        self.document = document

        program_id = document.get("program_id") or document.get("address")
        if program_id:
            self._check_program_id(program_id)

        instructions = []
        seen = set()
        for ix_data in _objects(document.get("instructions"), "instructions"):
            ix = self._parse_instruction(ix_data)
            if ix.name in seen:
                raise ModelError("duplicate instruction name", ix.name)
            seen.add(ix.name)
            instructions.append(ix)

        return ProgramModel(
            name=str(document.get("name", "Unknown")),
            program_id=program_id,
            instructions=tuple(instructions),
        )

    def _check_program_id(self, program_id: Any):
        if not isinstance(program_id, str):
            raise ModelError(f"invalid program id {program_id!r}: expected a base58 string")
        try:
            Pubkey.from_string(program_id)
        except Exception as e:
            raise ModelError(f"invalid program id '{program_id}': {e}")

    def _parse_instruction(self, ix_data: Dict) -> Instruction:
        """Parse a single instruction."""
        name = ix_data.get("name")
        if not name or not isinstance(name, str):
            raise ModelError("instruction without a name")

        accounts = tuple(
            self._parse_account(name, acc_data)
            for acc_data in _objects(ix_data.get("accounts"), "accounts", name)
        )
        effects = tuple(
            self._parse_effect(name, i, eff_data)
            for i, eff_data in enumerate(_objects(ix_data.get("effects"), "effects", name))
        )
        return Instruction(name=name, accounts=accounts, effects=effects)

    def _parse_account(self, ix_name: str, acc_data: Dict) -> AccountRequirement:
        """Parse an account from an instruction's account list."""
        name = acc_data.get("name")
        if not name or not isinstance(name, str):
            raise ModelError("account without a name", ix_name)

        kind = self._parse_kind(ix_name, name, acc_data.get("kind", "raw"))

        # `docs` may be the comment text itself or a flag
        docs = acc_data.get("docs", acc_data.get("documented", False))
        if isinstance(docs, list):
            documented = any(isinstance(d, str) and d.strip() for d in docs)
        else:
            documented = bool(docs)

        constraints = tuple(
            self._parse_constraint(ix_name, name, c)
            for c in _objects(acc_data.get("constraints"), "constraints", ix_name, name)
        )
        fields = tuple(
            self._parse_field(ix_name, name, f)
            for f in _objects(acc_data.get("fields"), "fields", ix_name, name)
        )

        space = acc_data.get("space")
        space_expr = _text(acc_data.get("space_expr"), "space_expr", ix_name, name, optional=True)
        if isinstance(space, str):
            # `space = 8 + Vault::INIT_SPACE` is an expression, not a literal
            space_expr, space = space, None
        elif space is not None and not _is_count(space):
            raise ModelError(f"space must be a byte count or an expression, got {space!r}", ix_name, name)

        return AccountRequirement(
            name=name,
            kind=kind,
            is_mut=bool(acc_data.get("mut", acc_data.get("writable", False))),
            is_init=bool(acc_data.get("init", False)),
            space=space,
            space_expr=space_expr,
            constraints=constraints,
            documented=documented,
            fields=fields,
        )

    def _parse_field(self, ix_name: str, slot: str, data: Dict) -> FieldSpec:
        try:
            name = _text(data["name"], "field name", ix_name, slot)
        except KeyError:
            raise ModelError("field without a name", ix_name, slot)
        max_len = data.get("max_len")
        if max_len is not None and not _is_count(max_len):
            raise ModelError(f"max_len of field '{name}' must be an integer", ix_name, slot)
        return FieldSpec(name=name, type_name=str(data.get("type", "unknown")), max_len=max_len)

    def _parse_kind(self, ix_name: str, slot: str, raw: Any) -> AccountKind:
        key = str(raw).replace("_", "").replace("-", "").lower()
        for kind in AccountKind:
            if kind.value.replace("_", "") == key:
                return kind
        if key in self.KIND_ALIASES:
            return self.KIND_ALIASES[key]
        raise ModelError(f"unknown account kind '{raw}'", ix_name, slot)

    def _parse_constraint(self, ix_name: str, slot: str, data: Dict) -> Constraint:
        kind = data.get("type")

        def text(key: str, optional: bool = False) -> Optional[str]:
            value = data.get(key) if optional else data[key]
            return _text(value, f"{kind} constraint '{key}'", ix_name, slot, optional)

        try:
            if kind == "seeds":
                seeds = data.get("seeds", [])
                if not isinstance(seeds, list) or not all(isinstance(s, str) for s in seeds):
                    raise ModelError("seeds must be a list of strings", ix_name, slot)
                return SeedsBump(seeds=tuple(seeds), bump=text("bump", optional=True))
            elif kind == "has_one":
                return HasOne(target=text("target"))
            elif kind == "owner":
                return OwnerCheck(program=text("program"))
            elif kind == "close":
                return Close(refund_to=text("refund_to"))
            elif kind in ("raw", "constraint"):
                return RawExpr(predicate=text("predicate"))
        except KeyError as e:
            raise ModelError(f"{kind} constraint is missing {e}", ix_name, slot)
        raise ModelError(f"unknown constraint type '{kind}'", ix_name, slot)

    def _parse_effect(self, ix_name: str, index: int, data: Dict) -> Effect:
        kind = data.get("type")

        def text(key: str, default: Any = None, optional: bool = False) -> Optional[str]:
            if default is not None or optional:
                value = data.get(key, default)
            else:
                value = data[key]
            return _text(value, f"effect #{index} ({kind}) '{key}'", ix_name, optional=optional)

        try:
            if kind == "mutate":
                return Mutate(slot=text("slot"), field=text("field", optional=True))
            elif kind == "transfer":
                return Transfer(from_slot=text("from"), to_slot=text("to"))
            elif kind == "close":
                return CloseAccount(slot=text("slot"))
            elif kind == "invoke":
                return Invoke(program_slot=text("program"))
            elif kind == "arithmetic":
                return Arithmetic(
                    op=text("op", "?"),
                    checked=bool(data.get("checked", False)),
                    target=text("target", optional=True),
                )
            elif kind == "index":
                return IndexedAccess(
                    collection_slot=text("collection"),
                    index_source=text("index", "?"),
                    bounds_known=bool(data.get("bounds_known", False)),
                )
            elif kind == "timestamp":
                return TimestampCompare(
                    lhs=text("lhs"),
                    rhs=text("rhs"),
                    checked=bool(data.get("checked", False)),
                )
        except KeyError as e:
            raise ModelError(f"effect #{index} ({kind}) is missing {e}", ix_name)
        raise ModelError(f"effect #{index} has unknown type '{kind}'", ix_name)


def _objects(
    value: Any,
    what: str,
    ix_name: Optional[str] = None,
    slot: Optional[str] = None,
) -> List[Dict]:
    """A list of JSON objects; absent means empty."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise ModelError(f"{what} must be a list of objects", ix_name, slot)
    return value


def _text(
    value: Any,
    what: str,
    ix_name: Optional[str] = None,
    slot: Optional[str] = None,
    optional: bool = False,
) -> Optional[str]:
    if value is None and optional:
        return None
    if not isinstance(value, str):
        raise ModelError(f"{what} must be a string, got {value!r}", ix_name, slot)
    return value


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def load_program(path: Union[str, Path]) -> ProgramModel:
    """Load a ProgramModel from a JSON file."""
    return ModelLoader().parse_file(path)
