"""Tests for loading program models from JSON."""

import json

import pytest

from accountguard.analysis import ModelLoader, load_program
from accountguard.analysis.models import (
    AccountKind,
    Arithmetic,
    Close,
    HasOne,
    IndexedAccess,
    OwnerCheck,
    RawExpr,
    SeedsBump,
    TimestampCompare,
    Transfer,
)
from accountguard.errors import ModelError

SYSTEM_PROGRAM = "11111111111111111111111111111111"


@pytest.fixture
def vault_document():
    return {
        "name": "vault",
        "program_id": SYSTEM_PROGRAM,
        "instructions": [
            {
                "name": "deposit",
                "accounts": [
                    {"name": "user", "kind": "Signer", "mut": True},
                    {
                        "name": "vault",
                        "kind": "Account",
                        "writable": True,
                        "init": True,
                        "space": "8 + Vault::INIT_SPACE",
                        "fields": [
                            {"name": "owner", "type": "Pubkey"},
                            {"name": "label", "type": "String", "max_len": 32},
                        ],
                        "constraints": [
                            {"type": "seeds", "seeds": ["b\"vault\"", "user.key().as_ref()"], "bump": "vault.bump"},
                            {"type": "has_one", "target": "user"},
                            {"type": "close", "refund_to": "user"},
                            {"type": "constraint", "predicate": "!vault.is_initialized"},
                        ],
                    },
                    {
                        "name": "oracle",
                        "kind": "UncheckedAccount",
                        "docs": ["CHECK: owner is verified below"],
                        "constraints": [{"type": "owner", "program": SYSTEM_PROGRAM}],
                    },
                    {"name": "legacy", "kind": "AccountInfo"},
                    {"name": "system_program", "kind": "Program"},
                ],
                "effects": [
                    {"type": "transfer", "from": "user", "to": "vault"},
                    {"type": "arithmetic", "op": "+", "target": "vault.balance"},
                    {"type": "index", "collection": "vault", "index": "args.slot"},
                    {"type": "timestamp", "lhs": "clock.unix_timestamp", "rhs": "vault.unlock", "checked": True},
                    {"type": "mutate", "slot": "vault", "field": "bump"},
                    {"type": "close", "slot": "vault"},
                    {"type": "invoke", "program": "system_program"},
                ],
            }
        ],
    }


class TestModelLoader:
    """Tests for ModelLoader."""

    def test_parse(self, vault_document):
        model = ModelLoader().parse(vault_document)

        assert model.name == "vault"
        assert model.program_id == SYSTEM_PROGRAM
        ix = model.get_instruction("deposit")
        assert ix.signers == ("user",)

        kinds = {acc.name: acc.kind for acc in ix.accounts}
        assert kinds == {
            "user": AccountKind.SIGNER,
            "vault": AccountKind.TYPED_DATA,
            "oracle": AccountKind.UNCHECKED,
            "legacy": AccountKind.RAW,
            "system_program": AccountKind.TYPED_PROGRAM,
        }

    def test_account_details(self, vault_document):
        vault = ModelLoader().parse(vault_document).get_instruction("deposit").get_account("vault")

        assert vault.is_mut and vault.is_init
        assert vault.space is None
        assert vault.space_expr == "8 + Vault::INIT_SPACE"
        assert vault.constraints == (
            SeedsBump(seeds=('b"vault"', "user.key().as_ref()"), bump="vault.bump"),
            HasOne("user"),
            Close("user"),
            RawExpr("!vault.is_initialized"),
        )
        assert vault.fields[1].max_len == 32
        assert vault.fields[0].is_pubkey

    def test_documented_unchecked(self, vault_document):
        oracle = ModelLoader().parse(vault_document).get_instruction("deposit").get_account("oracle")

        assert oracle.documented
        assert oracle.constraints == (OwnerCheck(SYSTEM_PROGRAM),)

    def test_effects(self, vault_document):
        effects = ModelLoader().parse(vault_document).get_instruction("deposit").effects

        assert effects[0] == Transfer("user", "vault")
        assert effects[1] == Arithmetic("+", checked=False, target="vault.balance")
        assert effects[2] == IndexedAccess("vault", "args.slot", bounds_known=False)
        assert effects[3] == TimestampCompare("clock.unix_timestamp", "vault.unlock", checked=True)
        assert len(effects) == 7

    def test_kind_by_model_name(self):
        model = ModelLoader().parse({
            "instructions": [{"name": "ix", "accounts": [{"name": "a", "kind": "typed_data"}]}],
        })
        assert model.instructions[0].accounts[0].kind == AccountKind.TYPED_DATA
        assert model.name == "Unknown"

    def test_invalid_program_id(self, vault_document):
        vault_document["program_id"] = "not-a-valid-key"

        with pytest.raises(ModelError, match="invalid program id"):
            ModelLoader().parse(vault_document)

    def test_duplicate_instruction(self, vault_document):
        vault_document["instructions"].append(vault_document["instructions"][0])

        with pytest.raises(ModelError, match="duplicate instruction"):
            ModelLoader().parse(vault_document)

    def test_unknown_kind(self):
        with pytest.raises(ModelError, match="unknown account kind"):
            ModelLoader().parse({
                "instructions": [{"name": "ix", "accounts": [{"name": "a", "kind": "Sysvar"}]}],
            })

    def test_unknown_effect(self):
        with pytest.raises(ModelError, match="unknown type 'emit'"):
            ModelLoader().parse({
                "instructions": [{"name": "ix", "accounts": [], "effects": [{"type": "emit"}]}],
            })

    def test_constraint_missing_key(self):
        with pytest.raises(ModelError, match="has_one constraint is missing"):
            ModelLoader().parse({
                "instructions": [{
                    "name": "ix",
                    "accounts": [{"name": "a", "kind": "Account", "constraints": [{"type": "has_one"}]}],
                }],
            })

    def test_load_from_file(self, tmp_path, vault_document):
        path = tmp_path / "model.json"
        path.write_text(json.dumps(vault_document))

        model = load_program(path)
        assert model.get_instruction("deposit") is not None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_program(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text("{not json")

        with pytest.raises(ModelError, match="invalid JSON"):
            load_program(path)


def single_account(**account):
    account.setdefault("name", "vault")
    account.setdefault("kind", "Account")
    return {"instructions": [{"name": "ix", "accounts": [account]}]}


class TestMalformedModels:
    """Wrongly typed entries are reported as ModelError."""

    @pytest.mark.parametrize("constraint", [
        {"type": "seeds", "seeds": ["b\"vault\""], "bump": True},
        {"type": "seeds", "seeds": "b\"vault\""},
        {"type": "seeds", "seeds": ["b\"vault\"", 7]},
        {"type": "has_one", "target": ["user"]},
        {"type": "raw", "predicate": None},
    ])
    def test_bad_constraint_values(self, constraint):
        with pytest.raises(ModelError) as exc:
            ModelLoader().parse(single_account(constraints=[constraint]))
        assert exc.value.slot == "vault"

    def test_field_without_name(self):
        with pytest.raises(ModelError, match="field without a name"):
            ModelLoader().parse(single_account(fields=[{"type": "u64"}]))

    def test_bad_max_len(self):
        with pytest.raises(ModelError, match="max_len"):
            ModelLoader().parse(single_account(fields=[{"name": "label", "type": "String", "max_len": "32"}]))

    def test_bad_space(self):
        with pytest.raises(ModelError, match="space"):
            ModelLoader().parse(single_account(init=True, space=True))

    @pytest.mark.parametrize("document", [
        {"instructions": ["deposit"]},
        {"instructions": {"name": "deposit"}},
        {"instructions": [{"name": "ix", "accounts": ["vault"]}]},
        {"instructions": [{"name": "ix", "effects": [["mutate", "vault"]]}]},
        single_account(fields=["owner"]),
    ])
    def test_entries_must_be_objects(self, document):
        with pytest.raises(ModelError, match="list of objects"):
            ModelLoader().parse(document)

    def test_bad_effect_value(self):
        document = {"instructions": [{
            "name": "ix",
            "accounts": [{"name": "vault", "kind": "Account"}],
            "effects": [{"type": "mutate", "slot": "vault", "field": 3}],
        }]}
        with pytest.raises(ModelError, match="'field' must be a string"):
            ModelLoader().parse(document)

    def test_non_string_program_id(self):
        with pytest.raises(ModelError, match="invalid program id"):
            ModelLoader().parse({"program_id": 42, "instructions": []})

    def test_malformed_model_exits_1(self, tmp_path, monkeypatch):
        from accountguard.cli import main

        monkeypatch.chdir(tmp_path)
        path = tmp_path / "model.json"
        path.write_text(json.dumps(single_account(constraints=[
            {"type": "seeds", "seeds": ["b\"vault\""], "bump": True},
        ])))
        assert main(["check", str(path)]) == 1
