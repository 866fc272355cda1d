"""
🧪 指令目錄測試
驗證參數驗證規則與 describe() 的固定渲染格式
"""

import pytest

from giftgate.catalog.commands import (
    GrantPack,
    GrantPoints,
    InspectLedger,
    command_name_of,
    describe,
    parse_command,
)
from giftgate.core.errors import ValidationError


# ── 驗證 ─────────────────────────────────────────────────────

def test_givepack_parses_typed_fields():
    kind = parse_command("givepack", {"user": "U", "packid": "P1", "amount": 3})
    assert kind == GrantPack(target_user="U", pack_id="P1", amount=3)


def test_givepack_amount_defaults_to_one():
    kind = parse_command("givepack", {"user": "U", "packid": "P1"})
    assert kind.amount == 1


def test_chat_text_arguments_are_coerced():
    """聊天室參數都是文字，整數字串可以接受"""
    kind = parse_command("givepoints", {"user": 42, "amount": " 250 "})
    assert kind == GrantPoints(target_user="42", amount=250)


@pytest.mark.parametrize("params", [
    {"packid": "P1"},
    {"user": "U"},
    {"user": "U", "packid": "   "},
    {"user": "", "packid": "P1"},
])
def test_givepack_missing_fields(params):
    with pytest.raises(ValidationError):
        parse_command("givepack", params)


@pytest.mark.parametrize("amount", [0, -5, "0"])
def test_givepack_amount_must_be_positive(amount):
    with pytest.raises(ValidationError, match="at least 1"):
        parse_command("givepack", {"user": "U", "packid": "P1", "amount": amount})


@pytest.mark.parametrize("amount", ["three", 2.5, True, [1]])
def test_wrong_type_amount_is_rejected(amount):
    with pytest.raises(ValidationError, match="integer"):
        parse_command("givepoints", {"user": "U", "amount": amount})


def test_givepoints_negative_amount_is_rejected():
    with pytest.raises(ValidationError, match="negative"):
        parse_command("givepoints", {"user": "U", "amount": -1})


def test_givepoints_zero_is_allowed():
    assert parse_command("givepoints", {"user": "U", "amount": 0}).amount == 0


def test_givepoints_requires_amount():
    with pytest.raises(ValidationError, match="amount"):
        parse_command("givepoints", {"user": "U"})


@pytest.mark.parametrize("pack_id", ["a/b", "two words"])
def test_pack_id_must_be_single_path_segment(pack_id):
    with pytest.raises(ValidationError, match="pack id"):
        parse_command("givepack", {"user": "U", "packid": pack_id})


def test_checkgifts_ignores_parameters():
    assert parse_command("checkgifts", {"anything": 1}) == InspectLedger()
    assert parse_command("checkgifts") == InspectLedger()


def test_unknown_command():
    with pytest.raises(ValidationError, match="Unknown command"):
        parse_command("deleteall", {})


# ── 渲染 ─────────────────────────────────────────────────────

def test_describe_formats():
    assert describe(GrantPack("U", "P1", 3)) == "/givepack <@U> P1 3"
    assert describe(parse_command("givepack", {"user": "U", "packid": "P1"})) == "/givepack <@U> P1 1"
    assert describe(GrantPoints("U", 50)) == "/givepoints <@U> 50"
    assert describe(InspectLedger()) == "/checkgifts"


def test_describe_is_deterministic():
    a = parse_command("givepack", {"user": "U", "packid": "P1", "amount": "3"})
    b = parse_command("givepack", {"user": "U", "packid": "P1", "amount": 3})
    assert describe(a) == describe(b)


def test_unknown_kind_is_not_silently_rendered():
    with pytest.raises(TypeError):
        describe(object())
    with pytest.raises(TypeError):
        command_name_of("givepack")
