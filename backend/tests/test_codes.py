"""
Unit tests for referral code generation.

Tests focus on:
- Prefix derivation from first names
- Persisting codes through the unique constraint
- Retrying and falling back on collisions
"""
import re

import pytest

from referral_engine.referral import codes
from referral_engine.referral.codes import CodeGenerator, code_prefix
from referral_engine.referral.exceptions import CodeGenerationError
from referral_engine.storage.models import Account

CODE_FORMAT = re.compile(r"^[A-Z0-9]{4,12}$")


class TestCodePrefix:
    """Tests for code_prefix"""

    @pytest.mark.parametrize(
        "first_name, expected",
        [
            ("Alice", "ALIC"),
            ("bo", "BOXX"),
            ("J", "JXXX"),
            (None, "USER"),
            ("", "USER"),
            ("!!!", "USER"),
            ("Émile", "EMIL"),
            ("José", "JOSE"),
            ("Mary-Ann", "MARY"),
            ("42", "42XX"),
        ],
    )
    def test_prefix(self, first_name, expected):
        """Should take four code-safe characters, padding short names with X"""
        assert code_prefix(first_name) == expected


class TestCodeGenerator:
    """Tests for CodeGenerator.generate"""

    @pytest.mark.parametrize("first_name", ["Alice", None, "J", "Zoë", "Ødegaard", "O'Brien"])
    def test_generated_code_format(self, engine, make_account, first_name):
        """Should always produce an uppercase alphanumeric code of 4-12 chars"""
        account = make_account(first_name=first_name)

        code = engine.codes.generate(account)

        assert CODE_FORMAT.match(code)
        assert code.startswith(code_prefix(first_name))
        assert account.referral_code == code

    def test_code_is_persisted(self, engine, make_account):
        """Should be findable by code after generation"""
        account = make_account(first_name="Dana")

        code = engine.codes.generate(account)

        assert engine.accounts.get_by_code(code).id == account.id

    def test_retries_on_collision(self, engine, make_account, monkeypatch):
        """Should pick a fresh suffix when the first candidate is taken"""
        make_account(first_name="Alice", referral_code="ALICAAAA")
        newcomer = make_account(first_name="Alice")
        suffixes = iter(["AAAA", "BBBB"])
        monkeypatch.setattr(codes, "random_suffix", lambda: next(suffixes))

        code = engine.codes.generate(newcomer)

        assert code == "ALICBBBB"
        assert engine.accounts.get_by_code("ALICAAAA").id != newcomer.id

    def test_falls_back_to_account_id(self, engine, make_account, monkeypatch):
        """Should use the id-derived code once every random candidate collides"""
        make_account(first_name="Alice", referral_code="ALICAAAA")
        newcomer = make_account(first_name="Alice")
        monkeypatch.setattr(codes, "random_suffix", lambda: "AAAA")

        code = engine.codes.generate(newcomer)

        assert code.startswith(f"REF{newcomer.id}")
        assert re.fullmatch(rf"REF{newcomer.id}[0-9A-F]{{4}}", code)
        assert newcomer.referral_code == code

    def test_fallback_for_six_digit_ids_is_not_redeemable(self, engine, session, make_account, monkeypatch):
        """Should store a 13-character fallback that validation rejects as INVALID_FORMAT"""
        make_account(first_name="Alice", referral_code="ALICAAAA")
        newcomer = Account(id=123456, first_name="Alice")
        session.add(newcomer)
        session.flush()
        monkeypatch.setattr(codes, "random_suffix", lambda: "AAAA")

        code = engine.codes.generate(newcomer)

        assert code.startswith("REF123456")
        assert len(code) == 13
        assert not CODE_FORMAT.match(code)
        assert engine.accounts.get_by_code(code).id == 123456
        assert engine.resolver.validate(code).error_code == "INVALID_FORMAT"

    def test_raises_when_nothing_can_be_claimed(self, engine, make_account, monkeypatch):
        """Should raise CodeGenerationError if the fallback also keeps colliding"""
        newcomer = make_account(first_name="Alice")
        make_account(first_name="Alice", referral_code="ALICAAAA")
        make_account(first_name="Other", referral_code=f"REF{newcomer.id}FFFF")
        monkeypatch.setattr(codes, "random_suffix", lambda: "AAAA")
        monkeypatch.setattr(codes, "fallback_code", lambda account_id: f"REF{account_id}FFFF")

        generator = CodeGenerator(engine.accounts, max_attempts=3)
        with pytest.raises(CodeGenerationError) as exc_info:
            generator.generate(newcomer)

        assert exc_info.value.error_code == "CODE_GENERATION_FAILED"
        assert newcomer.referral_code is None
