"""
Unit tests for program configuration.

Tests focus on:
- Versioned snapshots and carried-over settings
- The program-keyed view and public descriptions
"""
import pytest

from referral_engine.referral.enums import AccountType, ProgramType
from referral_engine.referral.programs import (
    PROGRAM_MATRIX,
    describe_program,
    format_dollars,
    programs_for_referrer,
    resolve_program,
)


class TestProgramMatrix:
    def test_every_pair_has_a_program(self):
        """Should map all four type pairs to distinct programs"""
        assert len(PROGRAM_MATRIX) == 4
        assert set(PROGRAM_MATRIX.values()) == set(ProgramType)

    def test_resolve(self):
        assert resolve_program(AccountType.CLEANER, AccountType.HOMEOWNER) is ProgramType.CLEANER_TO_CLIENT

    def test_programs_for_referrer(self):
        """Should list the programs an account type can refer into"""
        assert set(programs_for_referrer(AccountType.HOMEOWNER)) == {
            ProgramType.CLIENT_TO_CLIENT,
            ProgramType.CLIENT_TO_CLEANER,
        }


class TestProgramConfigRepository:
    """Tests for ProgramConfigRepository"""

    def test_no_active_config(self, engine):
        """Should return None before anything is stored"""
        assert engine.configs.get_active() is None
        assert engine.configs.get_formatted() is None

    def test_first_update_starts_from_defaults(self, engine):
        """Should fill unspecified settings with the defaults"""
        config = engine.configs.update_config(
            {"client_to_client": {"enabled": True, "referrer_reward": 4000}},
            change_note="Launch",
        )

        assert config.is_active is True
        assert config.client_to_client_referrer_reward == 4000
        assert config.client_to_client_referred_reward == 2500
        assert config.client_to_cleaner_cleanings_required == 3
        assert config.cleaner_to_cleaner_reward_type == "bonus"
        assert config.change_note == "Launch"

    def test_update_carries_settings_over(self, engine, make_account):
        """Should copy the previous snapshot and deactivate it"""
        owner = make_account(first_name="Olga", is_owner=True)
        first = engine.configs.update_config({"client_to_client": {"enabled": True, "max_per_month": 5}})
        second = engine.configs.update_config(
            {"client_to_cleaner": {"enabled": True}},
            updated_by_id=owner.id,
            change_note="Open cleaner referrals",
        )

        assert first.is_active is False
        assert engine.configs.get_active().id == second.id
        assert second.client_to_client_enabled is True
        assert second.client_to_client_max_per_month == 5
        assert second.client_to_cleaner_enabled is True

    def test_history_newest_first(self, engine, make_account):
        """Should list snapshots newest first with the author loaded"""
        owner = make_account(first_name="Olga", is_owner=True)
        first = engine.configs.update_config({"client_to_client": {"enabled": True}})
        second = engine.configs.update_config({"client_to_client": {"enabled": False}}, updated_by_id=owner.id)

        history = engine.configs.get_history(limit=10)

        assert [config.id for config in history] == [second.id, first.id]
        assert history[0].updated_by.first_name == "Olga"
        assert history[1].updated_by is None

    def test_unknown_setting(self, engine):
        """Should reject settings that do not exist for the program"""
        with pytest.raises(ValueError):
            engine.configs.update_config({"client_to_cleaner": {"referred_reward": 100}})

    def test_unknown_program(self, engine):
        with pytest.raises(ValueError):
            engine.configs.update_config({"owner_to_owner": {"enabled": True}})

    def test_formatted_view(self, engine):
        """Should expose only the settings that apply to each program"""
        engine.configs.update_config({"cleaner_to_client": {"enabled": True}})

        formatted = engine.configs.get_formatted()

        assert set(formatted) == {program.value for program in ProgramType}
        assert "referred_reward" in formatted["client_to_client"]
        assert "referred_reward" not in formatted["client_to_cleaner"]
        assert "discount_percent" not in formatted["cleaner_to_cleaner"]
        assert formatted["cleaner_to_client"]["discount_percent"] == 10.0
        assert formatted["cleaner_to_client"]["min_referrals"] == 3
        assert "referrer_reward" not in formatted["cleaner_to_client"]


class TestDescriptions:
    def test_format_dollars(self):
        assert format_dollars(2500) == "$25.00"
        assert format_dollars(5) == "$0.05"

    def test_client_to_client(self):
        program = describe_program(
            ProgramType.CLIENT_TO_CLIENT,
            {"referrer_reward": 2500, "referred_reward": 2500, "cleanings_required": 1},
        )

        assert program["name"] == "Refer a Friend"
        assert program["description"] == "Give $25.00, Get $25.00"

    def test_client_to_cleaner(self):
        program = describe_program(
            ProgramType.CLIENT_TO_CLEANER,
            {"referrer_reward": 5000, "cleanings_required": 3},
        )

        assert program["description"] == "Earn $50.00 when they complete 3 cleaning(s)"

    def test_cleaner_to_client(self):
        program = describe_program(
            ProgramType.CLEANER_TO_CLIENT,
            {"discount_percent": 10.0, "min_referrals": 3},
        )

        assert program["description"] == "Refer 3 clients for a 10% discount"
