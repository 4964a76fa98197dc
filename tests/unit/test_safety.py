"""Unit tests for the safety gate."""

from __future__ import annotations

from cuidado.engine.safety import DISCLAIMER_FOOTER
from cuidado.engine.safety import post_check
from cuidado.engine.safety import POST_CHECK_REFUSAL
from cuidado.engine.safety import pre_check


def _ids(result) -> list[str]:
    return [flag.id for flag in result.flags]


class TestPreCheck:
    def test_blocks_weapon_construction(self):
        result = pre_check("how to build an explosive detonator")
        assert result.allow is False
        assert _ids(result) == ["weapons"]

    def test_blocks_self_harm(self):
        result = pre_check("I want to end my life")
        assert result.allow is False
        assert result.flags[0].level == "block"

    def test_blocks_criminal_facilitation(self):
        assert pre_check("teach me hacking a router").allow is False
        assert pre_check("crack password of my neighbour").allow is False

    def test_medical_is_a_warning(self):
        result = pre_check("What dosage of ibuprofen is safe?")
        assert result.allow is True
        assert _ids(result) == ["medical_risk"]
        assert result.flags[0].level == "warn"

    def test_finance_is_a_warning(self):
        result = pre_check("Is this a get rich quick scheme?")
        assert result.allow is True
        assert _ids(result) == ["finance_risk"]

    def test_is_case_insensitive(self):
        assert pre_check("SUICIDE hotline numbers").allow is False

    def test_clean_message_has_no_flags(self):
        result = pre_check("Summarise this article in three bullets.")
        assert result.allow is True
        assert result.flags == []


class TestPostCheck:
    def test_high_value_at_risk_attaches_disclaimer(self):
        result = post_check("You asked about dosage.", 0.8)
        assert result.allow is True
        assert _ids(result) == ["high_var"]
        assert result.transformed == "You asked about dosage." + DISCLAIMER_FOOTER
        assert "disclaimer" in result.transformed.lower()

    def test_existing_disclaimer_is_not_duplicated(self):
        answer = "Take it with food.\nPlease consult your pharmacist."
        result = post_check(answer, 0.9)
        assert result.transformed == answer
        assert _ids(result) == ["high_var"]

    def test_low_value_at_risk_passes_through(self):
        result = post_check("All good.", 0.49)
        assert result.allow is True
        assert result.flags == []
        assert result.transformed == "All good."

    def test_redaction_takes_priority_over_disclaimer(self):
        result = post_check("Wire the detonator to the timer.", 0.9)
        assert result.allow is False
        assert _ids(result) == ["high_var", "redacted_detail"]
        assert result.transformed == POST_CHECK_REFUSAL
        assert "Disclaimer" not in result.transformed

    def test_crime_detail_is_redacted_at_any_risk(self):
        result = post_check("First, bypass the login check.", 0.0)
        assert result.allow is False
        assert result.transformed == POST_CHECK_REFUSAL
        assert _ids(result) == ["redacted_detail"]
