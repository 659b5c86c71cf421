"""
Unit Tests for Rate Resolver

Tests verify default schedules, last-matching-rule-wins overrides and gap
detection.
"""

from decimal import Decimal

import pytest

from commission_engine.calculators.rates import RateResolver, resolve_rates


class TestDefaultSchedule:
    """Without custom rules every installment gets the default rates."""

    @pytest.fixture
    def resolver(self):
        return RateResolver()

    def test_defaults_apply_to_every_installment(self, resolver, make_terms):
        terms = make_terms(default_angel_rate=Decimal("0.25"))

        for number in (1, 6, 12):
            rates = resolver.resolve(number, terms)
            assert rates.consultant == Decimal("1.5")
            assert rates.manager == Decimal("0.5")
            assert rates.angel == Decimal("0.25")
            assert rates.gap is False

    def test_custom_rules_ignored_when_flag_is_off(self, resolver, make_terms, make_rule):
        """Stored rules do nothing until use_custom_rules is set."""
        terms = make_terms(custom_rules=(make_rule("r1", 1, 12, consultant="9"),))

        rates = resolver.resolve(3, terms)

        assert rates.consultant == Decimal("1.5")


class TestCustomRules:
    """Range-keyed overrides."""

    @pytest.fixture
    def resolver(self):
        return RateResolver()

    def test_single_rule_covers_its_range(self, resolver, make_terms, make_rule):
        terms = make_terms(
            use_custom_rules=True,
            custom_rules=(make_rule("r1", 1, 10, consultant="2", manager="1"),),
        )

        rates = resolver.resolve(10, terms)

        assert rates.consultant == Decimal("2")
        assert rates.manager == Decimal("1")
        assert rates.angel == Decimal("0")
        assert rates.gap is False

    def test_last_matching_rule_wins_on_overlap(self, resolver, make_terms, make_rule):
        """Overlapping ranges: the later rule in authoring order takes precedence."""
        terms = make_terms(
            use_custom_rules=True,
            custom_rules=(
                make_rule("base", 1, 12, consultant="1"),
                make_rule("override", 4, 6, consultant="3"),
            ),
        )

        assert resolver.resolve(3, terms).consultant == Decimal("1")
        assert resolver.resolve(4, terms).consultant == Decimal("3")
        assert resolver.resolve(6, terms).consultant == Decimal("3")
        assert resolver.resolve(7, terms).consultant == Decimal("1")

    def test_earlier_rule_does_not_override_later_one(self, resolver, make_terms, make_rule):
        """Order matters, not range width."""
        terms = make_terms(
            use_custom_rules=True,
            custom_rules=(
                make_rule("narrow", 4, 6, consultant="3"),
                make_rule("wide", 1, 12, consultant="1"),
            ),
        )

        assert resolver.resolve(5, terms).consultant == Decimal("1")

    def test_unmatched_installment_is_a_gap(self, resolver, make_terms, make_rule):
        """No silent fallback to the defaults."""
        terms = make_terms(
            use_custom_rules=True,
            custom_rules=(make_rule("r1", 1, 10, consultant="2"),),
        )

        rates = resolver.resolve(11, terms)

        assert rates.gap is True
        assert rates.consultant == Decimal("0")
        assert rates.manager == Decimal("0")
        assert rates.angel == Decimal("0")

    def test_empty_rule_list_is_all_gaps(self, resolver, make_terms):
        terms = make_terms(use_custom_rules=True, custom_rules=())

        assert resolver.resolve(1, terms).gap is True

    def test_resolution_is_deterministic(self, make_terms, make_rule):
        terms = make_terms(
            use_custom_rules=True,
            custom_rules=(
                make_rule("a", 1, 8, consultant="1.1"),
                make_rule("b", 5, 12, consultant="2.2"),
            ),
        )

        first = [resolve_rates(n, terms) for n in range(1, 13)]
        second = [resolve_rates(n, terms) for n in range(1, 13)]

        assert first == second
