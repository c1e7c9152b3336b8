from __future__ import annotations

import numpy as np
import pytest

from txnsim.simulation.profiles import INFLOW_ACTIONS, ActionType
from txnsim.simulation.selector import ActionSelector, weighted_choice

AGENT_PROBS = {
    ActionType.CASH_IN: 0.2,
    ActionType.CASH_OUT: 0.3,
    ActionType.DEBIT: 0.05,
    ActionType.PAYMENT: 0.3,
    ActionType.TRANSFER: 0.1,
    ActionType.DEPOSIT: 0.05,
}

STEP_PROBS = {
    ActionType.CASH_IN: 0.1,
    ActionType.CASH_OUT: 0.4,
    ActionType.DEBIT: 0.05,
    ActionType.PAYMENT: 0.35,
    ActionType.TRANSFER: 0.05,
    ActionType.DEPOSIT: 0.05,
}


class TestSelectCount:
    def test_zero_target_or_weight(self) -> None:
        selector = ActionSelector()
        rng = np.random.default_rng(1)
        assert selector.select_count(0, 0.5, rng) == 0
        assert selector.select_count(100, 0.0, rng) == 0

    def test_full_weight_takes_every_trial(self) -> None:
        selector = ActionSelector()
        rng = np.random.default_rng(1)
        assert selector.select_count(37, 1.0, rng) == 37
        assert selector.select_count(37, 3.0, rng) == 37

    def test_binomial_mean(self) -> None:
        selector = ActionSelector()
        rng = np.random.default_rng(1)
        draws = [selector.select_count(200, 0.1, rng) for _ in range(2000)]
        assert all(0 <= d <= 200 for d in draws)
        assert abs(np.mean(draws) - 20) < 1.0


class TestBlendProbabilities:
    def test_average_when_step_defines_action(self) -> None:
        raw = ActionSelector().blend_probabilities(AGENT_PROBS, STEP_PROBS)
        assert raw[ActionType.CASH_IN] == pytest.approx(0.15)
        assert raw[ActionType.CASH_OUT] == pytest.approx(0.35)
        assert sum(raw.values()) == pytest.approx(1.0)

    def test_agent_only_when_step_missing(self) -> None:
        raw = ActionSelector().blend_probabilities(AGENT_PROBS, {ActionType.PAYMENT: 0.5})
        assert raw[ActionType.PAYMENT] == pytest.approx(0.4)
        assert raw[ActionType.TRANSFER] == pytest.approx(0.1)

        raw = ActionSelector().blend_probabilities(AGENT_PROBS, None)
        assert raw == AGENT_PROBS


class TestSpringCorrection:
    def test_known_value(self) -> None:
        # equilibrium 40_000, balance 0 -> spring force 1
        p = ActionSelector().spring_inflow_probability(0.5, 0.5, 0.0, 1000.0)
        assert p == pytest.approx(0.5 * (1 + 1000.0 * 3e-5))

    def test_neutral_at_equilibrium(self) -> None:
        p = ActionSelector().spring_inflow_probability(0.3, 0.7, 40_000.0, 1000.0)
        assert p == pytest.approx(0.3)

    def test_clamped(self) -> None:
        selector = ActionSelector()
        assert selector.spring_inflow_probability(0.5, 0.5, -1e12, 1000.0) == 1.0
        assert selector.spring_inflow_probability(0.5, 0.5, 1e12, 1000.0) == 0.0

    def test_zero_expected_transaction_has_no_spring(self) -> None:
        p = ActionSelector().spring_inflow_probability(0.25, 0.75, 1e6, 0.0)
        assert p == pytest.approx(0.25)

    @pytest.mark.parametrize("balance", [-5e6, -1000.0, 0.0, 2e5, 5e6, 1e9])  # type: ignore[misc]
    def test_classes_renormalized(self, balance: float) -> None:
        selector = ActionSelector()
        raw = selector.blend_probabilities(AGENT_PROBS, STEP_PROBS)
        prob_inflow = sum(p for a, p in raw.items() if a in INFLOW_ACTIONS)
        new_inflow = selector.spring_inflow_probability(prob_inflow, 1 - prob_inflow, balance, 5000.0)

        final = selector.corrected_probabilities(raw, balance, 5000.0)
        inflow_mass = sum(p for a, p in final.items() if a in INFLOW_ACTIONS)
        outflow_mass = sum(p for a, p in final.items() if a not in INFLOW_ACTIONS)

        assert 0.0 <= new_inflow <= 1.0
        assert inflow_mass == pytest.approx(new_inflow)
        assert outflow_mass == pytest.approx(1 - new_inflow)
        assert sum(final.values()) == pytest.approx(1.0)

    def test_empty_inflow_class_contributes_nothing(self) -> None:
        selector = ActionSelector()
        raw = {ActionType.PAYMENT: 0.6, ActionType.TRANSFER: 0.4}
        new_inflow = selector.spring_inflow_probability(0.0, 1.0, -1e4, 1000.0)
        final = selector.corrected_probabilities(raw, -1e4, 1000.0)

        assert set(final) == set(raw)
        assert sum(final.values()) == pytest.approx(1 - new_inflow)

    def test_falls_back_to_raw_when_spring_empties_everything(self) -> None:
        raw = {ActionType.CASH_IN: 1.0}
        final = ActionSelector().corrected_probabilities(raw, 1e12, 1000.0)
        assert final == raw


class TestSelectAction:
    def test_never_picks_zero_probability_action(self) -> None:
        selector = ActionSelector()
        rng = np.random.default_rng(3)
        agent = {ActionType.PAYMENT: 0.7, ActionType.CASH_IN: 0.3, ActionType.DEBIT: 0.0}
        picks = {
            selector.select_action(agent, None, 1000.0, 1000.0, rng) for _ in range(500)
        }
        assert ActionType.DEBIT not in picks
        assert picks == {ActionType.PAYMENT, ActionType.CASH_IN}

    def test_low_balance_favours_inflow(self) -> None:
        selector = ActionSelector()
        rng = np.random.default_rng(3)
        picks = [
            selector.select_action(AGENT_PROBS, STEP_PROBS, -1e9, 5000.0, rng) for _ in range(200)
        ]
        assert all(p in INFLOW_ACTIONS for p in picks)

    def test_reproducible(self) -> None:
        selector = ActionSelector()
        rng_a = np.random.default_rng(11)
        rng_b = np.random.default_rng(11)
        first = [selector.select_action(AGENT_PROBS, STEP_PROBS, 1000.0, 500.0, rng_a) for _ in range(50)]
        second = [selector.select_action(AGENT_PROBS, STEP_PROBS, 1000.0, 500.0, rng_b) for _ in range(50)]
        assert first == second

    def test_weighted_choice_rejects_all_zero(self) -> None:
        with pytest.raises(ValueError, match="all weights are zero"):
            weighted_choice({ActionType.PAYMENT: 0.0}, np.random.default_rng(0))

    def test_weighted_choice_frequencies(self) -> None:
        rng = np.random.default_rng(5)
        weights = {ActionType.PAYMENT: 3.0, ActionType.CASH_IN: 1.0, ActionType.DEBIT: 0.0}
        picks = [weighted_choice(weights, rng) for _ in range(4000)]
        assert ActionType.DEBIT not in picks
        assert picks.count(ActionType.PAYMENT) / len(picks) == pytest.approx(0.75, abs=0.03)

    def test_weighted_choice_unnormalised_weights(self) -> None:
        rng = np.random.default_rng(0)
        weights = {ActionType.TRANSFER: 1e-12, ActionType.DEPOSIT: 0.0}
        assert weighted_choice(weights, rng) is ActionType.TRANSFER
