from __future__ import annotations

import numpy as np

from txnsim.simulation.profiles import ActionType, is_inflow

EQUILIBRIUM_FACTOR = 40
CORRECTION_STRENGTH = 3e-5


def weighted_choice(weights: dict[ActionType, float], rng: np.random.Generator) -> ActionType:
    """Pick a key with probability proportional to its weight."""
    actions = list(weights)
    p = np.array([max(weights[a], 0.0) for a in actions], dtype=float)
    total = p.sum()
    if total <= 0:
        msg = "Cannot pick an action: all weights are zero"
        raise ValueError(msg)
    return actions[int(rng.choice(len(actions), p=p / total))]


class ActionSelector:
    """Decides how many actions an agent takes in a step and which ones."""

    def select_count(self, target_count: int, weight: float, rng: np.random.Generator) -> int:
        if target_count <= 0 or weight <= 0:
            return 0
        return int(rng.binomial(target_count, min(weight, 1.0)))

    def blend_probabilities(
        self,
        agent_probabilities: dict[ActionType, float],
        step_probabilities: dict[ActionType, float] | None,
    ) -> dict[ActionType, float]:
        step_probabilities = step_probabilities or {}
        raw: dict[ActionType, float] = {}
        for action, agent_p in agent_probabilities.items():
            if action in step_probabilities:
                raw[action] = (agent_p + step_probabilities[action]) / 2
            else:
                raw[action] = agent_p
        return raw

    def spring_inflow_probability(
        self,
        prob_inflow: float,
        prob_outflow: float,
        balance: float,
        expected_avg_transaction: float,
    ) -> float:
        """Pull the inflow probability toward an equilibrium balance.

        The equilibrium sits at ``EQUILIBRIUM_FACTOR`` typical transactions; the
        further the balance is below it the likelier an inflow becomes.
        """
        equilibrium = EQUILIBRIUM_FACTOR * expected_avg_transaction
        if equilibrium > 0:
            k = 1 / equilibrium
            spring_force = k * (equilibrium - balance)
        else:
            spring_force = 0.0

        new_prob_inflow = 0.5 * (
            1
            + expected_avg_transaction * CORRECTION_STRENGTH * spring_force
            + (prob_inflow - prob_outflow)
        )
        return min(1.0, max(0.0, new_prob_inflow))

    def corrected_probabilities(
        self,
        raw: dict[ActionType, float],
        balance: float,
        expected_avg_transaction: float,
    ) -> dict[ActionType, float]:
        prob_inflow = sum(p for a, p in raw.items() if is_inflow(a))
        prob_outflow = 1 - prob_inflow
        new_prob_inflow = self.spring_inflow_probability(
            prob_inflow, prob_outflow, balance, expected_avg_transaction
        )
        new_prob_outflow = 1 - new_prob_inflow

        final: dict[ActionType, float] = {}
        for action, p in raw.items():
            if is_inflow(action):
                final[action] = p * new_prob_inflow / prob_inflow if prob_inflow > 0 else 0.0
            else:
                final[action] = p * new_prob_outflow / prob_outflow if prob_outflow > 0 else 0.0

        if sum(final.values()) <= 0:
            # the spring pushed all mass onto an empty class
            return dict(raw)
        return final

    def select_action(
        self,
        agent_probabilities: dict[ActionType, float],
        step_probabilities: dict[ActionType, float] | None,
        balance: float,
        expected_avg_transaction: float,
        rng: np.random.Generator,
    ) -> ActionType:
        raw = self.blend_probabilities(agent_probabilities, step_probabilities)
        final = self.corrected_probabilities(raw, balance, expected_avg_transaction)
        return weighted_choice(final, rng)
