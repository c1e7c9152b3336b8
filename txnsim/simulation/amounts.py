from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np

    from txnsim.simulation.profiles import ActionProfile, StepActionProfile


class AmountSampler:
    def blend(
        self,
        agent_profile: ActionProfile,
        step_profile: StepActionProfile | None,
    ) -> tuple[float, float]:
        if step_profile is None:
            return agent_profile.avg_amount, agent_profile.std_amount
        mean = (agent_profile.avg_amount + step_profile.avg_amount) / 2
        std = math.sqrt(agent_profile.std_amount**2 + step_profile.std_amount**2) / 2
        return mean, std

    def sample(
        self,
        agent_profile: ActionProfile,
        step_profile: StepActionProfile | None,
        rng: np.random.Generator,
    ) -> float:
        """Draw a strictly positive amount; profiles are validated to have a positive mean."""
        mean, std = self.blend(agent_profile, step_profile)
        amount = -1.0
        while amount <= 0:
            amount = float(rng.normal(mean, std))
        return amount
