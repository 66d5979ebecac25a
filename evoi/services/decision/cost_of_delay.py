from dataclasses import dataclass

from evoi.services.decision.inputs import DAYS_PER_YEAR, TestDesign


@dataclass(frozen=True)
class CostOfDelay:
    cost_of_delay_dollars: float
    daily_opportunity_cost: float
    applies: bool  # False when the prior mean does not favour shipping


def calculate_cost_of_delay(k: float, prior_mean: float, threshold_l: float, design: TestDesign) -> CostOfDelay:
    """Prior-mean value forgone by holding a likely winner back while testing.

    Informational only: Net Value already prices delay through its simulated
    windows, so this figure is never subtracted from anything.
    """
    daily_value = k * (prior_mean - threshold_l) / DAYS_PER_YEAR
    if daily_value <= 0:
        return CostOfDelay(cost_of_delay_dollars=0.0, daily_opportunity_cost=daily_value, applies=False)

    during_test = (1 - design.exposed_fraction) * daily_value * design.duration_days
    during_latency = daily_value * design.latency_days
    return CostOfDelay(
        cost_of_delay_dollars=during_test + during_latency,
        daily_opportunity_cost=daily_value,
        applies=True,
    )
