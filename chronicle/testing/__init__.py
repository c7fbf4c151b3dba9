from .aggregate_scenario import AggregateScenario, Outcome

__all__ = [
    "AggregateScenario",
    "Outcome",
]
