"""Validation scenarios composed from the session, poller, checks and step runner."""

from settlement_validation.flows.end_to_end import EndToEndFlow, run_end_to_end
from settlement_validation.flows.roles import AdminScenario, UserScenario, run_roles

__all__ = [
    "AdminScenario",
    "EndToEndFlow",
    "UserScenario",
    "run_end_to_end",
    "run_roles",
]
