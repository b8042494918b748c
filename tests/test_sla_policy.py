import pytest
from pydantic import ValidationError

from ticketflow.config import SupportTier
from ticketflow.sla.domain import PolicyCondition, SLAConfig, SLAPolicy, SlaPolicyResolver


@pytest.mark.parametrize("priority,resolution,response", [
    ("Critical", 60, 15),
    ("urgent", 60, 15),
    (" HIGH ", 240, 60),
    ("Medium", 480, 120),
    ("Low", 960, 240),
    ("Other", 960, 240),
])
def test_default_targets_by_priority(priority, resolution, response):
    targets = SlaPolicyResolver().targets_for(priority)

    assert targets.resolution_minutes == resolution
    assert targets.response_minutes == response
    assert targets.policy_name is None


@pytest.mark.parametrize("priority", ["P7", "", None])
def test_unknown_priority_falls_back_to_default(priority):
    targets = SlaPolicyResolver().targets_for(priority)

    assert targets.resolution_minutes == 480
    assert targets.response_minutes == 120


def test_config_overrides_merge_with_defaults():
    config = SLAConfig(resolution_targets={"Critical": 30}, response_divisor=3)

    resolver = SlaPolicyResolver(config)

    assert resolver.targets_for("critical").resolution_minutes == 30
    assert resolver.targets_for("critical").response_minutes == 10
    assert resolver.targets_for("high").resolution_minutes == 240


def test_non_positive_target_is_rejected():
    with pytest.raises(ValidationError):
        SLAConfig(resolution_targets={"high": 0})


def _incident_policy(**kwargs):
    return SLAPolicy(
        name="incident-fast-track",
        conditions=[PolicyCondition(field="ticket_type", value="Incident")],
        resolution_targets={"High": 120},
        **kwargs,
    )


def test_policy_applies_only_when_attributes_given():
    resolver = SlaPolicyResolver(SLAConfig(policies=[_incident_policy()]))

    assert resolver.targets_for("High").resolution_minutes == 240

    targets = resolver.targets_for("High", {"ticket_type": "incident"})
    assert targets.resolution_minutes == 120
    assert targets.response_minutes == 30
    assert targets.policy_name == "incident-fast-track"


def test_policy_without_target_for_priority_falls_through():
    resolver = SlaPolicyResolver(SLAConfig(policies=[_incident_policy()]))

    targets = resolver.targets_for("Low", {"ticket_type": "incident"})

    assert targets.resolution_minutes == 960
    assert targets.policy_name is None


def test_inactive_policy_is_ignored():
    resolver = SlaPolicyResolver(SLAConfig(policies=[_incident_policy(is_active=False)]))

    assert resolver.targets_for("High", {"ticket_type": "incident"}).resolution_minutes == 240


def test_policy_response_target_override():
    policy = _incident_policy(response_targets={"high": 10})
    resolver = SlaPolicyResolver(SLAConfig(policies=[policy]))

    assert resolver.targets_for("High", {"ticket_type": "Incident"}).response_minutes == 10


def test_in_operator_condition():
    condition = PolicyCondition(field="ticket_type", operator="in", value=["Incident", "Outage"])

    assert condition.matches({"ticket_type": "outage"})
    assert not condition.matches({"ticket_type": "Question"})
    assert not condition.matches({})


def test_tier_roles_and_automated_markers():
    config = SLAConfig(tier_roles={"Engineer": "l2"})

    assert config.tier_for_role("engineer") == SupportTier.L2
    assert config.tier_for_role(None) is None
    assert config.is_automated("SLA Notification Bot")
    assert not config.is_automated("Alice Smith")
