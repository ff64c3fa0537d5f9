"""Tests for mobility-aware link feasibility."""

import math

import pytest

from offload_broker import mobility
from offload_broker.mobility import (
    OUT_OF_RANGE_WINDOW,
    UNBOUNDED_TIME,
    UNBOUNDED_WINDOW,
    LinkModel,
    communication_window,
    compute_time,
    distance,
    feasible,
    total_time,
    transmission_time,
)
from offload_broker.registry import Participant


def node(
    pid: int,
    position: tuple[float, float, float] = (0.0, 0.0, 0.0),
    velocity: tuple[float, float, float] = (0.0, 0.0, 0.0),
    **fields: float,
) -> Participant:
    return Participant(
        id=pid, address=f"veh-{pid}", position=position, velocity=velocity, **fields
    )


class TestDistanceAndCapacity:
    """Geometry and the path-loss capacity model."""

    def test_euclidean_distance(self) -> None:
        """Distance is the 3-D Euclidean norm."""
        assert distance(node(0), node(1, (3.0, 4.0, 12.0))) == pytest.approx(13.0)

    def test_capacity_degrades_with_range(self) -> None:
        """Farther links carry less data."""
        model = LinkModel()
        assert model.link_capacity(10.0) > model.link_capacity(100.0) > 0

    def test_capacity_formula(self) -> None:
        """Capacity follows bandwidth * log(1 + k / d^alpha)."""
        model = LinkModel()
        expected = 3_000_000 * math.log(1 + 0.1 / 20.0**2)
        assert model.link_capacity(20.0) == pytest.approx(expected)

    def test_zero_distance_clamped_to_max_capacity(self) -> None:
        """Colocated nodes get the finite maximum capacity."""
        model = LinkModel()
        assert model.link_capacity(0.0) == model.max_capacity
        assert math.isfinite(model.max_capacity)

    def test_huge_distance_has_no_capacity(self) -> None:
        """Attenuation that overflows a float yields zero capacity."""
        assert LinkModel().link_capacity(1e200) == 0.0

    def test_transmission_time_colocated(self) -> None:
        """Transmission time at distance zero uses the maximum capacity."""
        model = LinkModel()
        proposer = node(0, task_data_size=1000.0)
        tx = transmission_time(proposer, node(1), model)
        assert tx == pytest.approx(1000.0 / model.max_capacity)
        assert math.isfinite(tx)

    def test_dead_link_uses_time_sentinel(self) -> None:
        """A link without capacity takes the unbounded time sentinel."""
        model = LinkModel()
        proposer = node(0, task_data_size=10.0)
        assert transmission_time(proposer, node(1, (1e200, 0.0, 0.0)), model) == UNBOUNDED_TIME
        assert compute_time(proposer, node(1, offered_resource=0.0)) == UNBOUNDED_TIME


class TestCommunicationWindow:
    """First exit time from the communication radius."""

    def test_out_of_range_is_zero(self) -> None:
        """A pair already beyond the radius has no window."""
        window = communication_window(node(0), node(1, (500.0, 0.0, 0.0)), LinkModel())
        assert window == OUT_OF_RANGE_WINDOW == 0.0

    def test_exactly_on_radius_is_zero(self) -> None:
        """The radius itself counts as out of range."""
        window = communication_window(node(0), node(1, (400.0, 0.0, 0.0)), LinkModel())
        assert window == 0.0

    @pytest.mark.parametrize("separation", [0.0, 10.0, 250.0, 399.0])
    def test_identical_velocity_is_unbounded(self, separation: float) -> None:
        """Zero relative velocity never separates the pair."""
        velocity = (12.0, -3.0, 0.5)
        window = communication_window(
            node(0, (0.0, 0.0, 0.0), velocity),
            node(1, (separation, 0.0, 0.0), velocity),
            LinkModel(),
        )
        assert window == UNBOUNDED_WINDOW

    def test_out_of_range_wins_over_zero_relative_velocity(self) -> None:
        """Range is checked before relative motion."""
        window = communication_window(node(0), node(1, (0.0, 401.0, 0.0)), LinkModel())
        assert window == 0.0

    def test_separating_pair(self) -> None:
        """Receding pair exits at the positive root."""
        # |100 + 10t| = 400 -> t = 30
        window = communication_window(
            node(0), node(1, (100.0, 0.0, 0.0), (10.0, 0.0, 0.0)), LinkModel()
        )
        assert window == pytest.approx(30.0)

    def test_approaching_pair_takes_first_nonnegative_exit(self) -> None:
        """Approaching pair passes each other before exiting."""
        # |100 - 10t| = 400 -> roots -30 and 50; the pair passes and exits at 50
        window = communication_window(
            node(0), node(1, (100.0, 0.0, 0.0), (-10.0, 0.0, 0.0)), LinkModel()
        )
        assert window == pytest.approx(50.0)

    def test_relative_motion_uses_both_velocities(self) -> None:
        """Only the velocity difference matters."""
        window = communication_window(
            node(0, velocity=(-5.0, 0.0, 0.0)),
            node(1, (100.0, 0.0, 0.0), (5.0, 0.0, 0.0)),
            LinkModel(),
        )
        assert window == pytest.approx(30.0)

    def test_custom_radius(self) -> None:
        """Radius comes from the link model."""
        window = communication_window(
            node(0),
            node(1, (0.0, 0.0, 10.0), (0.0, 0.0, 10.0)),
            LinkModel(comm_radius=50.0),
        )
        assert window == pytest.approx(4.0)

    def test_negative_discriminant_is_unbounded(self, monkeypatch, caplog) -> None:
        """A quadratic without real roots falls back to the sentinel and warns."""
        # a = 1, p.v = 0, |p|^2 = 1e6 > R^2 -> discriminant -4c < 0
        values = iter([1.0, 0.0, 1_000_000.0])
        monkeypatch.setattr(mobility, "_dot", lambda a, b: next(values))

        window = communication_window(
            node(0), node(1, (10.0, 0.0, 0.0), (1.0, 0.0, 0.0)), LinkModel()
        )

        assert window == UNBOUNDED_WINDOW
        assert "Negative discriminant" in caplog.text


class TestFeasibility:
    """Combined window and deadline predicate."""

    def test_close_stationary_pair_is_feasible(self) -> None:
        """Nearby provider with enough capacity meets the deadline."""
        model = LinkModel()
        proposer = node(0, task_resource=10.0, task_data_size=1000.0, delay_constraint=1.0)
        provider = node(1, (10.0, 0.0, 0.0), offered_resource=5.0)

        assert compute_time(proposer, provider) == pytest.approx(2.0)
        assert total_time(proposer, provider, model) == pytest.approx(
            2.0 + transmission_time(proposer, provider, model)
        )
        assert feasible(proposer, provider, model)

    def test_deadline_violation(self) -> None:
        """Scaled end-to-end time above the constraint is infeasible."""
        proposer = node(0, task_resource=10.0, task_data_size=1000.0, delay_constraint=0.1)
        provider = node(1, (10.0, 0.0, 0.0), offered_resource=5.0)
        assert not feasible(proposer, provider, LinkModel())

    def test_delay_scale_relaxes_deadline(self) -> None:
        """A larger delay scale admits slower links."""
        proposer = node(0, task_resource=10.0, task_data_size=1000.0, delay_constraint=0.1)
        provider = node(1, (10.0, 0.0, 0.0), offered_resource=5.0)
        assert feasible(proposer, provider, LinkModel(delay_scale=100.0))

    def test_window_too_short(self) -> None:
        """Data that cannot arrive before the pair separates is infeasible."""
        proposer = node(0, task_resource=1.0, task_data_size=1000.0, delay_constraint=1e9)
        provider = node(1, (399.0, 0.0, 0.0), (100.0, 0.0, 0.0), offered_resource=5.0)
        assert not feasible(proposer, provider, LinkModel())

    def test_out_of_range_without_data(self) -> None:
        """An empty payload does not make an out-of-range provider usable."""
        proposer = node(0, task_resource=1.0, task_data_size=0.0, delay_constraint=1e9)
        provider = node(1, (500.0, 0.0, 0.0), offered_resource=5.0)
        assert not feasible(proposer, provider, LinkModel())

    def test_extreme_positions_do_not_raise(self) -> None:
        """Astronomically distant nodes are simply infeasible."""
        proposer = node(0, task_resource=1.0, task_data_size=1.0, delay_constraint=1e9)
        provider = node(1, (1e200, 0.0, 0.0), offered_resource=5.0)
        huge_radius = LinkModel(comm_radius=1e300)

        assert not feasible(proposer, provider, LinkModel())
        assert not feasible(proposer, provider, huge_radius)

    def test_zero_offer_never_feasible(self) -> None:
        """Participants without a contract are never providers."""
        proposer = node(0, task_resource=1.0, task_data_size=1.0, delay_constraint=1e9)
        provider = node(1, (1.0, 0.0, 0.0), offered_resource=0.0)
        assert not feasible(proposer, provider, LinkModel())

    def test_self_never_feasible(self) -> None:
        """A participant cannot offload to itself."""
        participant = node(0, task_resource=1.0, task_data_size=1.0,
                           delay_constraint=1e9, offered_resource=5.0)
        assert not feasible(participant, participant, LinkModel())
