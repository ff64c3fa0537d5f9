"""
Mobility-aware link feasibility for Offload-Broker.

Pure numeric functions over two participants' kinematics:
- distance and path-loss link capacity
- transmission time for a proposer's task data
- communication window: time until the pair leaves radio range,
  assuming straight-line relative motion
- the combined feasibility predicate used by the matcher

Degenerate geometry never yields NaN or inf; it resolves to the named
sentinels below.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from offload_broker.config import Settings
    from offload_broker.registry import Participant, Vec3

logger = logging.getLogger(__name__)

# Window returned when the pair never separates (or the quadratic has no
# real root, which cannot happen inside the radius).
UNBOUNDED_WINDOW = 1_000_000.0
# Window returned when the pair is already out of range.
OUT_OF_RANGE_WINDOW = 0.0
# Transmission or compute time over a link that carries nothing.
UNBOUNDED_TIME = 1_000_000_000.0


@dataclass(frozen=True)
class LinkModel:
    """Fixed constants for the link and deadline model."""

    comm_radius: float = 400.0
    bandwidth_constant: float = 3_000_000.0
    channel_gain: float = 0.1        # k in log(1 + k / d^alpha)
    path_loss_exponent: float = 2.0  # alpha
    min_link_distance: float = 1.0   # distances below this are clamped
    delay_scale: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> LinkModel:
        return cls(
            comm_radius=settings.comm_radius,
            bandwidth_constant=settings.bandwidth_constant,
            channel_gain=settings.channel_gain,
            path_loss_exponent=settings.path_loss_exponent,
            min_link_distance=settings.min_link_distance,
            delay_scale=settings.delay_scale,
        )

    @property
    def max_capacity(self) -> float:
        """Capacity at the clamped minimum distance."""
        return self.link_capacity(self.min_link_distance)

    def link_capacity(self, distance: float) -> float:
        d = max(distance, self.min_link_distance)
        try:
            attenuation = d**self.path_loss_exponent
        except OverflowError:
            return 0.0
        return self.bandwidth_constant * math.log1p(self.channel_gain / attenuation)


def _sub(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def distance(a: Participant, b: Participant) -> float:
    """Euclidean distance between current positions."""
    return math.dist(a.position, b.position)


def transmission_time(
    proposer: Participant, provider: Participant, model: LinkModel
) -> float:
    """Time to ship the proposer's task data over the pair's link."""
    capacity = model.link_capacity(distance(proposer, provider))
    if capacity <= 0:
        return UNBOUNDED_TIME
    return proposer.task_data_size / capacity


def communication_window(
    proposer: Participant, provider: Participant, model: LinkModel
) -> float:
    """
    Time until the pair exits the communication radius.

    Solves |p + t*v| = R for the first t >= 0 where p and v are the
    relative position and velocity.
    """
    rel_pos = _sub(provider.position, proposer.position)
    rel_vel = _sub(provider.velocity, proposer.velocity)
    radius = model.comm_radius

    if distance(proposer, provider) >= radius:
        return OUT_OF_RANGE_WINDOW

    a = _dot(rel_vel, rel_vel)
    if a == 0:
        return UNBOUNDED_WINDOW

    b = 2 * _dot(rel_pos, rel_vel)
    c = _dot(rel_pos, rel_pos) - radius * radius
    discriminant = b * b - 4 * a * c
    if discriminant < 0:
        logger.warning(
            "Negative discriminant between %s and %s",
            proposer.address,
            provider.address,
        )
        return UNBOUNDED_WINDOW

    root = math.sqrt(discriminant)
    exits = sorted(((-b - root) / (2 * a), (-b + root) / (2 * a)))
    for t in exits:
        if t >= 0:
            return t
    return OUT_OF_RANGE_WINDOW


def compute_time(proposer: Participant, provider: Participant) -> float:
    """Time for the provider's shared capacity to run the proposer's task."""
    if provider.offered_resource <= 0:
        return UNBOUNDED_TIME
    return proposer.task_resource / provider.offered_resource


def total_time(proposer: Participant, provider: Participant, model: LinkModel) -> float:
    return compute_time(proposer, provider) + transmission_time(proposer, provider, model)


def feasible(proposer: Participant, provider: Participant, model: LinkModel) -> bool:
    """
    True iff the provider can take the proposer's task.

    The data must arrive before the pair drifts out of range and the
    scaled end-to-end time must respect the proposer's delay constraint.
    """
    if provider.offered_resource <= 0 or provider.id == proposer.id:
        return False
    if distance(proposer, provider) >= model.comm_radius:
        return False
    tx = transmission_time(proposer, provider, model)
    if tx >= UNBOUNDED_TIME or tx > communication_window(proposer, provider, model):
        return False
    return (compute_time(proposer, provider) + tx) / model.delay_scale <= proposer.delay_constraint
