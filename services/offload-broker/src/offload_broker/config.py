"""Configuration settings for Offload-Broker service."""

from enum import Enum

from pydantic import model_validator
from pydantic_settings import BaseSettings


class AddressPolicy(str, Enum):
    """How events from never-seen participant addresses are treated."""

    STRICT = "strict"
    AUTO = "auto"


class FallbackPolicy(str, Enum):
    """What happens to a proposer that has no feasible provider left."""

    LOCAL = "local"
    NONE = "none"


class Settings(BaseSettings):
    """Service configuration loaded from environment variables."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8004
    debug: bool = False

    mqtt_broker_host: str = "localhost"
    mqtt_broker_port: int = 1883
    enable_mqtt: bool = True

    # Contract solver oracle
    solver_url: str = "http://localhost:9090"
    solver_timeout_seconds: float = 30.0
    unit_benefit: float = 10.0
    computation_capability: float = 100.0
    duration: int = 1
    type_probability: list[float] = [0.2, 0.3, 0.5]
    total_vehicles: int = 20
    delta_min: float = 1.0
    delta_max: float = 10.0

    # Link model
    comm_radius: float = 400.0
    bandwidth_constant: float = 3_000_000.0
    channel_gain: float = 0.1
    path_loss_exponent: float = 2.0
    min_link_distance: float = 1.0
    delay_scale: float = 10.0

    # Auction
    price_increment: float = 0.001
    round_ceiling: int = 10_000
    random_retention_interval: int = 1000
    random_seed: int | None = None
    task_assignment_threshold: int = 5

    address_policy: AddressPolicy = AddressPolicy.STRICT
    fallback_policy: FallbackPolicy = FallbackPolicy.LOCAL
    local_execution_address: str = "broker"

    model_config = {"env_prefix": "", "case_sensitive": False}

    @model_validator(mode="after")
    def _validate_auction(self) -> "Settings":
        if self.price_increment <= 0:
            raise ValueError("PRICE_INCREMENT must be positive")
        if self.round_ceiling < 1 or self.random_retention_interval < 1:
            raise ValueError("ROUND_CEILING and RANDOM_RETENTION_INTERVAL must be >= 1")
        if abs(sum(self.type_probability) - 1.0) > 1e-6:
            raise ValueError("TYPE_PROBABILITY must sum to 1")
        return self
