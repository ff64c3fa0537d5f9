"""Tests for the payload contract shared by broker and participants."""

import pytest
from pydantic import ValidationError

from offload_contract import (
    CONTRACT_MENU_TOPIC,
    EVENT_TOPICS,
    NO_CONTRACT,
    ContractChoiceEvent,
    EventKind,
    TaskAssignmentPayload,
    TaskCompletionEvent,
    TaskMetadataEvent,
    TaskSubmissionEvent,
    Vector3,
    assignment_topic,
    completion_topic,
    event_kind_from_topic,
    normalize_vector,
    participant_event_adapter,
)


class TestTopics:
    """Topic naming."""

    def test_event_topics_cover_every_kind(self) -> None:
        """Every event kind has an inbound topic."""
        assert set(EVENT_TOPICS) == {kind.value for kind in EventKind}

    def test_kind_round_trip(self) -> None:
        """Each event topic parses back to its kind."""
        for kind, topic in EVENT_TOPICS.items():
            assert event_kind_from_topic(topic) == kind

    @pytest.mark.parametrize(
        "topic",
        ["offload/contracts", "other/events/task_metadata", "offload/events/", "offload/events/a/b"],
    )
    def test_non_event_topics(self, topic: str) -> None:
        """Other topics yield no event kind."""
        assert event_kind_from_topic(topic) is None

    def test_per_owner_topics(self) -> None:
        """Outbound topics are addressed per owner."""
        assert assignment_topic("veh-7") == "offload/assignment/veh-7"
        assert completion_topic("veh-7") == "offload/completion/veh-7"
        assert CONTRACT_MENU_TOPIC == "offload/contracts"

    def test_normalize_vector(self) -> None:
        """Mappings and short lists normalise to three floats."""
        assert normalize_vector({"x": 1, "z": 3}) == [1.0, 0.0, 3.0]
        assert normalize_vector([4, 5]) == [4.0, 5.0, 0.0]
        assert normalize_vector(None) == [0.0, 0.0, 0.0]


class TestEvents:
    """Inbound event validation."""

    def test_discriminated_by_kind(self) -> None:
        """The kind field selects the event model."""
        event = participant_event_adapter.validate_python(
            {"kind": "task_completion", "address": "veh-1"}
        )
        assert isinstance(event, TaskCompletionEvent)
        assert event.result == "Task completed"

    def test_vector_accepts_list_or_mapping(self) -> None:
        """Vectors accept lists or mappings."""
        assert Vector3.model_validate([1, 2, 3]).as_tuple() == (1.0, 2.0, 3.0)
        assert Vector3.model_validate({"y": 2}).as_tuple() == (0.0, 2.0, 0.0)

    def test_contract_choice_defaults_to_no_contract(self) -> None:
        """A bare choice declines every contract."""
        event = ContractChoiceEvent(address="veh-1")
        assert event.contract_index == NO_CONTRACT
        assert event.capacity_limit is None

    def test_contract_index_below_sentinel_rejected(self) -> None:
        """Indices below the sentinel are invalid."""
        with pytest.raises(ValidationError):
            ContractChoiceEvent(address="veh-1", contract_index=-2)

    @pytest.mark.parametrize(
        "field,value",
        [("task_resource", 0.0), ("delay_constraint", -1.0), ("task_data_size", -5.0)],
    )
    def test_task_metadata_bounds(self, field: str, value: float) -> None:
        """Task demand fields are bounded."""
        fields = {"task_resource": 1.0, "task_data_size": 1.0, "delay_constraint": 1.0}
        fields[field] = value
        with pytest.raises(ValidationError):
            TaskMetadataEvent(address="veh-1", **fields)

    def test_task_submission_event(self) -> None:
        """Submissions are routed by kind and need a positive demand."""
        event = participant_event_adapter.validate_python(
            {"kind": "task_submission", "address": "veh-1", "task_resource": 4.0}
        )
        assert isinstance(event, TaskSubmissionEvent)
        assert event.task_data_size == 0.0
        with pytest.raises(ValidationError):
            TaskSubmissionEvent(address="veh-1", task_resource=0.0)

    def test_unknown_kind_rejected(self) -> None:
        """Unknown kinds fail validation."""
        with pytest.raises(ValidationError):
            participant_event_adapter.validate_python({"kind": "teleport", "address": "x"})


class TestOutbound:
    """Outbound notification payloads."""

    def test_local_assignment_has_no_provider_id(self) -> None:
        """Local assignments carry no provider id."""
        payload = TaskAssignmentPayload(
            task_owner="veh-1", provider_address="broker", price=0.0
        )
        assert payload.provider_id is None

    def test_negative_price_rejected(self) -> None:
        """Prices cannot be negative."""
        with pytest.raises(ValidationError):
            TaskAssignmentPayload(task_owner="veh-1", provider_address="veh-2", price=-1.0)
