"""Unit tests for the transition engine.

These tests drive models through small processes and assert on the stored
history and the dispatched events.
"""

from __future__ import annotations

from typing import Any

import pytest

from stepflow.exceptions import (
    AlreadyStartedError,
    ConcurrentModificationError,
    NoSuchTransitionError,
    NotStartedError,
    UnknownStepError,
    UnknownTransitionError,
    ValidationFailure,
)
from stepflow.storage import InMemoryStateStore
from stepflow.workflow import (
    AllowAll,
    GrantedRoles,
    Process,
    ProcessHandler,
    SetModelStatus,
    Step,
    StepEvent,
    Transition,
    predicate,
    require_attribute,
)
from stepflow.workflow.records import StateRecord

from tests.support import Applicant, RecordingSink


def _fail(message: str):
    def _validation(_model: Any) -> None:
        raise ValidationFailure(message)

    return _validation


def _chain(store, state: StateRecord) -> list[StateRecord]:
    chain = [state]
    while chain[-1].previous_id is not None:
        previous = store.get_state(chain[-1].previous_id)
        assert previous is not None
        chain.append(previous)
    return chain


def test_start_with_empty_name_records_failed_signup(handler: ProcessHandler) -> None:
    model = Applicant(id="1")

    state = handler.start(model)

    assert state.successful is False
    assert state.step_name == "signup"
    assert state.previous_id is None
    assert len(state.errors) == 1
    assert state.errors[0].code == "validation"
    assert state.errors[0].message == "Name is required."
    assert handler.get_current_state(model) == state
    assert handler.is_complete(model) is False


def test_start_then_finish_completes_the_process(
    handler: ProcessHandler, sink: RecordingSink
) -> None:
    model = Applicant(id="1", name="Alice")

    signup = handler.start(model)
    assert signup.successful is True
    assert signup.step_name == "signup"
    assert signup.data == {"name": "Alice", "age": 0}

    complete = handler.advance(model, "finish")
    assert complete.successful is True
    assert complete.step_name == "complete"
    assert complete.previous_id == signup.id

    assert handler.is_complete(model) is True
    assert sink.names == ["onboarding.signup.reached", "onboarding.complete.reached"]
    assert [s.step_name for s in handler.get_all_states(model)] == ["complete", "signup"]


def test_start_twice_fails(handler: ProcessHandler) -> None:
    model = Applicant(id="1", name="Alice")
    handler.start(model)

    with pytest.raises(AlreadyStartedError):
        handler.start(model)


def test_start_after_failed_start_fails(handler: ProcessHandler) -> None:
    model = Applicant(id="1")
    handler.start(model)

    with pytest.raises(AlreadyStartedError):
        handler.start(model)


def test_models_are_tracked_independently(handler: ProcessHandler) -> None:
    alice = Applicant(id="1", name="Alice")
    bob = Applicant(id="2", name="Bob")

    handler.start(alice)
    handler.start(bob)
    handler.advance(alice, "finish")

    assert handler.is_complete(alice) is True
    assert handler.is_complete(bob) is False


def test_advance_before_start_fails(handler: ProcessHandler) -> None:
    with pytest.raises(NotStartedError):
        handler.advance(Applicant(id="1", name="Alice"), "finish")


def test_is_complete_before_start_fails(handler: ProcessHandler) -> None:
    with pytest.raises(NotStartedError):
        handler.is_complete(Applicant(id="1"))


def test_get_current_state_before_start_is_none(handler: ProcessHandler) -> None:
    assert handler.get_current_state(Applicant(id="1")) is None


def test_advance_with_unknown_state_fails_without_recording(handler: ProcessHandler) -> None:
    model = Applicant(id="1", name="Alice")
    signup = handler.start(model)

    with pytest.raises(NoSuchTransitionError) as excinfo:
        handler.advance(model, "skip")

    assert isinstance(excinfo.value, UnknownTransitionError)
    assert excinfo.value.step_name == "signup"
    assert excinfo.value.state_name == "skip"
    assert handler.get_current_state(model) == signup


def test_advance_from_step_missing_in_graph_fails(
    onboarding: Process, memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    model = Applicant(id="1", name="Alice")
    ProcessHandler(onboarding, memory_store, sink, AllowAll()).start(model)

    renamed = Process.from_steps(
        "onboarding",
        start_step="register",
        end_steps={"register"},
        steps=[Step(name="register")],
    )
    with pytest.raises(UnknownStepError):
        ProcessHandler(renamed, memory_store, sink, AllowAll()).advance(model, "finish")


def test_validation_collects_every_failure(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    calls: list[str] = []

    def _tracked(name: str):
        def _validation(_model: Any) -> None:
            calls.append(name)
            raise ValidationFailure(f"{name} failed", check=name)

        return _validation

    process = Process.from_steps(
        "kyc",
        start_step="identity",
        end_steps={"identity"},
        steps=[Step(name="identity", validations=(_tracked("passport"), _tracked("address")))],
    )
    handler = ProcessHandler(process, memory_store, sink, AllowAll())

    state = handler.start(Applicant(id="1"))

    assert calls == ["passport", "address"]
    assert state.successful is False
    assert [e.message for e in state.errors] == ["passport failed", "address failed"]
    assert state.errors[0].details == {"check": "passport"}
    assert state.errors[0].step == "identity"
    assert sink.names == ["kyc.identity.validation_fail"]


def test_unexpected_validation_error_propagates(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    def _broken(_model: Any) -> None:
        raise RuntimeError("boom")

    process = Process.from_steps(
        "kyc",
        start_step="identity",
        end_steps=set(),
        steps=[Step(name="identity", validations=(_broken,))],
    )
    handler = ProcessHandler(process, memory_store, sink, AllowAll())

    with pytest.raises(RuntimeError):
        handler.start(Applicant(id="1"))
    assert handler.get_current_state(Applicant(id="1")) is None


def test_access_denied_records_sole_violation_and_publishes_nothing(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    calls: list[str] = []

    def _never_called(_model: Any) -> None:
        calls.append("validated")
        raise ValidationFailure("should not run")

    process = Process.from_steps(
        "approval",
        start_step="draft",
        end_steps={"approved"},
        steps=[
            Step(name="draft", transitions={"approve": Transition(target="approved")}),
            Step(
                name="approved",
                roles=frozenset({"ROLE_MANAGER"}),
                validations=(_never_called,),
                on_invalid="draft",
            ),
        ],
    )
    handler = ProcessHandler(
        process, memory_store, sink, GrantedRoles(frozenset({"ROLE_USER"}))
    )
    model = Applicant(id="1")
    draft = handler.start(model)

    state = handler.advance(model, "approve")

    assert state.successful is False
    assert state.step_name == "approved"
    assert state.previous_id == draft.id
    assert len(state.errors) == 1
    assert state.errors[0].code == "access_denied"
    assert state.errors[0].step == "approved"
    assert calls == []
    assert sink.names == ["approval.draft.reached"]
    assert handler.get_current_state(model) == state


def test_granted_roles_reach_the_step(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    process = Process.from_steps(
        "approval",
        start_step="approved",
        end_steps={"approved"},
        steps=[Step(name="approved", roles=frozenset({"ROLE_MANAGER", "ROLE_ADMIN"}))],
    )
    handler = ProcessHandler(
        process, memory_store, sink, GrantedRoles(frozenset({"ROLE_ADMIN"}))
    )

    assert handler.start(Applicant(id="1")).successful is True


def _verification_process() -> Process:
    return Process.from_steps(
        "onboarding",
        start_step="signup",
        end_steps={"verified", "manual_review"},
        steps=[
            Step(name="signup", transitions={"verify": Transition(target="verified")}),
            Step(
                name="verified",
                validations=(predicate(lambda m: m.age >= 18, "Applicant must be an adult."),),
                on_invalid="manual_review",
            ),
            Step(name="manual_review", model_status=SetModelStatus("status", "pending_review")),
        ],
    )


def test_fallback_chains_to_the_pre_advance_state(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    handler = ProcessHandler(_verification_process(), memory_store, sink, AllowAll())
    model = Applicant(id="1", name="Alice", age=12)
    signup = handler.start(model)

    state = handler.advance(model, "verify")

    assert state.step_name == "manual_review"
    assert state.successful is True
    assert state.previous_id == signup.id

    stored = handler.get_all_states(model, success_only=False)
    assert [s.step_name for s in stored] == ["manual_review", "verified", "signup"]
    error = stored[1]
    assert error.successful is False
    assert error.previous_id == signup.id
    assert error.errors[0].message == "Applicant must be an adult."

    assert handler.get_current_state(model) == state
    assert model.status == "pending_review"
    assert sink.names == [
        "onboarding.signup.reached",
        "onboarding.verified.validation_fail",
        "onboarding.manual_review.reached",
    ]


def test_fallback_from_start_step_has_no_predecessor(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    process = Process.from_steps(
        "onboarding",
        start_step="signup",
        end_steps=set(),
        steps=[
            Step(
                name="signup",
                validations=(require_attribute("name"),),
                on_invalid="incomplete",
            ),
            Step(name="incomplete"),
        ],
    )
    handler = ProcessHandler(process, memory_store, sink, AllowAll())
    model = Applicant(id="1")

    state = handler.start(model)

    assert state.step_name == "incomplete"
    assert state.previous_id is None
    assert len(handler.get_all_states(model, success_only=False)) == 2


def test_pre_validation_failure_skips_target_pipeline(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    calls: list[str] = []

    def _target_validation(_model: Any) -> None:
        calls.append("target")

    process = Process.from_steps(
        "onboarding",
        start_step="signup",
        end_steps={"complete"},
        steps=[
            Step(
                name="signup",
                transitions={
                    "finish": Transition(
                        target="complete",
                        validations=(_fail("Terms not accepted."), _fail("Email unverified.")),
                    )
                },
            ),
            Step(
                name="complete",
                validations=(_target_validation,),
                model_status=SetModelStatus("status", "done"),
            ),
        ],
    )
    handler = ProcessHandler(process, memory_store, sink, AllowAll())
    model = Applicant(id="1", name="Alice")
    signup = handler.start(model)

    state = handler.advance(model, "finish")

    assert state.successful is False
    assert state.step_name == "complete"
    assert state.previous_id == signup.id
    assert [e.message for e in state.errors] == ["Terms not accepted.", "Email unverified."]
    assert calls == []
    assert model.status == "new"
    assert sink.names[-1] == "onboarding.complete.pre_validation_fail"
    assert handler.is_complete(model) is False


def test_advance_after_failed_pre_validation_uses_failed_step(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    process = Process.from_steps(
        "onboarding",
        start_step="signup",
        end_steps={"complete"},
        steps=[
            Step(
                name="signup",
                transitions={
                    "finish": Transition(
                        target="complete", validations=(require_attribute("name"),)
                    )
                },
            ),
            Step(name="complete", transitions={"reopen": Transition(target="signup")}),
        ],
    )
    handler = ProcessHandler(process, memory_store, sink, AllowAll())
    model = Applicant(id="1")
    handler.start(model)
    failed = handler.advance(model, "finish")

    # The current step is resolved from the last record, failed or not.
    reopened = handler.advance(model, "reopen")

    assert reopened.step_name == "signup"
    assert reopened.previous_id == failed.id


def test_status_mutation_applies_before_reached_event(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    seen: list[str] = []
    process = Process.from_steps(
        "onboarding",
        start_step="signup",
        end_steps={"signup"},
        steps=[Step(name="signup", model_status=SetModelStatus("status", "active"))],
    )

    class _Sink:
        def dispatch(self, event_name: str, event: StepEvent) -> None:
            seen.append(event.model.status)

    handler = ProcessHandler(process, memory_store, _Sink(), AllowAll())
    model = Applicant(id="1")

    handler.start(model)

    assert model.status == "active"
    assert seen == ["active"]


def test_event_payload_carries_step_model_and_state(
    handler: ProcessHandler, sink: RecordingSink
) -> None:
    model = Applicant(id="1", name="Alice")
    state = handler.start(model)

    name, event = sink.events[0]
    assert name == "onboarding.signup.reached"
    assert event.step.name == "signup"
    assert event.model is model
    assert event.state == state


def test_every_state_chains_back_to_the_first(
    memory_store: InMemoryStateStore, sink: RecordingSink
) -> None:
    process = Process.from_steps(
        "loop",
        start_step="a",
        end_steps={"c"},
        steps=[
            Step(name="a", transitions={"next": Transition(target="b")}),
            Step(
                name="b",
                transitions={"next": Transition(target="c"), "back": Transition(target="a")},
            ),
            Step(name="c"),
        ],
    )
    handler = ProcessHandler(process, memory_store, sink, AllowAll())
    model = Applicant(id="1")
    first = handler.start(model)
    for state_name in ["next", "back", "next", "next"]:
        last = handler.advance(model, state_name)

    chain = _chain(memory_store, last)

    assert [s.step_name for s in chain] == ["c", "b", "a", "b", "a"]
    assert chain[-1] == first
    assert chain[-1].previous_id is None
    assert handler.is_complete(model) is True


class _StaleStore(InMemoryStateStore):
    """Reports the first record as current, as a lagging reader would."""

    def find_current_state(self, model, process_name):
        states = self.find_all_states(model, process_name, success_only=False)
        return states[-1] if states else None


def _two_step_process() -> Process:
    return Process.from_steps(
        "loop",
        start_step="a",
        end_steps=set(),
        steps=[
            Step(name="a", transitions={"next": Transition(target="b")}),
            Step(name="b", transitions={"back": Transition(target="a")}),
        ],
    )


def test_stale_read_raises_concurrent_modification(sink: RecordingSink) -> None:
    store = _StaleStore()
    handler = ProcessHandler(_two_step_process(), store, sink, AllowAll())
    model = Applicant(id="1")
    handler.start(model)
    handler.advance(model, "next")

    with pytest.raises(ConcurrentModificationError):
        handler.advance(model, "next")
    assert len(store.find_all_states(model, "loop", success_only=False)) == 2


def test_stale_read_forks_history_without_compare_and_append(sink: RecordingSink) -> None:
    store = _StaleStore()
    handler = ProcessHandler(
        _two_step_process(), store, sink, AllowAll(), compare_and_append=False
    )
    model = Applicant(id="1")
    first = handler.start(model)
    handler.advance(model, "next")

    forked = handler.advance(model, "next")

    assert forked.previous_id == first.id
    assert len(store.find_all_states(model, "loop", success_only=False)) == 3
