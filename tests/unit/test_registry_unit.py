import pytest
from fedid import audit, models
from fedid.exceptions import AlreadyBoundError

pytestmark = pytest.mark.unit


def test_find_returns_none_without_binding(registry, account):
    assert registry.find_by_remote_id("rc_1") is None
    assert registry.find_by_account_id(account.id) is None


def test_bind_creates_binding_and_audit_event(session, registry, account):
    binding = registry.bind("rc_1", account.id, token_params={"access_token": "t"})

    assert binding.remote_id == "rc_1"
    assert registry.find_by_remote_id("rc_1") == account.id
    assert registry.find_by_account_id(account.id) == "rc_1"
    events = audit.list_binding_events(session, remote_id="rc_1")
    assert [event.action for event in events] == [audit.IDENTITY_BOUND]


def test_bind_same_pair_is_idempotent_and_refreshes_token(session, registry, account):
    registry.bind("rc_1", account.id, token_params={"access_token": "old"})
    registry.bind("rc_1", account.id, token_params={"access_token": "new"})

    bindings = session.query(models.IdentityBinding).all()
    assert len(bindings) == 1
    assert bindings[0].token_params == {"access_token": "new"}
    assert len(audit.list_binding_events(session, remote_id="rc_1")) == 1


def test_bind_rejects_remote_id_bound_elsewhere(registry, account, other_account):
    registry.bind("rc_1", other_account.id)

    with pytest.raises(AlreadyBoundError) as exc_info:
        registry.bind("rc_1", account.id)

    assert exc_info.value.account_id == other_account.id
    assert registry.find_by_remote_id("rc_1") == other_account.id


def test_bind_rejects_account_already_bound_to_other_identity(registry, account):
    registry.bind("rc_1", account.id)

    with pytest.raises(AlreadyBoundError) as exc_info:
        registry.bind("rc_2", account.id)

    assert exc_info.value.remote_id == "rc_1"
    assert registry.find_by_remote_id("rc_2") is None


def test_unbind_removes_binding_and_is_noop_when_missing(session, registry, account):
    assert registry.unbind(account.id) is False

    registry.bind("rc_1", account.id)
    assert registry.unbind(account.id, reason="test") is True
    assert registry.find_by_account_id(account.id) is None

    events = audit.list_binding_events(session, account_id=account.id)
    assert [event.action for event in events] == [
        audit.IDENTITY_BOUND,
        audit.IDENTITY_UNBOUND,
    ]
    assert events[-1].payload == {"reason": "test"}


def test_losing_concurrent_writer_gets_already_bound(
    monkeypatch, session, registry, account, other_account
):
    account_id, other_account_id = account.id, other_account.id
    registry.bind("rc_1", other_account_id)

    # Simulate a writer whose pre-checks ran before the winner committed.
    monkeypatch.setattr(registry, "_by_remote_id", lambda _remote_id: None)
    monkeypatch.setattr(registry, "_by_account_id", lambda _account_id: None)

    with pytest.raises(AlreadyBoundError):
        registry.bind("rc_1", account_id)

    bindings = session.query(models.IdentityBinding).all()
    assert [(b.remote_id, b.account_id) for b in bindings] == [("rc_1", other_account_id)]
