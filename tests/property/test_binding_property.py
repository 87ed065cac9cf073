import pytest
from fedid import models
from fedid.database import Base
from fedid.directory import SqlAccountDirectory
from fedid.registry import BindingRegistry
from fedid.resolver import Bound, Conflict, ConflictResolver
from fedid.token_info import RemoteIdentityClaims
from hypothesis import given, settings
from hypothesis import strategies as st
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

pytestmark = [pytest.mark.unit, pytest.mark.property]

remote_ids = st.text(
    alphabet=st.characters(whitelist_categories=("Ll", "Lu", "Nd"), whitelist_characters="_-"),
    min_size=1,
    max_size=24,
)


def _fresh_resolver():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    first = models.Account(name="A", emails=[], phones=[])
    second = models.Account(name="B", emails=[], phones=[])
    db.add_all([first, second])
    db.commit()
    registry = BindingRegistry(db)
    return db, registry, ConflictResolver(registry, SqlAccountDirectory(db)), first.id, second.id


@settings(max_examples=25, deadline=None)
@given(remote_ids)
def test_bind_without_force_to_other_account_is_conflict(remote_id):
    db, registry, resolver, a, b = _fresh_resolver()
    claims = RemoteIdentityClaims(remote_id=remote_id)
    try:
        assert isinstance(resolver.resolve(claims, a, force=False), Bound)
        assert isinstance(resolver.resolve(claims, b, force=False), Conflict)
        assert registry.find_by_remote_id(remote_id) == a
    finally:
        db.close()


@settings(max_examples=25, deadline=None)
@given(remote_ids)
def test_binding_identical_pair_twice_is_idempotent(remote_id):
    db, registry, resolver, a, _ = _fresh_resolver()
    claims = RemoteIdentityClaims(remote_id=remote_id)
    try:
        assert isinstance(resolver.resolve(claims, a, force=False), Bound)
        assert isinstance(resolver.resolve(claims, a, force=False), Bound)
        assert db.query(models.IdentityBinding).count() == 1
    finally:
        db.close()


@settings(max_examples=25, deadline=None)
@given(remote_ids)
def test_forced_rebind_moves_identity(remote_id):
    db, registry, resolver, a, b = _fresh_resolver()
    claims = RemoteIdentityClaims(remote_id=remote_id)
    try:
        resolver.resolve(claims, a, force=False)
        assert isinstance(resolver.resolve(claims, b, force=True), Bound)
        assert registry.find_by_remote_id(remote_id) == b
        assert registry.find_by_account_id(a) is None
    finally:
        db.close()


@settings(max_examples=20, deadline=None)
@given(
    st.lists(
        st.tuples(remote_ids, st.sampled_from([0, 1]), st.booleans()),
        min_size=1,
        max_size=12,
    )
)
def test_registry_stays_injective_under_any_sequence(operations):
    db, registry, resolver, a, b = _fresh_resolver()
    accounts = (a, b)
    try:
        for remote_id, account_index, force in operations:
            resolver.resolve(
                RemoteIdentityClaims(remote_id=remote_id),
                accounts[account_index],
                force=force,
            )
        bindings = db.query(models.IdentityBinding).all()
        remote_side = [binding.remote_id for binding in bindings]
        account_side = [binding.account_id for binding in bindings]
        assert len(remote_side) == len(set(remote_side))
        assert len(account_side) == len(set(account_side))
    finally:
        db.close()
