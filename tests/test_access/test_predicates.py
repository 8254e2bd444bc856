"""Tests for the filter objects and how they compose into SQL."""
from __future__ import annotations

from datetime import date
from types import SimpleNamespace

from sqlalchemy import select
from sqlalchemy.sql.elements import False_, True_

from cargo_api.access.predicates import (
    AnyOf,
    DateRange,
    Eq,
    In,
    IsNull,
    MatchNothing,
    Search,
    Unrestricted,
    compose,
    escape_like,
    matches,
    to_clause,
)
from cargo_api.models.shipping import Consignment, Customer


def test_missing_optional_values_drop_out():
    assert to_clause(Eq(Customer.phone, None)) is None
    assert to_clause(In(Customer.customer_type, None)) is None
    assert to_clause(DateRange(Consignment.booking_date)) is None
    assert to_clause(Search((Customer.name,), "   ")) is None
    assert to_clause(Unrestricted()) is None


def test_compose_without_restrictions_is_true():
    assert isinstance(compose([]), True_)
    assert isinstance(compose([Unrestricted(), Eq(Customer.phone, None)]), True_)


def test_match_nothing_wins_over_everything():
    clause = compose([Eq(Customer.phone, "9811111111"), MatchNothing("no branch"), Unrestricted()])
    assert isinstance(clause, False_)


def test_empty_in_and_valueless_any_of_match_nothing():
    assert isinstance(to_clause(In(Customer.customer_type, [])), False_)
    assert isinstance(to_clause(AnyOf((Consignment.from_branch_id,), None)), False_)


def test_escape_like_escapes_wildcards():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


def test_search_treats_wildcards_literally(db_session, world):
    db_session.add_all(
        [
            Customer(tenant_id=world.demo.id, name="100% Cotton Mills", phone="9000000011"),
            Customer(tenant_id=world.demo.id, name="1000 Cotton Bales", phone="9000000012"),
        ]
    )
    db_session.commit()

    stmt = select(Customer.name).where(compose([Search((Customer.name,), "100%")]))
    assert db_session.scalars(stmt).all() == ["100% Cotton Mills"]


def test_search_is_case_insensitive_across_columns(db_session, world):
    db_session.add(Customer(tenant_id=world.demo.id, name="Ravi Traders", phone="9811111111"))
    db_session.commit()

    by_name = select(Customer.id).where(compose([Search((Customer.name, Customer.phone), "RAVI")]))
    by_phone = select(Customer.id).where(compose([Search((Customer.name, Customer.phone), "81111")]))
    assert len(db_session.scalars(by_name).all()) == 1
    assert len(db_session.scalars(by_phone).all()) == 1


def test_date_range_is_inclusive(db_session, world, make_consignment):
    make_consignment(world.demo, world.mum, world.dl, booking_date=date(2024, 3, 1))
    make_consignment(world.demo, world.mum, world.dl, booking_date=date(2024, 3, 31))
    make_consignment(world.demo, world.mum, world.dl, booking_date=date(2024, 4, 1))

    stmt = select(Consignment.booking_date).where(
        compose([DateRange(Consignment.booking_date, date(2024, 3, 1), date(2024, 3, 31))])
    )
    assert sorted(db_session.scalars(stmt).all()) == [date(2024, 3, 1), date(2024, 3, 31)]


def test_is_null_matches_unassigned_rows(db_session, world, make_consignment):
    make_consignment(world.demo, world.mum, world.dl)

    stmt = select(Consignment.id).where(compose([IsNull(Consignment.ogpl_id)]))
    assert len(db_session.scalars(stmt).all()) == 1


def test_matches_evaluates_any_of_in_memory():
    columns = (Consignment.from_branch_id, Consignment.to_branch_id, Consignment.current_branch_id)
    row = SimpleNamespace(from_branch_id="a", to_branch_id="b", current_branch_id="c")

    assert matches(AnyOf(columns, "b"), row)
    assert not matches(AnyOf(columns, "z"), row)
    assert not matches(AnyOf(columns, None), row)
    assert matches(Unrestricted(), row)
    assert not matches(MatchNothing(), row)
