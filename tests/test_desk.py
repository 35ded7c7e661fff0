"""
QuoteDesk Façade Tests

Every outcome reaches the caller as an OperationResult: successes carry a
value, expected refusals a stable kind, and anything unexpected a
correlation id instead of a stack trace.
"""

from quote_dispatch.kernel.actors import Actor, ActorRole
from quote_dispatch.kernel.results import INTERNAL_ERROR
from quote_dispatch.quotes.models import QuoteStatus
from tests.helpers import seed_quote, unwrap


def test_create_quote_stamps_clock(desk, test_time) -> None:
    quote = unwrap(
        desk.create_quote("cust-1", title="  Gearbox housing  ", process="Sand casting", quantity=40)
    )

    assert quote.status == QuoteStatus.SUBMITTED
    assert quote.title == "Gearbox housing"
    assert quote.created_at == quote.updated_at == test_time.now()
    stored = unwrap(desk.get_quote(quote.id))
    assert (stored.id, stored.title, stored.quantity) == (quote.id, "Gearbox housing", 40)


def test_create_quote_validation(desk) -> None:
    blank = desk.create_quote("  ")
    zero = desk.create_quote("cust-1", quantity=0)

    assert blank.error_kind == "validation_failed"
    assert "customer_id" in blank.detail["fields"]
    assert zero.error_kind == "validation_failed"
    assert "quantity" in zero.detail["fields"]


def test_customers_create_and_read_their_own_quotes(make_desk, customer) -> None:
    own_desk = make_desk(customer)
    other_desk = make_desk(Actor(id="cust-2", role=ActorRole.CUSTOMER))

    quote = unwrap(own_desk.create_quote("cust-1", title="Bracket"))

    assert own_desk.create_quote("cust-2").error_kind == "access_denied"
    assert unwrap(own_desk.get_quote(quote.id)).id == quote.id
    assert other_desk.get_quote(quote.id).error_kind == "access_denied"


def test_suppliers_cannot_create_quotes(make_desk) -> None:
    supplier = make_desk(Actor(id="p-1", role=ActorRole.SUPPLIER))

    result = supplier.create_quote("p-1")

    assert result.error_kind == "access_denied"
    assert result.detail["role"] == "supplier"


def test_denials_carry_no_correlation_id(desk) -> None:
    result = desk.get_quote("missing")

    assert not result.ok
    assert result.error_kind == "quote_not_found"
    assert result.correlation_id is None


def test_unexpected_failure_is_opaque(desk, monkeypatch) -> None:
    quote = seed_quote(desk)

    def broken(*args, **kwargs):
        raise RuntimeError("database is on fire")

    monkeypatch.setattr(desk.store, "load_quote", broken)

    result = desk.get_quote(quote.id)

    assert not result.ok
    assert result.error_kind == INTERNAL_ERROR
    assert result.correlation_id
    assert "fire" not in str(result.detail)


def test_each_call_gets_a_fresh_correlation_id(desk, monkeypatch) -> None:
    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(desk.store, "load_quote", broken)

    first = desk.get_quote("a")
    second = desk.get_quote("b")

    assert first.correlation_id != second.correlation_id


def test_background_notifications_reach_subscribers(make_desk, admin) -> None:
    desk = make_desk(admin, background_notifications=True)
    seen = []
    desk.bus.subscribe_all(seen.append)

    quote = seed_quote(desk)
    unwrap(desk.transition_quote(quote.id, "lose"))
    desk.drain_notifications()

    assert [e.event_type.value for e in seen] == ["quote_status_changed"]
