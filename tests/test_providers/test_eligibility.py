"""
Eligibility Ranker Tests

Ordering must be total and repeatable; mismatch is a soft flag independent
of eligibility.
"""

from quote_dispatch.providers.eligibility import EligibilityRanker, detect_mismatch, normalize_criteria
from quote_dispatch.providers.models import MatchReason, RfqCriteria
from tests.helpers import build_provider, seed_providers, seed_quote, unwrap

CNC_IN_TEXAS = RfqCriteria(process="CNC Machining", ship_to_state="Texas")


def ids(matches) -> list[str]:
    return [m.provider.id for m in matches]


def test_eligible_requires_verified_and_active() -> None:
    ranker = EligibilityRanker()
    criteria = normalize_criteria(CNC_IN_TEXAS)

    assert ranker.evaluate(build_provider("p-1"), criteria).eligible
    assert not ranker.evaluate(build_provider("p-2", verified=False), criteria).eligible
    assert not ranker.evaluate(build_provider("p-3", active=False), criteria).eligible


def test_geo_match_alone_is_eligible() -> None:
    ranker = EligibilityRanker()
    criteria = normalize_criteria(CNC_IN_TEXAS)
    provider = build_provider("p-1", processes=["sheet metal"], states=["tx"], country="Canada")

    match = ranker.evaluate(provider, criteria)

    assert match.eligible
    assert MatchReason.GEO_MATCH in match.reasons
    assert MatchReason.PROCESS_MATCH not in match.reasons


def test_no_process_or_geo_match_is_ineligible() -> None:
    ranker = EligibilityRanker()
    criteria = normalize_criteria(CNC_IN_TEXAS)
    provider = build_provider("p-1", processes=["injection molding"], country="Canada")

    assert not ranker.evaluate(provider, criteria).eligible


def test_without_criteria_every_verified_active_provider_is_eligible() -> None:
    ranker = EligibilityRanker()

    matches = ranker.rank(
        [build_provider("p-1", processes=[]), build_provider("p-2", verified=False)],
        RfqCriteria(material="steel"),
    )

    assert [(m.provider.id, m.eligible) for m in matches] == [("p-1", True), ("p-2", False)]


def test_score_sums_reason_weights() -> None:
    ranker = EligibilityRanker()
    criteria = normalize_criteria(RfqCriteria(process="cnc", ship_to_country="USA"))

    match = ranker.evaluate(build_provider("p-1", country="United States"), criteria)

    # process 4 + geo 3 + contact 2 + verified 1
    assert match.score == 10


def test_rank_orders_eligible_first_then_name_then_id() -> None:
    providers = [
        build_provider("p-4", name="Beta Forge", verified=False),
        build_provider("p-3", name="Zeta Works"),
        build_provider("p-2", name="acme"),
        build_provider("p-1", name="Acme"),
    ]

    matches = EligibilityRanker().rank(providers, CNC_IN_TEXAS)

    assert ids(matches) == ["p-1", "p-2", "p-3", "p-4"]


def test_rank_signal_comes_before_name() -> None:
    providers = [
        build_provider("p-1", name="Acme"),
        build_provider("p-2", name="Beta"),
        build_provider("p-3", name="Zeta"),
    ]

    matches = EligibilityRanker().rank(providers, CNC_IN_TEXAS, rank_signal={"p-3": 1, "p-2": 2})

    assert ids(matches) == ["p-3", "p-2", "p-1"]
    assert matches[-1].rank_index is None


def test_rank_is_repeatable() -> None:
    providers = [build_provider(f"p-{i}", name="Same Name") for i in range(6)]
    ranker = EligibilityRanker()

    first = ids(ranker.rank(providers, CNC_IN_TEXAS))
    second = ids(ranker.rank(list(reversed(providers)), CNC_IN_TEXAS))

    assert first == second == [f"p-{i}" for i in range(6)]


def test_mismatch_on_declared_process() -> None:
    criteria = normalize_criteria(RfqCriteria(process="CNC Machining"))

    assert detect_mismatch(build_provider("p-1", processes=["injection molding"]), criteria)
    assert not detect_mismatch(build_provider("p-2", processes=["cnc"]), criteria)
    # Declaring nothing is not a contradiction
    assert not detect_mismatch(build_provider("p-3", processes=[]), criteria)


def test_mismatch_on_declared_material() -> None:
    criteria = normalize_criteria(RfqCriteria(material="Aluminum 6061"))

    reasons = detect_mismatch(build_provider("p-1", materials=["Steel"]), criteria)

    assert reasons == ["Does not list material 'aluminum 6061'"]
    assert not detect_mismatch(build_provider("p-2", materials=["aluminum 6061"]), criteria)


def test_mismatched_provider_can_still_be_eligible() -> None:
    criteria = normalize_criteria(RfqCriteria(process="cnc", material="titanium"))

    match = EligibilityRanker().evaluate(build_provider("p-1", materials=["steel"]), criteria)

    assert match.eligible
    assert match.mismatch


def test_desk_ranks_every_registered_provider(desk) -> None:
    seed_providers(
        desk,
        build_provider("p-1", name="Zeta Works"),
        build_provider("p-2", name="Acme", verified=False),
        build_provider("p-3", name="Beta Forge"),
    )
    quote = seed_quote(desk, process="cnc machining", material=None)

    matches = unwrap(desk.rank_providers(quote.id))

    assert ids(matches) == ["p-3", "p-1", "p-2"]


def test_rank_providers_is_admin_only(make_desk, desk, customer) -> None:
    quote = seed_quote(desk)

    result = make_desk(customer).rank_providers(quote.id)

    assert result.error_kind == "access_denied"
