"""
Eligibility Ranker - who can this RFQ go to, and in what order

Eligibility is a filter (active, verified, and a process or region match when
the RFQ states criteria). Mismatch is a separate soft warning: a provider whose
declared capabilities contradict the RFQ can still be dispatched to, but only
with an operator's written justification.

Ordering is fully deterministic - rank index, then name, then id - so the same
inputs always produce the same list.

Fun fact: Sorting with explicit tie-breakers is called a "total order" - without
one, two equal providers could swap places between page loads!
"""

from typing import Iterable, Mapping

from quote_dispatch.providers.models import (
    MatchReason,
    Provider,
    ProviderMatch,
    RfqCriteria,
    VerificationStatus,
)
from quote_dispatch.providers.normalize import (
    normalize_country,
    normalize_process,
    normalize_set,
    normalize_state,
    processes_match,
)


REASON_WEIGHTS = {
    MatchReason.PROCESS_MATCH: 4,
    MatchReason.GEO_MATCH: 3,
    MatchReason.KNOWN_CONTACT: 2,
    MatchReason.VERIFIED_ACTIVE: 1,
}


def normalize_criteria(criteria: RfqCriteria) -> RfqCriteria:
    return RfqCriteria(
        process=normalize_process(criteria.process),
        material=normalize_process(criteria.material),
        ship_to_state=normalize_state(criteria.ship_to_state),
        ship_to_country=normalize_country(criteria.ship_to_country),
    )


def detect_mismatch(provider: Provider, criteria: RfqCriteria) -> list[str]:
    """
    Reasons the provider's declared capabilities contradict the RFQ

    A provider that declares nothing is never a mismatch - absence of data
    is not a contradiction.

    Args:
        provider: Candidate provider
        criteria: Normalised RFQ criteria

    Returns:
        Human-readable reasons; empty when there is no mismatch
    """
    reasons: list[str] = []

    declared_processes = normalize_set(provider.processes)
    if criteria.process and declared_processes:
        if not processes_match(criteria.process, declared_processes):
            reasons.append(f"Does not list process '{criteria.process}'")

    declared_materials = normalize_set(provider.materials)
    if criteria.material and declared_materials:
        if criteria.material not in declared_materials:
            reasons.append(f"Does not list material '{criteria.material}'")

    return reasons


class EligibilityRanker:
    """Scores, filters and orders candidate providers for one RFQ"""

    def evaluate(
        self,
        provider: Provider,
        criteria: RfqCriteria,
        rank_index: int | None = None,
    ) -> ProviderMatch:
        """
        Judge a single provider against already-normalised criteria
        """
        process_match = bool(criteria.process) and processes_match(
            criteria.process, normalize_set(provider.processes)
        )

        provider_country = normalize_country(provider.country)
        provider_states = {s for s in (normalize_state(v) for v in provider.states) if s}
        geo_match = bool(
            (criteria.ship_to_country and criteria.ship_to_country == provider_country)
            or (criteria.ship_to_state and criteria.ship_to_state in provider_states)
        )
        verified_active = (
            provider.is_active
            and provider.verification_status == VerificationStatus.VERIFIED
        )

        reasons: list[MatchReason] = []
        if process_match:
            reasons.append(MatchReason.PROCESS_MATCH)
        if geo_match:
            reasons.append(MatchReason.GEO_MATCH)
        if provider.email or provider.rfq_url:
            reasons.append(MatchReason.KNOWN_CONTACT)
        if verified_active:
            reasons.append(MatchReason.VERIFIED_ACTIVE)

        if not verified_active:
            eligible = False
        elif not criteria.has_criteria:
            eligible = True
        else:
            eligible = process_match or geo_match

        mismatch_reasons = detect_mismatch(provider, criteria)

        return ProviderMatch(
            provider=provider,
            eligible=eligible,
            mismatch=bool(mismatch_reasons),
            mismatch_reasons=mismatch_reasons,
            reasons=reasons,
            score=sum(REASON_WEIGHTS[r] for r in reasons),
            rank_index=rank_index,
        )

    def rank(
        self,
        providers: Iterable[Provider],
        criteria: RfqCriteria,
        rank_signal: Mapping[str, int] | None = None,
    ) -> list[ProviderMatch]:
        """
        Evaluate and order every candidate

        Eligible providers come first. Within each group: rank index
        ascending (providers without one last), then name
        (case-insensitive), then id.

        Args:
            providers: Candidate providers
            criteria: Raw RFQ criteria (normalised here)
            rank_signal: Upstream recommendation, provider_id -> rank index

        Returns:
            One ProviderMatch per provider, in display order
        """
        normalized = normalize_criteria(criteria)
        signal = rank_signal or {}
        matches = [
            self.evaluate(p, normalized, signal.get(p.id)) for p in providers
        ]
        return sorted(matches, key=_sort_key)

    def eligible(
        self,
        providers: Iterable[Provider],
        criteria: RfqCriteria,
        rank_signal: Mapping[str, int] | None = None,
    ) -> list[ProviderMatch]:
        return [m for m in self.rank(providers, criteria, rank_signal) if m.eligible]

    def mismatched(
        self, providers: Iterable[Provider], criteria: RfqCriteria
    ) -> list[ProviderMatch]:
        """Providers flagged as mismatched, in input order"""
        normalized = normalize_criteria(criteria)
        return [
            m for m in (self.evaluate(p, normalized) for p in providers) if m.mismatch
        ]


def _sort_key(match: ProviderMatch) -> tuple[bool, bool, int, str, str]:
    return (
        not match.eligible,
        match.rank_index is None,
        match.rank_index if match.rank_index is not None else 0,
        match.provider.name.casefold(),
        match.provider.id,
    )
