"""
SQLite persistence store for quotes, destinations, offers, awards and capacity

Every invariant that must survive concurrent callers is enforced here, in the
database, not by read-then-write checks in handlers:
- one destination per (quote_id, provider_id)       UNIQUE constraint
- one offer per (quote_id, provider_id)             UNIQUE constraint
- one award per quote                               PRIMARY KEY(quote_id)
- status changes                                    UPDATE ... WHERE status = ?
- first-touch dispatch timestamp                    UPDATE ... WHERE ... IS NULL
- feedback appended once                            UPDATE ... WHERE ... IS NULL

Writes run inside BEGIN IMMEDIATE transactions and are retried on lock
contention.

Fun fact: SQLite is the most widely deployed database engine in the world -
there are likely over a trillion SQLite databases in active use!
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator, Protocol

from quote_dispatch.awards.models import Award, FeedbackConfidence, FeedbackReason
from quote_dispatch.capacity.models import CapacitySnapshot, CapacityUpdateRequest
from quote_dispatch.dispatch.models import Destination, DestinationStatus
from quote_dispatch.kernel.errors import StoreError, WinnerExists
from quote_dispatch.kernel.events import DomainEvent
from quote_dispatch.kernel.logging import get_logger
from quote_dispatch.kernel.retry import retry_on_sqlite_lock
from quote_dispatch.offers.models import Offer, OfferStatus
from quote_dispatch.providers.models import DispatchMode, Provider
from quote_dispatch.quotes.models import Quote, QuoteStatus

logger = get_logger(__name__)


class Store(Protocol):
    """Narrow persistence interface consumed by the handlers"""

    def load_quote(self, quote_id: str) -> Quote | None: ...

    def save_quote(self, quote: Quote) -> None: ...

    def update_quote_status(
        self, quote_id: str, expected: QuoteStatus, new: QuoteStatus, at: datetime
    ) -> bool: ...

    def load_provider(self, provider_id: str) -> Provider | None: ...

    def load_providers(self, provider_ids: Iterable[str] | None = None) -> list[Provider]: ...

    def load_destination(self, destination_id: str) -> Destination | None: ...

    def load_destination_by_token(self, offer_token: str) -> Destination | None: ...

    def load_destinations(self, quote_id: str) -> list[Destination]: ...

    def insert_destinations(self, destinations: list[Destination]) -> list[Destination]: ...

    def mark_dispatch_started(self, destination_id: str, at: datetime) -> bool: ...

    def mark_submitted(
        self,
        destination_id: str,
        allowed_from: Iterable[DestinationStatus],
        mode: DispatchMode,
        notes: str | None,
        at: datetime,
    ) -> bool: ...

    def update_destination_status(
        self,
        destination_id: str,
        status: DestinationStatus,
        error_message: str | None,
        at: datetime,
    ) -> None: ...

    def load_offer(self, offer_id: str) -> Offer | None: ...

    def load_offers(self, quote_id: str) -> list[Offer]: ...

    def save_offer(self, offer: Offer) -> Offer: ...

    def withdraw_offer(self, quote_id: str, provider_id: str, at: datetime) -> bool: ...

    def load_award(self, quote_id: str) -> Award | None: ...

    def save_award(
        self, award: Award, expected_status: QuoteStatus, won_status: QuoteStatus
    ) -> bool: ...

    def record_award_feedback(
        self,
        quote_id: str,
        reason: FeedbackReason,
        confidence: FeedbackConfidence | None,
        notes: str | None,
        actor_id: str,
        at: datetime,
    ) -> bool: ...

    def latest_capacity_request(
        self, provider_id: str, week_start_date: str
    ) -> CapacityUpdateRequest | None: ...

    def append_capacity_request(self, request: CapacityUpdateRequest) -> None: ...

    def latest_capacity_update(self, provider_id: str, week_start_date: str) -> datetime | None: ...

    def save_capacity_snapshot(self, snapshot: CapacitySnapshot) -> None: ...

    def append_audit_event(self, event: DomainEvent) -> None: ...


# ============================================================================
# Column conversion helpers
# ============================================================================


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _dec(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _parse_dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


class SQLiteStore:
    """
    SQLite-backed implementation of Store

    WAL mode gives concurrent readers alongside a single writer; each call
    opens its own connection so no connection is shared across threads.
    """

    def __init__(self, db_path: str | Path, busy_timeout_s: float = 5.0) -> None:
        """
        Args:
            db_path: Path to SQLite database file
            busy_timeout_s: How long a writer waits for the lock before erroring
        """
        self.db_path = Path(db_path)
        self.busy_timeout_s = busy_timeout_s
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS quotes (
                    id TEXT PRIMARY KEY,
                    customer_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    process TEXT,
                    material TEXT,
                    ship_to_state TEXT,
                    ship_to_country TEXT,
                    quantity INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS providers (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    processes_json TEXT NOT NULL DEFAULT '[]',
                    materials_json TEXT NOT NULL DEFAULT '[]',
                    verification_status TEXT NOT NULL,
                    is_active INTEGER NOT NULL,
                    dispatch_mode TEXT,
                    email TEXT,
                    rfq_url TEXT,
                    country TEXT,
                    states_json TEXT NOT NULL DEFAULT '[]'
                );

                CREATE TABLE IF NOT EXISTS destinations (
                    id TEXT PRIMARY KEY,
                    quote_id TEXT NOT NULL REFERENCES quotes(id),
                    provider_id TEXT NOT NULL REFERENCES providers(id),
                    status TEXT NOT NULL,
                    offer_token TEXT NOT NULL UNIQUE,
                    dispatch_mode TEXT,
                    dispatch_started_at TEXT,
                    submitted_at TEXT,
                    submission_notes TEXT,
                    error_message TEXT,
                    override_reason TEXT,
                    created_at TEXT NOT NULL,
                    last_status_at TEXT NOT NULL,

                    UNIQUE(quote_id, provider_id)
                );

                CREATE TABLE IF NOT EXISTS offers (
                    id TEXT PRIMARY KEY,
                    quote_id TEXT NOT NULL REFERENCES quotes(id),
                    provider_id TEXT NOT NULL,
                    destination_id TEXT,
                    total_price TEXT,
                    currency TEXT NOT NULL,
                    lead_time_days_min INTEGER,
                    lead_time_days_max INTEGER,
                    status TEXT NOT NULL,
                    notes TEXT,
                    assumptions TEXT,
                    internal_cost TEXT,
                    internal_shipping_cost TEXT,
                    source_type TEXT NOT NULL,
                    source_name TEXT,
                    source_url TEXT,
                    received_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,

                    UNIQUE(quote_id, provider_id)
                );

                CREATE TABLE IF NOT EXISTS awards (
                    quote_id TEXT PRIMARY KEY REFERENCES quotes(id),
                    winning_provider_id TEXT NOT NULL,
                    winning_offer_id TEXT,
                    awarded_at TEXT NOT NULL,
                    awarded_by_actor_id TEXT NOT NULL,
                    notes TEXT,
                    feedback_reason TEXT,
                    feedback_confidence TEXT,
                    feedback_notes TEXT,
                    feedback_recorded_at TEXT,
                    feedback_actor_id TEXT
                );

                CREATE TABLE IF NOT EXISTS capacity_requests (
                    id TEXT PRIMARY KEY,
                    provider_id TEXT NOT NULL,
                    week_start_date TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    quote_id TEXT,
                    requested_by_actor_id TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS capacity_snapshots (
                    provider_id TEXT NOT NULL,
                    week_start_date TEXT NOT NULL,
                    capability TEXT NOT NULL,
                    capacity_level TEXT NOT NULL,
                    notes TEXT,
                    created_at TEXT NOT NULL,

                    PRIMARY KEY(provider_id, week_start_date, capability)
                );

                CREATE TABLE IF NOT EXISTS audit_events (
                    event_id TEXT PRIMARY KEY,
                    event_type TEXT NOT NULL,
                    stream_id TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_destinations_quote
                    ON destinations(quote_id);
                CREATE INDEX IF NOT EXISTS idx_offers_quote
                    ON offers(quote_id);
                CREATE INDEX IF NOT EXISTS idx_capacity_requests_week
                    ON capacity_requests(provider_id, week_start_date, created_at);
                CREATE INDEX IF NOT EXISTS idx_audit_stream
                    ON audit_events(stream_id, occurred_at);
            """)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Autocommit connection; transactions are opened explicitly
        """
        conn = sqlite3.connect(
            str(self.db_path), timeout=self.busy_timeout_s, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Write transaction holding the database write lock from the start

        Commits on success, rolls back on any exception.
        """
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def ping(self) -> bool:
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()
        return True

    # ========================================================================
    # Quotes
    # ========================================================================

    def load_quote(self, quote_id: str) -> Quote | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM quotes WHERE id = ?", (quote_id,)).fetchone()
        return self._row_to_quote(row) if row else None

    def list_quotes(self, status: QuoteStatus | None = None) -> list[Quote]:
        with self._connect() as conn:
            if status is None:
                rows = conn.execute("SELECT * FROM quotes ORDER BY created_at, id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM quotes WHERE status = ? ORDER BY created_at, id",
                    (status.value,),
                ).fetchall()
        return [self._row_to_quote(row) for row in rows]

    @retry_on_sqlite_lock()
    def save_quote(self, quote: Quote) -> None:
        """Insert a quote, or replace the intake fields of an existing one"""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO quotes (
                    id, customer_id, status, title, process, material,
                    ship_to_state, ship_to_country, quantity, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    process = excluded.process,
                    material = excluded.material,
                    ship_to_state = excluded.ship_to_state,
                    ship_to_country = excluded.ship_to_country,
                    quantity = excluded.quantity,
                    updated_at = excluded.updated_at
                """,
                (
                    quote.id,
                    quote.customer_id,
                    quote.status.value,
                    quote.title,
                    quote.process,
                    quote.material,
                    quote.ship_to_state,
                    quote.ship_to_country,
                    quote.quantity,
                    _ts(quote.created_at),
                    _ts(quote.updated_at),
                ),
            )

    @retry_on_sqlite_lock()
    def update_quote_status(
        self, quote_id: str, expected: QuoteStatus, new: QuoteStatus, at: datetime
    ) -> bool:
        """
        Move a quote from `expected` to `new`

        Returns:
            False if the quote was no longer in `expected` (lost a race)
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE quotes SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (new.value, _ts(at), quote_id, expected.value),
            )
            return cursor.rowcount == 1

    @staticmethod
    def _row_to_quote(row: sqlite3.Row) -> Quote:
        return Quote(
            id=row["id"],
            customer_id=row["customer_id"],
            status=QuoteStatus(row["status"]),
            title=row["title"],
            process=row["process"],
            material=row["material"],
            ship_to_state=row["ship_to_state"],
            ship_to_country=row["ship_to_country"],
            quantity=row["quantity"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    # ========================================================================
    # Providers
    # ========================================================================

    def load_provider(self, provider_id: str) -> Provider | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM providers WHERE id = ?", (provider_id,)
            ).fetchone()
        return self._row_to_provider(row) if row else None

    def load_providers(self, provider_ids: Iterable[str] | None = None) -> list[Provider]:
        with self._connect() as conn:
            if provider_ids is None:
                rows = conn.execute("SELECT * FROM providers ORDER BY name, id").fetchall()
            else:
                ids = list(dict.fromkeys(provider_ids))
                if not ids:
                    return []
                placeholders = ", ".join("?" for _ in ids)
                rows = conn.execute(
                    f"SELECT * FROM providers WHERE id IN ({placeholders}) ORDER BY name, id",
                    ids,
                ).fetchall()
        return [self._row_to_provider(row) for row in rows]

    @retry_on_sqlite_lock()
    def save_provider(self, provider: Provider) -> None:
        """Upsert a provider record (providers are owned outside the core)"""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO providers (
                    id, name, processes_json, materials_json, verification_status,
                    is_active, dispatch_mode, email, rfq_url, country, states_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    provider.id,
                    provider.name,
                    json.dumps(provider.processes),
                    json.dumps(provider.materials),
                    provider.verification_status.value,
                    int(provider.is_active),
                    provider.dispatch_mode.value if provider.dispatch_mode else None,
                    provider.email,
                    provider.rfq_url,
                    provider.country,
                    json.dumps(provider.states),
                ),
            )

    @staticmethod
    def _row_to_provider(row: sqlite3.Row) -> Provider:
        return Provider(
            id=row["id"],
            name=row["name"],
            processes=json.loads(row["processes_json"]),
            materials=json.loads(row["materials_json"]),
            verification_status=row["verification_status"],
            is_active=bool(row["is_active"]),
            dispatch_mode=row["dispatch_mode"],
            email=row["email"],
            rfq_url=row["rfq_url"],
            country=row["country"],
            states=json.loads(row["states_json"]),
        )

    # ========================================================================
    # Destinations
    # ========================================================================

    def load_destination(self, destination_id: str) -> Destination | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM destinations WHERE id = ?", (destination_id,)
            ).fetchone()
        return self._row_to_destination(row) if row else None

    def load_destination_by_token(self, offer_token: str) -> Destination | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM destinations WHERE offer_token = ?", (offer_token,)
            ).fetchone()
        return self._row_to_destination(row) if row else None

    def load_destinations(self, quote_id: str) -> list[Destination]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM destinations WHERE quote_id = ? ORDER BY created_at, id",
                (quote_id,),
            ).fetchall()
        return [self._row_to_destination(row) for row in rows]

    @retry_on_sqlite_lock()
    def insert_destinations(self, destinations: list[Destination]) -> list[Destination]:
        """
        Insert destinations, skipping (quote_id, provider_id) pairs that exist

        Returns:
            Only the destinations this call actually created
        """
        created: list[Destination] = []
        with self._transaction() as conn:
            for dest in destinations:
                cursor = conn.execute(
                    """
                    INSERT INTO destinations (
                        id, quote_id, provider_id, status, offer_token, dispatch_mode,
                        dispatch_started_at, submitted_at, submission_notes,
                        error_message, override_reason, created_at, last_status_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(quote_id, provider_id) DO NOTHING
                    """,
                    (
                        dest.id,
                        dest.quote_id,
                        dest.provider_id,
                        dest.status.value,
                        dest.offer_token,
                        dest.dispatch_mode.value if dest.dispatch_mode else None,
                        _ts(dest.dispatch_started_at),
                        _ts(dest.submitted_at),
                        dest.submission_notes,
                        dest.error_message,
                        dest.override_reason,
                        _ts(dest.created_at),
                        _ts(dest.last_status_at),
                    ),
                )
                if cursor.rowcount == 1:
                    created.append(dest)
        return created

    @retry_on_sqlite_lock()
    def mark_dispatch_started(self, destination_id: str, at: datetime) -> bool:
        """
        Set dispatch_started_at only if it was never set

        Returns:
            True if this call set it
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE destinations
                SET dispatch_started_at = ?,
                    status = CASE WHEN status = ? THEN ? ELSE status END,
                    last_status_at = CASE WHEN status = ? THEN ? ELSE last_status_at END
                WHERE id = ? AND dispatch_started_at IS NULL
                """,
                (
                    _ts(at),
                    DestinationStatus.NOT_STARTED.value,
                    DestinationStatus.IN_PROGRESS.value,
                    DestinationStatus.NOT_STARTED.value,
                    _ts(at),
                    destination_id,
                ),
            )
            return cursor.rowcount == 1

    @retry_on_sqlite_lock()
    def mark_submitted(
        self,
        destination_id: str,
        allowed_from: Iterable[DestinationStatus],
        mode: DispatchMode,
        notes: str | None,
        at: datetime,
    ) -> bool:
        """
        Move a destination to submitted iff its status is in `allowed_from`

        Returns:
            False when the status was not submittable at write time
        """
        allowed = [s.value for s in allowed_from]
        placeholders = ", ".join("?" for _ in allowed)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE destinations
                SET status = ?,
                    submitted_at = ?,
                    dispatch_mode = ?,
                    submission_notes = ?,
                    dispatch_started_at = COALESCE(dispatch_started_at, ?),
                    error_message = NULL,
                    last_status_at = ?
                WHERE id = ? AND status IN ({placeholders})
                """,
                (
                    DestinationStatus.SUBMITTED.value,
                    _ts(at),
                    mode.value,
                    notes,
                    _ts(at),
                    _ts(at),
                    destination_id,
                    *allowed,
                ),
            )
            return cursor.rowcount == 1

    @retry_on_sqlite_lock()
    def update_destination_status(
        self,
        destination_id: str,
        status: DestinationStatus,
        error_message: str | None,
        at: datetime,
    ) -> None:
        """Unconditional admin override; `sent` backfills submitted_at"""
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE destinations
                SET status = ?,
                    error_message = ?,
                    submitted_at = CASE
                        WHEN ? = ? THEN COALESCE(submitted_at, ?)
                        ELSE submitted_at
                    END,
                    last_status_at = ?
                WHERE id = ?
                """,
                (
                    status.value,
                    error_message,
                    status.value,
                    DestinationStatus.SENT.value,
                    _ts(at),
                    _ts(at),
                    destination_id,
                ),
            )

    @staticmethod
    def _row_to_destination(row: sqlite3.Row) -> Destination:
        return Destination(
            id=row["id"],
            quote_id=row["quote_id"],
            provider_id=row["provider_id"],
            status=DestinationStatus(row["status"]),
            offer_token=row["offer_token"],
            dispatch_mode=row["dispatch_mode"],
            dispatch_started_at=_parse_ts(row["dispatch_started_at"]),
            submitted_at=_parse_ts(row["submitted_at"]),
            submission_notes=row["submission_notes"],
            error_message=row["error_message"],
            override_reason=row["override_reason"],
            created_at=_parse_ts(row["created_at"]),
            last_status_at=_parse_ts(row["last_status_at"]),
        )

    # ========================================================================
    # Offers
    # ========================================================================

    def load_offer(self, offer_id: str) -> Offer | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM offers WHERE id = ?", (offer_id,)).fetchone()
        return self._row_to_offer(row) if row else None

    def load_offers(self, quote_id: str) -> list[Offer]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM offers WHERE quote_id = ? ORDER BY received_at, id",
                (quote_id,),
            ).fetchall()
        return [self._row_to_offer(row) for row in rows]

    @retry_on_sqlite_lock()
    def save_offer(self, offer: Offer) -> Offer:
        """
        Upsert the offer for (quote_id, provider_id) and link its destination

        An existing row keeps its id and received_at and becomes `revised`.
        The matching destination (if any) is linked and moved to `quoted`,
        all in one transaction.

        Returns:
            The offer as stored
        """
        with self._transaction() as conn:
            dest = conn.execute(
                "SELECT id FROM destinations WHERE quote_id = ? AND provider_id = ?",
                (offer.quote_id, offer.provider_id),
            ).fetchone()
            destination_id = dest["id"] if dest else offer.destination_id

            conn.execute(
                """
                INSERT INTO offers (
                    id, quote_id, provider_id, destination_id, total_price, currency,
                    lead_time_days_min, lead_time_days_max, status, notes, assumptions,
                    internal_cost, internal_shipping_cost, source_type, source_name,
                    source_url, received_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(quote_id, provider_id) DO UPDATE SET
                    destination_id = COALESCE(excluded.destination_id, offers.destination_id),
                    total_price = excluded.total_price,
                    currency = excluded.currency,
                    lead_time_days_min = excluded.lead_time_days_min,
                    lead_time_days_max = excluded.lead_time_days_max,
                    status = ?,
                    notes = excluded.notes,
                    assumptions = excluded.assumptions,
                    internal_cost = excluded.internal_cost,
                    internal_shipping_cost = excluded.internal_shipping_cost,
                    source_type = excluded.source_type,
                    source_name = excluded.source_name,
                    source_url = excluded.source_url,
                    updated_at = excluded.updated_at
                """,
                (
                    offer.id,
                    offer.quote_id,
                    offer.provider_id,
                    destination_id,
                    _dec(offer.total_price),
                    offer.currency,
                    offer.lead_time_days_min,
                    offer.lead_time_days_max,
                    offer.status.value,
                    offer.notes,
                    offer.assumptions,
                    _dec(offer.internal_cost),
                    _dec(offer.internal_shipping_cost),
                    offer.source_type.value,
                    offer.source_name,
                    offer.source_url,
                    _ts(offer.received_at),
                    _ts(offer.updated_at),
                    OfferStatus.REVISED.value,
                ),
            )

            if dest is not None:
                conn.execute(
                    "UPDATE destinations SET status = ?, last_status_at = ? WHERE id = ?",
                    (DestinationStatus.QUOTED.value, _ts(offer.updated_at), dest["id"]),
                )

            row = conn.execute(
                "SELECT * FROM offers WHERE quote_id = ? AND provider_id = ?",
                (offer.quote_id, offer.provider_id),
            ).fetchone()
        return self._row_to_offer(row)

    @retry_on_sqlite_lock()
    def withdraw_offer(self, quote_id: str, provider_id: str, at: datetime) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE offers SET status = ?, updated_at = ?
                WHERE quote_id = ? AND provider_id = ? AND status != ?
                """,
                (
                    OfferStatus.WITHDRAWN.value,
                    _ts(at),
                    quote_id,
                    provider_id,
                    OfferStatus.WITHDRAWN.value,
                ),
            )
            return cursor.rowcount == 1

    @staticmethod
    def _row_to_offer(row: sqlite3.Row) -> Offer:
        return Offer(
            id=row["id"],
            quote_id=row["quote_id"],
            provider_id=row["provider_id"],
            destination_id=row["destination_id"],
            total_price=_parse_dec(row["total_price"]),
            currency=row["currency"],
            lead_time_days_min=row["lead_time_days_min"],
            lead_time_days_max=row["lead_time_days_max"],
            status=OfferStatus(row["status"]),
            notes=row["notes"],
            assumptions=row["assumptions"],
            internal_cost=_parse_dec(row["internal_cost"]),
            internal_shipping_cost=_parse_dec(row["internal_shipping_cost"]),
            source_type=row["source_type"],
            source_name=row["source_name"],
            source_url=row["source_url"],
            received_at=_parse_ts(row["received_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    # ========================================================================
    # Awards
    # ========================================================================

    def load_award(self, quote_id: str) -> Award | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM awards WHERE quote_id = ?", (quote_id,)
            ).fetchone()
        return self._row_to_award(row) if row else None

    @retry_on_sqlite_lock()
    def save_award(
        self, award: Award, expected_status: QuoteStatus, won_status: QuoteStatus
    ) -> bool:
        """
        Insert the award and move the quote to won, atomically

        Returns:
            False (nothing written) if the quote left `expected_status`

        Raises:
            WinnerExists: If the quote already has an award
            StoreError: On other integrity failures
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE quotes SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (won_status.value, _ts(award.awarded_at), award.quote_id, expected_status.value),
            )
            if cursor.rowcount != 1:
                return False

            try:
                conn.execute(
                    """
                    INSERT INTO awards (
                        quote_id, winning_provider_id, winning_offer_id,
                        awarded_at, awarded_by_actor_id, notes
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        award.quote_id,
                        award.winning_provider_id,
                        award.winning_offer_id,
                        _ts(award.awarded_at),
                        award.awarded_by_actor_id,
                        award.notes,
                    ),
                )
            except sqlite3.IntegrityError as e:
                if "awards.quote_id" in str(e):
                    raise WinnerExists(award.quote_id) from e
                raise StoreError(f"Failed to record award: {e}") from e
        return True

    @retry_on_sqlite_lock()
    def record_award_feedback(
        self,
        quote_id: str,
        reason: FeedbackReason,
        confidence: FeedbackConfidence | None,
        notes: str | None,
        actor_id: str,
        at: datetime,
    ) -> bool:
        """
        Append feedback to an award once

        Returns:
            False if feedback was already present
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE awards
                SET feedback_reason = ?,
                    feedback_confidence = ?,
                    feedback_notes = ?,
                    feedback_recorded_at = ?,
                    feedback_actor_id = ?
                WHERE quote_id = ? AND feedback_reason IS NULL
                """,
                (
                    reason.value,
                    confidence.value if confidence else None,
                    notes,
                    _ts(at),
                    actor_id,
                    quote_id,
                ),
            )
            return cursor.rowcount == 1

    @staticmethod
    def _row_to_award(row: sqlite3.Row) -> Award:
        return Award(
            quote_id=row["quote_id"],
            winning_provider_id=row["winning_provider_id"],
            winning_offer_id=row["winning_offer_id"],
            awarded_at=_parse_ts(row["awarded_at"]),
            awarded_by_actor_id=row["awarded_by_actor_id"],
            notes=row["notes"],
            feedback_reason=row["feedback_reason"],
            feedback_confidence=row["feedback_confidence"],
            feedback_notes=row["feedback_notes"],
            feedback_recorded_at=_parse_ts(row["feedback_recorded_at"]),
            feedback_actor_id=row["feedback_actor_id"],
        )

    def count_awards(self, quote_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM awards WHERE quote_id = ?", (quote_id,)
            ).fetchone()
        return int(row["n"])

    # ========================================================================
    # Capacity
    # ========================================================================

    def latest_capacity_request(
        self, provider_id: str, week_start_date: str
    ) -> CapacityUpdateRequest | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM capacity_requests
                WHERE provider_id = ? AND week_start_date = ?
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (provider_id, week_start_date),
            ).fetchone()
        if row is None:
            return None
        return CapacityUpdateRequest(
            id=row["id"],
            provider_id=row["provider_id"],
            week_start_date=row["week_start_date"],
            reason=row["reason"],
            quote_id=row["quote_id"],
            requested_by_actor_id=row["requested_by_actor_id"],
            created_at=_parse_ts(row["created_at"]),
        )

    @retry_on_sqlite_lock()
    def append_capacity_request(self, request: CapacityUpdateRequest) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO capacity_requests (
                    id, provider_id, week_start_date, reason, quote_id,
                    requested_by_actor_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    request.id,
                    request.provider_id,
                    request.week_start_date,
                    request.reason.value,
                    request.quote_id,
                    request.requested_by_actor_id,
                    _ts(request.created_at),
                ),
            )

    def latest_capacity_update(self, provider_id: str, week_start_date: str) -> datetime | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT MAX(created_at) AS latest FROM capacity_snapshots
                WHERE provider_id = ? AND week_start_date = ?
                """,
                (provider_id, week_start_date),
            ).fetchone()
        return _parse_ts(row["latest"]) if row else None

    @retry_on_sqlite_lock()
    def save_capacity_snapshot(self, snapshot: CapacitySnapshot) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO capacity_snapshots (
                    provider_id, week_start_date, capability, capacity_level, notes, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(provider_id, week_start_date, capability) DO UPDATE SET
                    capacity_level = excluded.capacity_level,
                    notes = excluded.notes,
                    created_at = excluded.created_at
                """,
                (
                    snapshot.provider_id,
                    snapshot.week_start_date,
                    snapshot.capability,
                    snapshot.capacity_level.value,
                    snapshot.notes,
                    _ts(snapshot.created_at),
                ),
            )

    # ========================================================================
    # Audit log
    # ========================================================================

    @retry_on_sqlite_lock()
    def append_audit_event(self, event: DomainEvent) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO audit_events (
                    event_id, event_type, stream_id, occurred_at, actor_id, payload_json
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.event_id,
                    event.event_type.value,
                    event.stream_id,
                    _ts(event.occurred_at),
                    event.actor_id,
                    json.dumps(event.payload, default=str),
                ),
            )

    def load_audit_events(self, stream_id: str | None = None) -> list[dict[str, Any]]:
        with self._connect() as conn:
            if stream_id is None:
                rows = conn.execute(
                    "SELECT * FROM audit_events ORDER BY rowid"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM audit_events WHERE stream_id = ? ORDER BY rowid",
                    (stream_id,),
                ).fetchall()
        return [
            {
                "event_id": row["event_id"],
                "event_type": row["event_type"],
                "stream_id": row["stream_id"],
                "occurred_at": row["occurred_at"],
                "actor_id": row["actor_id"],
                "payload": json.loads(row["payload_json"]),
            }
            for row in rows
        ]
