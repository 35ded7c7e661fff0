"""
Health check HTTP server for liveness and readiness probes.

Provides endpoints for monitoring the health and readiness of the quote desk.
The probes open the SQLite file directly and never create or migrate it.
"""

import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, jsonify

from quote_dispatch import __version__
from quote_dispatch.kernel.logging import get_logger

logger = get_logger(__name__)

app = Flask(__name__)

SERVICE_NAME = "quote-dispatch"

# Global state - will be set by initialize_health_server()
_db_path: Path | None = None


def initialize_health_server(db_path: str | Path) -> None:
    """
    Initialize the health server with the database path.

    Args:
        db_path: Path to SQLite database
    """
    global _db_path
    _db_path = Path(db_path)
    logger.info("Health server initialized", db_path=str(_db_path))


def _not_ready(reason: str, **extra: Any) -> tuple[Any, int]:
    return jsonify({"status": "not_ready", "reason": reason, **extra}), 503


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Any, int]:
    """
    Liveness probe - checks if the process is running.

    Returns:
        JSON response with status and 200 OK
    """
    return jsonify({"status": "alive", "service": SERVICE_NAME}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Any, int]:
    """
    Readiness probe - checks if the service can accept requests.

    Checks:
    - Database path is configured and the file exists
    - The quotes table can be queried

    Returns:
        JSON response with status and 200 OK if ready, 503 if not ready
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return _not_ready("database_path_not_initialized")

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return _not_ready("database_file_not_found", db_path=str(_db_path))

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            quote_count = conn.execute("SELECT COUNT(*) FROM quotes").fetchone()[0]
        finally:
            conn.close()
    except sqlite3.OperationalError as e:
        logger.error("Readiness check failed: DB operational error", error=str(e))
        return _not_ready("database_operational_error", error=str(e))
    except Exception as e:
        logger.error("Readiness check failed: Unexpected error", error=str(e), exc_info=True)
        return _not_ready("unexpected_error", error=str(e))

    logger.debug("Readiness check passed", quote_count=quote_count)
    return jsonify({"status": "ready", "database": "accessible", "quote_count": quote_count}), 200


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Any, int]:
    """
    Detailed health check - database size and pipeline counts.

    Returns:
        JSON response with detailed health information
    """
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__,
    }

    if _db_path and _db_path.exists():
        try:
            conn = sqlite3.connect(str(_db_path), timeout=1.0)
            try:
                quotes_by_status = {
                    status: count
                    for status, count in conn.execute(
                        "SELECT status, COUNT(*) FROM quotes GROUP BY status"
                    )
                }
                destination_count = conn.execute(
                    "SELECT COUNT(*) FROM destinations"
                ).fetchone()[0]
                award_count = conn.execute("SELECT COUNT(*) FROM awards").fetchone()[0]
                page_count = conn.execute("PRAGMA page_count").fetchone()[0]
                page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            finally:
                conn.close()

            health_data["database"] = {
                "status": "healthy",
                "path": str(_db_path),
                "quotes_by_status": quotes_by_status,
                "destination_count": destination_count,
                "award_count": award_count,
                "size_mb": round((page_count * page_size) / (1024 * 1024), 2),
            }

        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the health check server.

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)


if __name__ == "__main__":
    # For local runs: python -m quote_dispatch.health_server
    initialize_health_server(".quotedesk.db")
    run_health_server(port=8080, debug=True)
