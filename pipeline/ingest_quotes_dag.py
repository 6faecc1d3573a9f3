"""
Quote ingestion DAG - orchestrates one ingestion request end to end.
Composes: Validate → Resolve → Normalize → Store.
"""

import logging
import sqlite3
from datetime import datetime
from typing import Dict, Any, List

from ingestion.transforms.validators import validate_quote_request
from ingestion.transforms.normalizers import normalize_quotes, summarize_quotes
from storage.loaders import upsert_quotes, LedgerError
from storage.master_data import get_security, get_exchange

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Raised when a batch of ingestion requests cannot be processed."""
    pass


def run_quote_ingestion(request: Dict[str, Any], conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Run the quote ingestion pipeline for one request.

    Pipeline stages:
    1. Validate the request payload
    2. Resolve ISIN and exchange to ledger ids
    3. Normalize quote items (parse dates, dedupe by date keeping the last)
    4. Upsert the batch into the ledger in one transaction

    Args:
        request: {'isin': str, 'exchange': name or id, 'quotes': [{'date', 'quote'}]}
        conn: SQLite database connection

    Returns:
        Dictionary with run results and metrics

    Raises:
        ValidationError: If the payload is malformed (nothing is written)
        NotFoundError: If the security or exchange does not exist
    """
    start_time = datetime.now()

    # Stage 1: Validate
    validate_quote_request(request)

    # Stage 2: Resolve master data
    security = get_security(conn, request['isin'])
    exchange = get_exchange(conn, request['exchange'])

    result = {
        'isin': security['isin'],
        'exchange': exchange['name'],
        'security_id': security['id'],
        'exchange_id': exchange['id'],
        'status': 'running',
        'rows_received': len(request['quotes']),
        'rows_stored': 0,
        'rows_inserted': 0,
        'rows_updated': 0,
    }

    # Stage 3: Normalize
    items = normalize_quotes(request['quotes'])

    result['date_range'] = summarize_quotes(items)

    if not items:
        # Empty batch is not an error
        result['status'] = 'completed'
        result['duration_seconds'] = (datetime.now() - start_time).total_seconds()
        return result

    # Stage 4: Store
    inserted, updated = upsert_quotes(conn, security['id'], exchange['id'], items)
    result['rows_stored'] = len(items)
    result['rows_inserted'] = inserted
    result['rows_updated'] = updated

    result['status'] = 'completed'
    result['duration_seconds'] = (datetime.now() - start_time).total_seconds()

    logger.info(
        "Ingested %d quotes for %s@%s (%d duplicates collapsed)",
        len(items), security['isin'], exchange['name'], result['rows_received'] - len(items)
    )
    return result


def run_quote_ingestion_batch(
    requests: List[Dict[str, Any]],
    conn: sqlite3.Connection
) -> Dict[str, Any]:
    """
    Run ingestion for several requests, one ledger transaction each.

    A failing request is recorded and does not stop the rest.

    Returns:
        Summary with per-request results

    Raises:
        PipelineError: If requests is not a list
    """
    if not isinstance(requests, list):
        raise PipelineError(f"requests must be a list, got {type(requests)}")

    results = []
    start_time = datetime.now()

    for request in requests:
        try:
            results.append(run_quote_ingestion(request, conn))
        except (LedgerError, ValueError) as e:
            logger.warning("Ingestion request failed: %s", e)
            results.append({
                'isin': request.get('isin') if isinstance(request, dict) else None,
                'status': 'failed',
                'error_message': str(e)
            })

    completed = [r for r in results if r['status'] == 'completed']

    return {
        'total_requests': len(requests),
        'completed': len(completed),
        'failed': len(results) - len(completed),
        'rows_stored': sum(r.get('rows_stored', 0) for r in completed),
        'duration_seconds': (datetime.now() - start_time).total_seconds(),
        'results': results
    }
