#!/usr/bin/env python3
"""
Main CLI for the quote analytics workbench.
Usage: python cli.py COMMAND [options]
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, List, Optional

# Add project root to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from analysis.analytics_engine import AnalyticsEngine
from analysis.calculations.intervals import parse_interval
from pipeline.ingest_quotes_dag import run_quote_ingestion, run_quote_ingestion_batch
from storage.ledger import QuoteLedger
from storage.loaders import LedgerError
from storage.master_data import add_security, add_exchange, get_exchange

load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Store securities quotes and compute performance / RS Levy analytics',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli.py init-db
  python cli.py add-security DE0007164600 "SAP SE" --type share
  python cli.py add-exchange XETRA
  python cli.py ingest quotes.json
  python cli.py performance --unit month --count 6
  python cli.py rsl weekly
        """
    )
    parser.add_argument('--db-path',
                        default=None,
                        help='Path to SQLite database (default: $QUOTES_DB_PATH or ./data/quotes.db)')
    parser.add_argument('--verbose', '-v',
                        action='store_true',
                        help='Debug logging on stderr')

    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('init-db', help='Create tables')

    p = sub.add_parser('add-security', help='Register a security')
    p.add_argument('isin')
    p.add_argument('name')
    p.add_argument('--type', dest='instrument_type', default='', help='Instrument type')

    p = sub.add_parser('add-exchange', help='Register an exchange')
    p.add_argument('name')

    p = sub.add_parser('ingest', help='Ingest a JSON quote request (or a list of them)')
    p.add_argument('file', type=Path)

    p = sub.add_parser('quotes', help='List quotes for one security/exchange pair')
    p.add_argument('isin')
    p.add_argument('exchange', help='Exchange name or id')
    p.add_argument('--start', help='Range start (YYYY-MM-DD)')
    p.add_argument('--end', help='Range end (YYYY-MM-DD, default: today)')

    sub.add_parser('counts', help='Quote count per security/exchange pair')

    p = sub.add_parser('latest', help='Latest quote date per security/exchange pair')
    p.add_argument('--isin')

    p = sub.add_parser('performance', help='Latest vs. baseline quotes')
    p.add_argument('--unit', required=True, help='day, month or year')
    p.add_argument('--count', required=True, help='Number of units (>= 1)')

    p = sub.add_parser('rsl', help='RS Levy values')
    p.add_argument('algorithm', help='weekly or daily')

    return parser


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def run(argv: Optional[List[str]] = None) -> int:
    """Execute one CLI command; returns the process exit code."""
    args = build_parser().parse_args(argv)

    level = 'DEBUG' if args.verbose else os.getenv('LOG_LEVEL', 'WARNING').upper()
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        with QuoteLedger.open(args.db_path) as ledger:
            conn = ledger.connection
            engine = AnalyticsEngine(ledger)

            if args.command == 'init-db':
                print("Database initialized")

            elif args.command == 'add-security':
                security_id = add_security(conn, args.isin, args.name, args.instrument_type)
                _emit({'id': security_id, 'isin': args.isin})

            elif args.command == 'add-exchange':
                exchange_id = add_exchange(conn, args.name)
                _emit({'id': exchange_id, 'name': args.name})

            elif args.command == 'ingest':
                with open(args.file, 'r') as f:
                    payload = json.load(f)
                if isinstance(payload, list):
                    _emit(run_quote_ingestion_batch(payload, conn))
                else:
                    _emit(run_quote_ingestion(payload, conn))

            elif args.command == 'quotes':
                exchange = get_exchange(conn, args.exchange)
                _emit(ledger.query(args.isin, exchange['id'], args.start, args.end))

            elif args.command == 'counts':
                _emit(engine.get_quote_counts())

            elif args.command == 'latest':
                _emit(engine.get_latest_quote_dates(args.isin))

            elif args.command == 'performance':
                interval = parse_interval(args.unit, args.count)
                _emit([r.to_dict() for r in engine.get_performance_quotes(interval)])

            elif args.command == 'rsl':
                _emit([r.to_dict() for r in engine.get_rs_levy(args.algorithm)])

    # InvalidArgumentError, ValidationError and JSON decode errors are ValueErrors
    except (ValueError, LedgerError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    return 0


def main():
    """Main CLI entry point."""
    sys.exit(run())


if __name__ == '__main__':
    main()
