import argparse
import asyncio
import json
import sys
from pathlib import Path

from .core.config import ApplicationConfig
from .main import BusTrackerSystem, setup_logging


async def _ingest_once(config: ApplicationConfig) -> int:
    system = BusTrackerSystem(config)
    await system.setup(with_ingestion=False, with_web=False)
    try:
        report = await system.ingestion_service.run_cycle()
    finally:
        await system.stop()
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.feed_ok else 1


async def _predict(config: ApplicationConfig, stop_code: str, line_number: str) -> int:
    system = BusTrackerSystem(config)
    await system.setup(with_ingestion=False, with_web=False)
    try:
        outcome = await system.prediction_service.predict(stop_code, line_number)
    finally:
        await system.stop()
    if not outcome.ok:
        print(json.dumps({"error": outcome.message}), file=sys.stderr)
        return 2
    print(json.dumps(outcome.result.to_dict(), indent=2))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog='bustracker', description='Live bus position ingestion and arrival prediction')
    parser.add_argument('--log-level', default=None, help='Logging level (default: BUSTRACKER_LOG_LEVEL or INFO)')
    parser.add_argument('--db-path', default=None, help='SQLite database path (overrides BUSTRACKER_DB_PATH)')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('serve', help='Run the ingestion loop and the HTTP API (default)')
    subparsers.add_parser('ingest-once', help='Run a single ingestion cycle and print its report')

    predict_parser = subparsers.add_parser('predict', help='Predict the next arrival of a line at a stop')
    predict_parser.add_argument('stop_code', help='Stop code')
    predict_parser.add_argument('line', help='Line display number (substring match)')

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    config = ApplicationConfig.from_env()
    if args.db_path:
        config.db_path = Path(args.db_path)

    if args.command in (None, 'serve'):
        try:
            asyncio.run(BusTrackerSystem(config).run())
        except KeyboardInterrupt:
            pass
        return 0
    if args.command == 'ingest-once':
        return asyncio.run(_ingest_once(config))
    if args.command == 'predict':
        return asyncio.run(_predict(config, args.stop_code, args.line))

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
