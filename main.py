"""
Command line entry point: run one action, watch a trigger, or check a connection
"""
import argparse
import asyncio
import json
import logging
import sys
import time

from config import DB_PATH, LOG_FILE, LOG_LEVEL, POLL_INTERVAL
from connection import close_connection, create_connection, test_connection
from cursor_store import SQLiteCursorStore
from errors import ConfigurationError, EthereumConnectorError
from node import execute
from trigger import TriggerConfig, poll_trigger

# Log to file and stderr; stdout carries the JSON output
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOG_FILE),
        logging.StreamHandler(sys.stderr),
    ]
)
logger = logging.getLogger(__name__)


def load_json(path: str):
    with open(path, 'r') as f:
        return json.load(f)


def emit(record):
    print(json.dumps(record, default=str))


async def run_action(args) -> int:
    credentials = load_json(args.credentials)
    items = load_json(args.params) if args.params else [{}]
    if isinstance(items, dict):
        items = [items]

    results = await execute(credentials, args.resource, args.operation, items,
                            continue_on_fail=args.continue_on_fail)
    for result in results:
        emit(result)
    return 0


async def watch(args) -> int:
    """Poll the trigger forever, backing off on consecutive errors"""
    credentials = load_json(args.credentials)
    trigger_config = TriggerConfig.from_dict(load_json(args.trigger))
    store = SQLiteCursorStore(args.db)
    connection = create_connection(credentials)
    consecutive_errors = 0
    max_backoff = 300

    logger.info(f"[{connection.network_id}] Watching {trigger_config.event.value} as '{args.trigger_id}' "
                f"every {args.interval}s")
    try:
        while True:
            try:
                for record in await poll_trigger(credentials, trigger_config, args.trigger_id, store,
                                                 connection=connection):
                    emit(record)
                consecutive_errors = 0
                sleep_time = args.interval
            except ConfigurationError:
                raise
            except EthereumConnectorError as e:
                consecutive_errors += 1
                logger.error(f"[{connection.network_id}] Poll failed (#{consecutive_errors}): {e}")
                sleep_time = min(max_backoff, args.interval * (2 ** min(consecutive_errors - 1, 5)))

            if args.once:
                return 0 if consecutive_errors == 0 else 1
            await asyncio.sleep(sleep_time)
    finally:
        await close_connection(connection)


async def check(args) -> int:
    connection = create_connection(load_json(args.credentials))
    try:
        start_time = time.time()
        result = await test_connection(connection)
        result['latencyMs'] = int((time.time() - start_time) * 1000)
    finally:
        await close_connection(connection)
    emit(result)
    return 0 if result['success'] else 1


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Ethereum workflow connector')
    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Execute one action over a list of input items')
    run_parser.add_argument('resource', help='account, transaction, contract, token, nft, erc1155, ens or network')
    run_parser.add_argument('operation', help='Operation name, e.g. getBalance')
    run_parser.add_argument('--credentials', required=True, help='Credentials JSON file')
    run_parser.add_argument('--params', help='JSON file with one parameter object or a list of them')
    run_parser.add_argument('--continue-on-fail', action='store_true', help='Report item errors and keep going')

    watch_parser = subparsers.add_parser('watch', help='Poll a trigger and print emitted records')
    watch_parser.add_argument('--credentials', required=True, help='Credentials JSON file')
    watch_parser.add_argument('--trigger', required=True, help='Trigger parameters JSON file')
    watch_parser.add_argument('--trigger-id', default='default', help='Key for the persisted cursor')
    watch_parser.add_argument('--db', default=DB_PATH, help='SQLite file for cursor state')
    watch_parser.add_argument('--interval', type=int, default=POLL_INTERVAL, help='Seconds between polls')
    watch_parser.add_argument('--once', action='store_true', help='Run a single poll cycle and exit')

    check_parser = subparsers.add_parser('check', help='Test the configured connection')
    check_parser.add_argument('--credentials', required=True, help='Credentials JSON file')

    args = parser.parse_args()
    commands = {'run': run_action, 'watch': watch, 'check': check}

    try:
        sys.exit(asyncio.run(commands[args.command](args)))
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except EthereumConnectorError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
