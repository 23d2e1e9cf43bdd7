import argparse
import logging

from services.bot.worker import get_config, purge_expired_sessions, run_worker


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the WhatsApp notification worker")
    parser.add_argument("--queue", default=None, help="queue name to consume")
    parser.add_argument(
        "--purge-expired",
        action="store_true",
        help="delete expired conversation sessions before starting",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=get_config().log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if args.purge_expired:
        purge_expired_sessions()
    try:
        run_worker(queue_name=args.queue)
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Shutting down worker...")


if __name__ == "__main__":
    main()
