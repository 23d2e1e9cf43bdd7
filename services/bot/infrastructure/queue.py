from __future__ import annotations

from redis import Redis
from rq import Queue, Worker as RQWorker

from ..config import BotConfig


def create_redis_connection(config: BotConfig) -> Redis:
    return Redis(host=config.redis_host, port=config.redis_port, db=config.redis_db)


def create_queue(config: BotConfig, queue_name: str | None = None) -> Queue:
    redis_conn = create_redis_connection(config)
    # Each job is a single HTTP call bounded by the notifier timeout
    return Queue(
        queue_name or config.notification_queue_name,
        connection=redis_conn,
        default_timeout=60,
    )


def create_worker(config: BotConfig, queue_name: str | None = None) -> RQWorker:
    redis_conn = create_redis_connection(config)
    queue = Queue(queue_name or config.notification_queue_name, connection=redis_conn)
    return RQWorker([queue], connection=redis_conn)
