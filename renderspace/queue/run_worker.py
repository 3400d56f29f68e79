#!/usr/bin/env python3
"""
RQ Worker Runner for RenderSpace.

Runs the worker process that executes render jobs from the Redis queue.
Run this separately from the web server.

Usage:
    python -m renderspace.queue.run_worker                   # Run until stopped
    python -m renderspace.queue.run_worker --concurrency 4   # Four worker processes
    python -m renderspace.queue.run_worker --burst           # Drain the queue and exit
"""

import argparse
import sys
from typing import Optional

import redis
from rq import Worker
from rq.worker_pool import WorkerPool

from renderspace.config import config
from renderspace.queue.connection import (
    create_queue_connection,
    describe_redis_url,
    get_render_queue,
)
from renderspace.utils.logging import configure_logging


def create_worker(
    connection: redis.Redis,
    concurrency: int = 1,
    name: Optional[str] = None,
    queue_name: Optional[str] = None,
):
    """
    Build the worker for the render queue.

    One process runs a plain Worker; more than one runs a WorkerPool that
    forks that many workers on the same queue.
    """
    queue = get_render_queue(connection, queue_name)
    if concurrency > 1:
        return WorkerPool([queue], connection=connection, num_workers=concurrency)
    return Worker([queue], connection=connection, name=name)


def main():
    parser = argparse.ArgumentParser(description="Run RenderSpace RQ worker")
    parser.add_argument(
        "--concurrency",
        "-c",
        type=int,
        default=config.WORKER_CONCURRENCY,
        help=f"Worker processes to run (default: {config.WORKER_CONCURRENCY})"
    )
    parser.add_argument(
        "--burst",
        "-b",
        action="store_true",
        help="Run in burst mode (process all jobs and exit)"
    )
    parser.add_argument(
        "--name",
        "-n",
        default=None,
        help="Worker name (auto-generated if not specified)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()
    logging_level = "DEBUG" if args.verbose else config.LOG_LEVEL
    configure_logging(logging_level)

    # Validate Redis configuration
    if not config.REDIS_URL:
        print("❌ ERROR: REDIS_URL environment variable is required")
        print("   Set up Upstash Redis or local Redis and configure REDIS_URL")
        sys.exit(1)

    try:
        conn = create_queue_connection()
        conn.ping()
        print(f"✅ Connected to Redis: {describe_redis_url(config.REDIS_URL)}")
        print(f"📋 Listening on queue: {config.RENDER_QUEUE_NAME}")

        worker = create_worker(conn, concurrency=args.concurrency, name=args.name)

        print(f"🚀 Worker starting ({args.concurrency} process(es)){' (burst mode)' if args.burst else ''}")
        print("   Press Ctrl+C to stop")
        print("-" * 50)

        if isinstance(worker, WorkerPool):
            worker.start(burst=args.burst, logging_level=logging_level)
        else:
            worker.work(burst=args.burst, logging_level=logging_level)

    except KeyboardInterrupt:
        print("\n👋 Worker stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"❌ Worker error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
