#!/usr/bin/env python3
"""
RenderSpace Service Entrypoint

This script determines which process to run based on the SERVICE_TYPE
environment variable. Set SERVICE_TYPE in each Railway service's settings.

SERVICE_TYPE values:
  - web (default): Run the FastAPI web server via gunicorn
  - worker: Run the RQ render worker
  - scheduler: Run the maintenance scheduler (timeout sweep, failed-job trim)
"""

import os
import sys

SERVICE_TYPE = os.environ.get("SERVICE_TYPE", "web")
PORT = os.environ.get("PORT", "8080")

print("=" * 50)
print(f"RenderSpace Service: {SERVICE_TYPE}")
print("=" * 50)

if SERVICE_TYPE == "web":
    print("Starting web server (gunicorn)...")
    cmd = [
        "gunicorn", "renderspace.api.main:app",
        "--workers", "2",
        "--worker-class", "uvicorn.workers.UvicornWorker",
        "--bind", f"0.0.0.0:{PORT}",
        "--timeout", "120",
        "--graceful-timeout", "60"
    ]
elif SERVICE_TYPE == "worker":
    print("Starting RQ render worker...")
    cmd = ["python", "-m", "renderspace.queue.run_worker"]
    concurrency = os.environ.get("WORKER_CONCURRENCY")
    if concurrency:
        cmd += ["--concurrency", concurrency]
elif SERVICE_TYPE == "scheduler":
    print("Starting maintenance scheduler...")
    cmd = ["python", "-m", "renderspace.queue.run_scheduler"]
else:
    print(f"ERROR: Unknown SERVICE_TYPE: {SERVICE_TYPE}")
    print("Valid values: web, worker, scheduler")
    sys.exit(1)

print(f"Running: {' '.join(cmd)}")
print("=" * 50)

# Replace this process with the actual command
os.execvp(cmd[0], cmd)
