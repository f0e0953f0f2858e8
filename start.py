#!/usr/bin/env python3
"""
Service Entrypoint

This script determines which process to run based on the SERVICE_TYPE
environment variable. Set SERVICE_TYPE in each deployed service's settings.

SERVICE_TYPE values:
  - worker (default): Run a page worker
  - scheduler: Run the counter reconciler / stale page reaper
"""

import os
import sys

SERVICE_TYPE = os.environ.get("SERVICE_TYPE", "worker")

print("=" * 50)
print(f"Ebook Service: {SERVICE_TYPE}")
print("=" * 50)

if SERVICE_TYPE == "worker":
    print("Starting page worker...")
    cmd = [sys.executable, "-m", "ebookgen.queue.run_worker"]
elif SERVICE_TYPE == "scheduler":
    print("Starting maintenance scheduler...")
    cmd = [sys.executable, "-m", "ebookgen.queue.run_scheduler"]
else:
    print(f"ERROR: Unknown SERVICE_TYPE: {SERVICE_TYPE}")
    print("Valid values: worker, scheduler")
    sys.exit(1)

print(f"Running: {' '.join(cmd)}")
print("=" * 50)

# Replace this process with the actual command
os.execvp(cmd[0], cmd)
