#!/usr/bin/env python3
"""
resumegen Service Entrypoint

This script determines which process to run based on the SERVICE_TYPE
environment variable.

SERVICE_TYPE values:
  - web (default): Run the FastAPI web server via gunicorn
  - setup: Declare broker topology and check the job store, then exit

Resume workers are deployed separately; they consume the broker queue
and report back through the job service callbacks.
"""

import os
import sys

from resumegen.config import config

SERVICE_TYPE = os.environ.get("SERVICE_TYPE", "web")

print("=" * 50)
print(f"resumegen Service: {SERVICE_TYPE}")
print("=" * 50)

if SERVICE_TYPE == "web":
    print("Starting web server (gunicorn)...")
    cmd = [
        "gunicorn", "resumegen.api.main:app",
        "--workers", "2",
        "--worker-class", "uvicorn.workers.UvicornWorker",
        "--bind", config.bind_address,
        "--timeout", "60",
        "--graceful-timeout", "30"
    ]
elif SERVICE_TYPE == "setup":
    print("Setting up broker topology and job store...")
    cmd = [sys.executable, "scripts/setup_infrastructure.py"]
else:
    print(f"ERROR: Unknown SERVICE_TYPE: {SERVICE_TYPE}")
    print("Valid values: web, setup")
    sys.exit(1)

print(f"Running: {' '.join(cmd)}")
print("=" * 50)

# Replace this process with the actual command
os.execvp(cmd[0], cmd)
