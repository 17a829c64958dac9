#!/usr/bin/env python3
"""
Mongo Cloner — command-line client
==================================

Usage:
    python clone_client.py start <source_uri> <target_uri> <database>
    python clone_client.py status <job_id>
    python clone_client.py jobs
    python clone_client.py delete <job_id>

Example:
    python clone_client.py start "mongodb://prod:27017" "mongodb://localhost:27017" shop

``start`` launches a clone through POST /api/clone-database and then polls
GET /api/clone-status/<job_id> until the job completes or fails, printing
progress as it goes.  The server address comes from API_BASE_URL.
"""

import sys
import time

import requests

from config import API_BASE_URL

POLL_INTERVAL_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 10

SEPARATOR = "=" * 70


def colour(text, code):
    """ANSI colour wrapper (no-op on Windows without colorama)."""
    return f"\033[{code}m{text}\033[0m"


def green(t):  return colour(t, 32)
def red(t):    return colour(t, 31)
def yellow(t): return colour(t, 33)
def cyan(t):   return colour(t, 36)
def bold(t):   return colour(t, 1)


def _get(path):
    resp = requests.get(f"{API_BASE_URL}{path}", timeout=REQUEST_TIMEOUT_SECONDS)
    resp.raise_for_status()
    return resp.json()


def format_job_line(job):
    status = job.get("status", "?")
    paint = {"completed": green, "failed": red}.get(status, yellow)
    current = job.get("currentCollection") or "-"
    return (
        f"  [{paint(status):>20}] {job.get('progress', 0):>3}%  "
        f"collections {job.get('processedCollections', 0)}/{job.get('totalCollections', 0)}  "
        f"documents {job.get('processedDocuments', 0)}/{job.get('totalDocuments', 0)}  "
        f"current: {cyan(current)}"
    )


def print_summary(job):
    print(f"\n{SEPARATOR}")
    print(bold(f"JOB {job['id']} — {job['status'].upper()}"))
    print(SEPARATOR)
    print(f"  {job.get('details', '')}")
    print(f"  Started:  {job.get('startTime')}")
    print(f"  Finished: {job.get('endTime')}")
    if job.get("errors"):
        print(red(f"\n  Errors ({len(job['errors'])}):"))
        for err in job["errors"]:
            print(f"    - {err}")


def start(source_uri, target_uri, database):
    resp = requests.post(
        f"{API_BASE_URL}/api/clone-database",
        json={
            "sourceConnection": source_uri,
            "targetConnection": target_uri,
            "databaseName": database,
        },
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    if resp.status_code != 200:
        print(red(f"  ERROR: {resp.json().get('detail', resp.text)}"))
        return 1

    job_id = resp.json()["jobId"]
    print(bold(f"Started clone job {job_id} for database '{database}'"))
    return watch(job_id)


def watch(job_id):
    last_line = None
    while True:
        try:
            job = _get(f"/api/clone-status/{job_id}")
        except requests.HTTPError as e:
            print(red(f"  ERROR: {e}"))
            return 1
        line = format_job_line(job)
        if line != last_line:
            print(line)
            last_line = line
        if job["status"] in ("completed", "failed"):
            print_summary(job)
            return 0 if job["status"] == "completed" else 1
        time.sleep(POLL_INTERVAL_SECONDS)


def status(job_id):
    try:
        job = _get(f"/api/clone-status/{job_id}")
    except requests.HTTPError as e:
        print(red(f"  ERROR: {e}"))
        return 1
    print(format_job_line(job))
    print_summary(job)
    return 0


def jobs():
    all_jobs = _get("/api/jobs")
    if not all_jobs:
        print("  No jobs.")
    for job in all_jobs:
        print(f"  {bold(job['id'])}")
        print(format_job_line(job))
    return 0


def delete(job_id):
    resp = requests.delete(f"{API_BASE_URL}/api/jobs/{job_id}", timeout=REQUEST_TIMEOUT_SECONDS)
    if resp.status_code == 404:
        print(red("  Job not found"))
        return 1
    if resp.status_code != 200:
        print(red(f"  ERROR: delete failed with HTTP {resp.status_code}"))
        return 1
    print(green(f"  Job {job_id} deleted"))
    return 0


COMMANDS = {
    "start": (start, 3),
    "status": (status, 1),
    "jobs": (jobs, 0),
    "delete": (delete, 1),
}


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] not in COMMANDS:
        print(__doc__)
        return 2
    func, nargs = COMMANDS[argv[0]]
    args = argv[1:]
    if len(args) != nargs:
        print(__doc__)
        return 2
    try:
        return func(*args)
    except requests.ConnectionError:
        print(red(f"  ERROR: cannot reach {API_BASE_URL}. Is the server running?"))
        return 1


if __name__ == "__main__":
    sys.exit(main())
