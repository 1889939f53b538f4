#!/usr/bin/env python3
"""
Smoke test for reverse-captcha deployments.

A deploy guardrail: fast, and failures name the step and the HTTP status.

Flow (default):
1. Health check
2. Start a challenge
3. Stream operations to done while keeping the running total
4. Submit the total (expects ok)
5. Resubmit the same solution (expects invalid-token)

Usage:
    ./scripts/smoke-test.py https://staging.example.com
    ./scripts/smoke-test.py https://staging.example.com --health-only
"""

import argparse
import json
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

DEFAULT_TIMEOUT_SECONDS = 10.0
BODY_PREVIEW_CHARS = 200


def log(msg: str) -> None:
    """Print timestamped log message."""
    print(f"[{datetime.now().strftime('%H:%M:%S')}] {msg}", flush=True)


@dataclass
class HttpClient:
    base_url: str
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def post_json(self, path: str, data: dict[str, Any] | None = None) -> tuple[int, dict]:
        body = json.dumps(data or {}).encode()
        request = Request(
            f"{self.base_url}{path}",
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urlopen(request, timeout=self.timeout_seconds) as response:
                return response.getcode(), json.loads(response.read().decode())
        except HTTPError as e:
            raw = e.read().decode("utf-8", errors="replace") if e.fp else ""
            try:
                return e.code, json.loads(raw)
            except json.JSONDecodeError:
                return e.code, {"raw": raw[:BODY_PREVIEW_CHARS]}

    def get(self, path: str):
        return urlopen(Request(f"{self.base_url}{path}"), timeout=self.timeout_seconds)


def wait_for_health(client: HttpClient, max_attempts: int = 30, delay: float = 2.0) -> bool:
    """Wait for /health to return healthy status."""
    for attempt in range(1, max_attempts + 1):
        try:
            with client.get("/health") as response:
                if json.loads(response.read().decode()).get("status") == "healthy":
                    log(f"Health check passed (attempt {attempt})")
                    return True
        except (HTTPError, URLError, TimeoutError, json.JSONDecodeError):
            pass

        if attempt < max_attempts:
            time.sleep(delay)

    return False


@dataclass
class SmokeContext:
    client: HttpClient
    max_health_attempts: int

    start: dict[str, Any] = field(default_factory=dict)
    solution: dict[str, Any] = field(default_factory=dict)

    def require_start(self) -> dict[str, Any]:
        if not self.start:
            raise RuntimeError("Missing challenge (step ordering bug)")
        return self.start

    def require_solution(self) -> dict[str, Any]:
        if not self.solution:
            raise RuntimeError("Missing solution (step ordering bug)")
        return self.solution


@dataclass(frozen=True)
class Step:
    name: str
    run: Callable[[SmokeContext], None]


def run_steps(ctx: SmokeContext, steps: list[Step]) -> bool:
    overall_start = time.time()

    for step in steps:
        log(f"STEP: {step.name}")
        start = time.time()
        try:
            step.run(ctx)
        except Exception as e:
            log(f"FAILED: {step.name} ({time.time() - start:.2f}s) - {e}")
            return False
        log(f"OK: {step.name} ({time.time() - start:.2f}s)")

    log(f"Total: {time.time() - overall_start:.2f}s")
    return True


def step_health(ctx: SmokeContext) -> None:
    if not wait_for_health(ctx.client, max_attempts=ctx.max_health_attempts):
        raise RuntimeError("Health check failed")


def step_start(ctx: SmokeContext) -> None:
    status, data = ctx.client.post_json("/captcha/start")
    if status != 200:
        raise RuntimeError(f"Start returned {status}: {data}")
    for key in ("token", "streamUrl", "solveUrl", "opsPerChallenge"):
        if key not in data:
            raise RuntimeError(f"Start response missing {key!r}")
    ctx.start = data


def step_stream(ctx: SmokeContext) -> None:
    start = ctx.require_start()
    last_seq = 0
    total = 0

    with ctx.client.get(start["streamUrl"]) as response:
        for raw in response:
            line = raw.decode().strip()
            if line == "event: done":
                break
            if not line.startswith("data: "):
                continue
            message = json.loads(line[len("data: ") :])
            if message["seq"] != last_seq + 1:
                raise RuntimeError(f"Sequence gap: {last_seq} -> {message['seq']}")
            total += message["value"] if message["sign"] == "+" else -message["value"]
            last_seq = message["seq"]

    if last_seq != start["opsPerChallenge"]:
        raise RuntimeError(f"Stream ended at seq {last_seq}, expected {start['opsPerChallenge']}")

    ctx.solution = {
        "token": start["token"],
        "lastSeq": last_seq,
        "total": total,
        "clientTs": int(time.time() * 1000),
    }


def step_solve(ctx: SmokeContext) -> None:
    status, data = ctx.client.post_json(ctx.require_start()["solveUrl"], ctx.require_solution())
    if status != 200 or data.get("ok") is not True:
        raise RuntimeError(f"Solve returned {status}: {data}")


def step_replay(ctx: SmokeContext) -> None:
    status, data = ctx.client.post_json(ctx.require_start()["solveUrl"], ctx.require_solution())
    if status != 404 or data.get("reason") != "invalid-token":
        raise RuntimeError(f"Replay was not rejected: {status} {data}")


def main() -> int:
    parser = argparse.ArgumentParser(description="reverse-captcha smoke test")
    parser.add_argument("base_url", help="Base URL (e.g., https://staging.example.com)")
    parser.add_argument(
        "--health-only",
        action="store_true",
        help="Only run health check, skip full flow",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"HTTP timeout seconds (default: {DEFAULT_TIMEOUT_SECONDS:g})",
    )
    parser.add_argument(
        "--max-health-attempts",
        type=int,
        default=30,
        help="Max health check attempts (default: 30)",
    )
    args = parser.parse_args()

    client = HttpClient(base_url=args.base_url.rstrip("/"), timeout_seconds=args.timeout)
    ctx = SmokeContext(client=client, max_health_attempts=args.max_health_attempts)

    steps = [Step("health", step_health)]
    if args.health_only:
        log("Health-only mode: skipping full flow")
    else:
        steps.extend(
            [
                Step("start challenge", step_start),
                Step("stream operations", step_stream),
                Step("solve", step_solve),
                Step("replay rejected", step_replay),
            ]
        )

    return 0 if run_steps(ctx, steps) else 1


if __name__ == "__main__":
    sys.exit(main())
