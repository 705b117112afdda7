#!/usr/bin/env python3
"""Trigger an AI damage analysis and follow it until it settles.

Usage:
    python scripts/watch_report.py REPORT_ID [--api-url http://localhost:8000] [--no-trigger]

This script:
1. POSTs /api/v1/reports/{id}/analyze (unless --no-trigger)
2. Polls GET /api/v1/reports/{id} every few seconds
3. Prints each status change and a summary of the final result
"""

import asyncio
import sys
from pathlib import Path
from argparse import ArgumentParser

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
import structlog
from client.poller import ReportStatus, StatusPoller

# Configure logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(20),  # INFO level
)

logger = structlog.get_logger()


def gateway_headers(user_id: str | None, company_id: str | None, roles: str | None) -> dict:
    headers = {}
    if user_id:
        headers["X-User-Id"] = user_id
    if company_id:
        headers["X-Company-Id"] = company_id
    if roles:
        headers["X-User-Roles"] = roles
    return headers


def print_summary(status: ReportStatus) -> None:
    analysis = status.ai_analysis
    print(f"\nReport {status.report_id}: {status.analysis_status}")

    if status.analysis_status == "failed":
        print(f"  Error ({analysis.get('error_type')}): {analysis.get('error')}")
        return

    print(f"  Images analyzed: {analysis.get('total_images_analyzed', 0)}")
    print(f"  Detections: {len(status.detections)}")
    for detection in status.detections:
        print(f"    - {detection.get('label')} ({detection.get('confidence', 0):.2f})"
              f" -> {detection.get('local_output_path') or 'no local image'}")

    peril = analysis.get("peril_match") or {}
    if peril:
        print(f"  Peril match: {peril.get('match')} ({peril.get('reported_peril')})")
    for signal in analysis.get("fraud_signals") or []:
        print(f"  Fraud signal: {signal}")
    for warning in analysis.get("copy_warnings") or []:
        print(f"  Copy warning [{warning.get('error_name')}]: {warning.get('source_uri')}")
    if analysis.get("final_assessment"):
        print(f"  Assessment: {analysis['final_assessment']}")


async def main():
    parser = ArgumentParser(description="Trigger and watch a report analysis")
    parser.add_argument("report_id", help="Report to analyze")
    parser.add_argument("--api-url", default="http://localhost:8000",
                       help="API base URL (default: http://localhost:8000)")
    parser.add_argument("--interval", type=float, default=3.0,
                       help="Seconds between status fetches (default: 3)")
    parser.add_argument("--timeout", type=float, default=900.0,
                       help="Give up after this many seconds (default: 900)")
    parser.add_argument("--no-trigger", action="store_true",
                       help="Only watch; do not start a new analysis")
    parser.add_argument("--user-id", help="X-User-Id for gateway-authenticated APIs")
    parser.add_argument("--company-id", help="X-Company-Id for gateway-authenticated APIs")
    parser.add_argument("--roles", help="Comma-separated X-User-Roles")
    args = parser.parse_args()

    headers = gateway_headers(args.user_id, args.company_id, args.roles)
    final: dict = {}

    async with httpx.AsyncClient(base_url=args.api_url, headers=headers, timeout=30.0) as http:
        initial_status = None
        if args.no_trigger:
            poller = StatusPoller(http, interval=args.interval)
            current = await poller.fetch(args.report_id)
            initial_status = current.analysis_status
            final["status"] = current
        else:
            response = await http.post(f"/api/v1/reports/{args.report_id}/analyze")
            if response.status_code != 202:
                print(f"Trigger rejected ({response.status_code}): {response.text}")
                sys.exit(1)
            job_id = response.json().get("jobId")
            logger.info("Analysis triggered", report_id=args.report_id, job_id=job_id)
            initial_status = "analyzing"

        def on_update(status: ReportStatus) -> None:
            final["status"] = status
            logger.info(
                "Analysis status",
                report_id=status.report_id,
                status=status.analysis_status,
                detections=len(status.detections),
            )

        poller = StatusPoller(http, interval=args.interval)
        handle = poller.watch(args.report_id, on_update, initial_status=initial_status)

        try:
            await asyncio.wait_for(handle.wait(), timeout=args.timeout)
        except asyncio.TimeoutError:
            handle.cancel()
            await handle.wait()
            print(f"Gave up after {args.timeout:.0f}s; analysis still running")
            sys.exit(2)

    if "status" in final:
        print_summary(final["status"])


if __name__ == "__main__":
    asyncio.run(main())
