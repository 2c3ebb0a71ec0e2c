#!/usr/bin/env python3
"""Run the SDLC flow against a running docker-compose stack.

Usage::

    # Run with defaults (services on localhost):
    python scripts/run_sdlc_flow.py

    # Keep a run log and a failure screenshot:
    python scripts/run_sdlc_flow.py --run-log evidence/run.json --evidence-dir evidence

    # Watch the browser:
    python scripts/run_sdlc_flow.py --headed --verbose

Configuration comes from environment variables (GITEA_URL, SONAR_NEW_PASS,
...). Exit status is 0 when every step passed, 1 otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

# Add project root to path for imports.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT / 'src'))

from sdlc_flow.errors import FlowStepFailed, SettingsError
from sdlc_flow.log import configure_logging
from sdlc_flow.orchestrator import FlowResult, StepOutcome
from sdlc_flow.run_log import RunLog
from sdlc_flow.runtime import open_flow
from sdlc_flow.settings import FlowSettings

logger = logging.getLogger('sdlc_flow.runner')


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Run the Gitea/Jenkins/Nexus/SonarQube/nginx SDLC flow.',
    )
    parser.add_argument(
        '--run-log',
        type=Path,
        help='Write a JSON run log to this path',
    )
    parser.add_argument(
        '--evidence-dir',
        type=Path,
        help='Save a full-page screenshot here when a step fails',
    )
    parser.add_argument(
        '--headed',
        action='store_true',
        help='Show the browser window (default: headless, or HEADED env var)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging (poll iterations)',
    )
    parser.add_argument(
        '--json',
        action='store_true',
        dest='json_output',
        help='Print the run log as JSON instead of a text summary',
    )
    return parser.parse_args(argv)


def print_text_result(result: FlowResult) -> None:
    for step in result.steps:
        if step.passed:
            marker = '  ✔'
        elif step.outcome == StepOutcome.SKIPPED:
            marker = '  ⏩'
        else:
            marker = '  ✘'
        print(f'{marker} {step.name} [{step.outcome.value}] {step.duration_ms:.0f}ms')
        if step.detail and step.outcome != StepOutcome.SKIPPED:
            print(f'      {step.detail}')
        if step.error:
            print(f'      {step.error}')

    summary = result.summary()
    icon = '✔' if result.passed else '✘'
    print(f'\n{"=" * 60}')
    print(f'{icon} {summary["steps"]} steps | '
          f'created {summary["created"]} | '
          f'existing {summary["already_exists"]} | '
          f'done {summary["done"]} | '
          f'failed {summary["failed"]} | '
          f'skipped {summary["skipped"]} | '
          f'{result.total_duration_ms / 1000:.1f}s')


async def run(args: argparse.Namespace) -> int:
    try:
        settings = FlowSettings.from_env()
    except SettingsError as exc:
        print(f'ERROR: {exc}', file=sys.stderr)
        return 1
    if args.headed:
        settings = dataclasses.replace(settings, headed=True)

    problems = settings.validate()
    if problems:
        for problem in problems:
            print(f'ERROR: {problem}', file=sys.stderr)
        return 1

    metadata = {
        'gitea_url': settings.gitea_url,
        'jenkins_url': settings.jenkins_url,
        'nexus_url': settings.nexus_url,
        'nginx_url': settings.nginx_url,
        'sonar_url': settings.sonar_url,
        'headed': settings.headed,
    }

    async with open_flow(settings) as runtime:
        try:
            result = await runtime.flow.run()
        except FlowStepFailed as exc:
            result = exc.result
            if args.evidence_dir:
                shot = args.evidence_dir / f'{exc.step.replace(":", "_")}.png'
                try:
                    await runtime.browser.screenshot(shot)
                    logger.info('Saved failure screenshot to %s', shot)
                    metadata['screenshot'] = str(shot)
                except Exception as shot_exc:
                    logger.warning('Could not save screenshot: %s', shot_exc)

    run_log = RunLog.from_result(result, metadata=metadata)
    if args.run_log:
        run_log.write(args.run_log)
        logger.info('Wrote run log to %s', args.run_log)

    if args.json_output:
        print(run_log.to_json())
    else:
        print_text_result(result)

    return 0 if result.passed else 1


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(level='DEBUG' if args.verbose else 'INFO')
    return asyncio.run(run(args))


if __name__ == '__main__':
    sys.exit(main())
