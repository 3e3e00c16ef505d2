"""Demo command handler for civicsync CLI.

Runs one optimistic vote end to end against the in-memory data store:
the campaign is read into the cache, the vote is applied speculatively,
sent through the retry policy and then either confirmed (the store's
realtime echo is reconciled) or rolled back.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

from dependency_injector import providers
from rich.console import Console
from rich.table import Table

from civicsync.cache.models import QueryKey
from civicsync.cli.context import get_cli_context
from civicsync.cli.json_formatter import format_json_output
from civicsync.config.loader import get_config
from civicsync.config.models.settings import Settings
from civicsync.containers import Container
from civicsync.domain.models import CampaignStatus, VoteType
from civicsync.mutations.campaigns import active_campaigns_search
from civicsync.realtime.subscription_manager import teardown_subscription_manager
from civicsync.shared.constants import CLICommands, CLIDefaults, CLIMessages
from civicsync.shared.errors import ErrorCode, MutationError

logger = logging.getLogger(__name__)

DEMO_RETRY_DELAY = 0.01


def _demo_settings(settings: Settings) -> Settings:
    retry = settings.retry.model_copy(
        update={"base_delay": DEMO_RETRY_DELAY, "max_delay": DEMO_RETRY_DELAY * 4},
    )
    return settings.model_copy(update={"retry": retry})


async def run_demo(
    *,
    fail: bool = False,
    votes: int = 10,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Vote once on a seeded campaign and report what the cache showed.

    Args:
        fail: Make every send attempt fail so the vote is rolled back
        votes: Initial vote count of the seeded campaign
        settings: Base settings (the global configuration by default)

    Returns:
        Vote counts before, during and after the mutation plus bridge and
        cache counters
    """
    demo_settings = _demo_settings(settings or get_config())
    container = Container()
    container.config.override(providers.Object(demo_settings))

    store = container.gateway()
    cache = container.query_cache()
    operations = container.campaign_operations()
    coordinator = container.coordinator()
    bridge = container.bridge()

    campaign = store.seed_campaign(
        title="Fix the potholes on Main Street",
        description="Collect support for resurfacing Main Street before winter.",
        status=CampaignStatus.ACTIVE,
        city="Springfield",
        state="IL",
        vote_count=votes,
    )
    detail_key = QueryKey.campaign(campaign.id)
    seen: list[int] = []
    unobserve = cache.observe(detail_key, lambda _key, value: seen.append(value.vote_count))

    report: dict[str, Any] = {"campaign_id": campaign.id, "initial_votes": votes}
    try:
        await bridge.start()
        await bridge.watch_campaign(campaign.id)
        await operations.get_by_id(campaign.id)
        await operations.search(active_campaigns_search())
        seen.clear()

        if fail:
            store.fail_next(
                ErrorCode.INTERNAL_SERVER_ERROR,
                times=demo_settings.retry.max_attempts,
            )

        try:
            await operations.vote({"campaign_id": campaign.id, "vote_type": VoteType.SUPPORT})
        except MutationError as e:
            report.update(confirmed=False, message=e.user_message)
        else:
            report.update(confirmed=True, message=None)

        await coordinator.wait_for_refetches()
        final = cache.get_data(detail_key)
        report.update(
            speculative_votes=seen[0] if seen else None,
            final_votes=final.vote_count if final is not None else None,
            send_attempts=store.calls["vote"],
            realtime=bridge.get_stats(),
            cache=cache.statistics.get_summary()["cache_metrics"],
        )
    finally:
        unobserve()
        await bridge.stop()
        await teardown_subscription_manager()
    return report


def _print_report(console: Console, report: dict[str, Any]) -> None:
    console.print(CLIMessages.Info.SPECULATIVE.format(count=report["speculative_votes"]))
    if report["confirmed"]:
        console.print(CLIMessages.Info.CONFIRMED)
    else:
        console.print(CLIMessages.Info.ROLLED_BACK.format(message=report["message"]))
    console.print(CLIMessages.Info.FINAL.format(count=report["final_votes"]))

    realtime = report["realtime"]
    console.print(
        CLIMessages.Info.REALTIME.format(
            merged=realtime["merged"],
            buffered=realtime["buffered"],
            deduplicated=realtime["deduplicated_events"],
        ),
    )

    table = Table(title="Vote summary")
    table.add_column("Initial", justify="right")
    table.add_column("Speculative", justify="right")
    table.add_column("Final", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_row(
        str(report["initial_votes"]),
        str(report["speculative_votes"]),
        str(report["final_votes"]),
        str(report["send_attempts"]),
    )
    console.print(table)


def handle_demo_command(
    *,
    fail: bool = False,
    votes: int = 10,
    console: Console | None = None,
) -> int:
    """Run the optimistic vote demo.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    console = console or Console()
    logger.info(CLIMessages.Info.COMMAND_STARTED.format(command=CLICommands.DEMO))
    context = get_cli_context()

    try:
        report = asyncio.run(run_demo(fail=fail, votes=votes))
    except Exception as e:  # noqa: BLE001
        logger.exception("Demo failed")
        if context.is_json_output_enabled():
            sys.stdout.buffer.write(
                format_json_output(success=False, command=CLICommands.DEMO, errors=[str(e)]),
            )
            sys.stdout.buffer.write(b"\n")
        else:
            console.print(CLIMessages.Error.DEMO.format(e=e))
        return CLIDefaults.EXIT_ERROR

    if context.is_json_output_enabled():
        sys.stdout.buffer.write(format_json_output(success=True, command=CLICommands.DEMO, data=report))
        sys.stdout.buffer.write(b"\n")
        sys.stdout.buffer.flush()
    else:
        _print_report(console, report)

    logger.info(CLIMessages.Info.COMMAND_COMPLETED.format(command=CLICommands.DEMO))
    return CLIDefaults.EXIT_SUCCESS


__all__ = ["handle_demo_command", "run_demo"]
