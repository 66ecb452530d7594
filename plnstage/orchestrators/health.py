"""Provider health monitoring.

Runs on its own schedule, independent of the deposit stages.
"""

import logging
from datetime import datetime

from plnstage.domain.models import (
    AccessListEntry,
    AccessListKind,
    Provider,
    ProviderStatus,
)
from plnstage.domain.services import compare_versions, utcnow
from plnstage.domain.types import Clock, Notifier
from plnstage.operations.ping import Pinger
from plnstage.state.manager import StateManager

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Detect silent providers and sweep providers onto the allow-list."""

    def __init__(
        self,
        state: StateManager,
        pinger: Pinger,
        notifier: Notifier,
        recipients: list[str] | None = None,
        days_silent: int = 90,
        min_version: str = "3.1.0.0",
        clock: Clock = utcnow,
    ):
        """Initialize the monitor.

        Args:
            state: Shared state repository
            pinger: Gateway ping client
            notifier: Delivers the silent-provider report
            recipients: Operator addresses for the report
            days_silent: Days without contact before a provider counts as silent
            min_version: Lowest software version the sweep allow-lists
            clock: Time source
        """
        self.state = state
        self.pinger = pinger
        self.notifier = notifier
        self.recipients = recipients or []
        self.days_silent = days_silent
        self.min_version = min_version
        self.clock = clock

    def check_silent(self, dry_run: bool = False) -> dict[str, ProviderStatus]:
        """Notify operators about silent providers, then ping each of them.

        Args:
            dry_run: Ping and report, but do not save status changes

        Returns:
            Dictionary mapping provider uuids to their new status
        """
        now = self.clock()
        with self.state as state:
            providers = state.find_silent_providers(self.days_silent, now)
        logger.info(f"Found {len(providers)} silent providers.")
        if not providers:
            return {}

        if self.recipients:
            self.notifier.send(self.recipients, self._silent_report(providers, now))
        else:
            logger.error("No users to notify.")

        results = {}
        for provider in providers:
            result = self.pinger.ping(provider)
            if result.healthy:
                status, field = ProviderStatus.HEALTHY, "contacted"
            else:
                status, field = ProviderStatus.UNHEALTHY, "notified"
                logger.warning(
                    f"{provider.uuid} - unhealthy - {result.error or result.http_status}"
                )
            results[provider.uuid] = status
            if not dry_run:
                self._update(provider.uuid, status=status, **{field: now})
        return results

    def ping_whitelist(
        self,
        min_version: str | None = None,
        dry_run: bool = False,
        include_all: bool = False,
    ) -> dict[str, str]:
        """Ping providers and allow-list those running recent enough software.

        Args:
            min_version: Overrides the configured minimum version
            dry_run: Ping and report, but change nothing
            include_all: Also ping listed providers and providers in ping-error

        Returns:
            Dictionary mapping provider uuids to what happened to them
        """
        minimum = min_version or self.min_version
        now = self.clock()
        with self.state as state:
            providers = state.all_providers()
            listed = {
                p.uuid
                for p in providers
                if state.find_access_entry(AccessListKind.ALLOW, p.uuid)
                or state.find_access_entry(AccessListKind.DENY, p.uuid)
            }

        results = {}
        for provider in providers:
            if not include_all:
                if provider.uuid in listed:
                    continue
                if provider.status == ProviderStatus.PING_ERROR:
                    logger.info(f"{provider.uuid} - skipped - previous ping error")
                    results[provider.uuid] = "skipped"
                    continue

            result = self.pinger.ping(provider)
            if not result.succeeded or not result.software_version:
                reason = result.error or "no software version reported"
                logger.warning(f"{provider.uuid} - ping error - {reason}")
                results[provider.uuid] = "ping-error"
                if not dry_run:
                    self._update(provider.uuid, status=ProviderStatus.PING_ERROR)
                continue

            if not dry_run:
                updates = {
                    "contacted": now,
                    "software_version": result.software_version,
                    "terms_accepted": result.terms_accepted == "yes",
                }
                if result.title:
                    updates["name"] = result.title
                self._update(provider.uuid, **updates)

            version = result.software_version
            if compare_versions(version, minimum) < 0:
                logger.info(f"{provider.uuid} - {version} is older than {minimum}")
                results[provider.uuid] = "too-old"
                continue
            if provider.uuid in listed:
                results[provider.uuid] = "listed"
                continue
            if dry_run:
                logger.info(f"{provider.uuid} - {version} - would be allow-listed")
                results[provider.uuid] = "would-allow"
                continue

            entry = AccessListEntry(
                uuid=provider.uuid,
                kind=AccessListKind.ALLOW,
                comment=f"{provider.url} added automatically by ping-whitelist command.",
                created=now,
            )
            with self.state as state:
                state.add_access_entry(entry)
            logger.info(f"{provider.uuid} - {version} - allow-listed")
            results[provider.uuid] = "allowed"
        return results

    def _update(self, uuid: str, **fields) -> None:
        # Re-read inside the transaction so concurrent protocol contacts are kept.
        with self.state as state:
            provider = state.find_provider(uuid)
            if provider is None:
                return
            for name, value in fields.items():
                setattr(provider, name, value)
            state.persist_provider(provider)

    def _silent_report(self, providers: list[Provider], now: datetime) -> str:
        lines = [f"Providers silent for more than {self.days_silent} days:", ""]
        for provider in providers:
            days = (now - provider.contacted).days if provider.contacted else "?"
            lines.append(f"{provider.uuid} - {provider.name} - {provider.url} - {days} days")
        return "\n".join(lines)
