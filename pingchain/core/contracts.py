"""Communication contracts: recurring check-in schedules per contact.

``next_checkin`` is always derived from ``last_checkin`` plus the frequency
offset, pinned to the contract's time of day. Firing a due contract emits a
``checkin`` reminder, moves ``last_checkin`` to the firing instant and
recomputes ``next_checkin`` from there.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from dateutil.relativedelta import relativedelta

from pingchain.config import ENGINE_CONFIG
from pingchain.core.orchestrator import NotificationOrchestrator
from pingchain.core.timestamps import normalize, utcnow
from pingchain.models import FREQUENCIES, CommunicationContract, NotificationSettings
from pingchain.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)

# relativedelta clamps month arithmetic to the last day of the month
FREQUENCY_OFFSETS = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "biweekly": relativedelta(weeks=2),
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
    "yearly": relativedelta(years=1),
}

_TIME_OF_DAY = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_time_of_day(value: str) -> tuple[int, int]:
    match = _TIME_OF_DAY.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid time of day {value!r}, expected HH:MM")
    return int(match.group(1)), int(match.group(2))


def validate_days_of_week(days: list[int]) -> list[int]:
    if any(not isinstance(d, int) or not 0 <= d <= 6 for d in days):
        raise ValueError(f"Days of week must be integers 0 (Sunday) to 6: {days}")
    return sorted(set(days))


def next_checkin(from_dt: datetime, frequency: str, time_of_day: str) -> datetime:
    """Next check-in after ``from_dt`` for a frequency, at ``time_of_day`` UTC."""
    if frequency not in FREQUENCY_OFFSETS:
        raise ValueError(f"Unknown frequency {frequency!r}; expected one of {FREQUENCIES}")
    hour, minute = parse_time_of_day(time_of_day)
    shifted = normalize(from_dt) + FREQUENCY_OFFSETS[frequency]
    return shifted.replace(hour=hour, minute=minute, second=0, microsecond=0)


class ContractScheduler:
    def __init__(
        self,
        store: SQLiteStore,
        orchestrator: NotificationOrchestrator,
        settings: NotificationSettings,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.settings = settings

    async def create(
        self,
        user_id: str,
        contact_id: str,
        contact_name: str,
        frequency: str,
        time_of_day: str | None = None,
        days_of_week: list[int] | None = None,
        now: datetime | None = None,
    ) -> CommunicationContract:
        now = normalize(now) if now is not None else utcnow()
        time_of_day = time_of_day or ENGINE_CONFIG["contract_default_time_of_day"]
        parse_time_of_day(time_of_day)
        if days_of_week is None:
            days_of_week = list(ENGINE_CONFIG["contract_default_days_of_week"])
        contract = CommunicationContract(
            user_id=user_id,
            contact_id=contact_id,
            contact_name=contact_name,
            frequency=frequency,
            time_of_day=time_of_day,
            days_of_week=validate_days_of_week(days_of_week),
            last_checkin=now,
            next_checkin=next_checkin(now, frequency, time_of_day),
        )
        await self.store.save_contract(contract)
        logger.info("Created %s contract %s with %s, first check-in %s",
                    frequency, contract.id, contact_name, contract.next_checkin.isoformat())
        return contract

    def advance(self, contract: CommunicationContract, now: datetime | None = None) -> datetime:
        """Recompute ``next_checkin`` from ``last_checkin``.

        ``now`` is accepted for call-site symmetry and does not affect the result.
        """
        contract.next_checkin = next_checkin(
            contract.last_checkin, contract.frequency, contract.time_of_day,
        )
        return contract.next_checkin

    async def due_contracts(
        self, user_id: str, now: datetime | None = None,
    ) -> list[CommunicationContract]:
        now = normalize(now) if now is not None else utcnow()
        return [
            c for c in await self.store.list_contracts(user_id, status="active")
            if c.next_checkin <= now
        ]

    async def fire_due(self, user_id: str, now: datetime | None = None) -> list[str]:
        """Emit check-in reminders for due contracts. Returns reminder ids."""
        if not self.settings.scheduled_reminders:
            return []
        now = normalize(now) if now is not None else utcnow()
        fired = []
        for contract in await self.due_contracts(user_id, now):
            reminder_id = await self.orchestrator.create_reminder(
                user_id=user_id,
                contact_id=contract.contact_id,
                contact_name=contract.contact_name,
                message=f"Time for your {contract.frequency} check-in with {contract.contact_name}.",
                type="checkin",
                priority="medium",
                now=now,
            )
            contract.last_checkin = now
            self.advance(contract)
            await self.store.save_contract(contract)
            logger.debug("Contract %s fired, next check-in %s",
                         contract.id, contract.next_checkin.isoformat())
            fired.append(reminder_id)
        return fired

    async def pause(self, contract_id: str) -> CommunicationContract:
        return await self._set_status(contract_id, "paused", allowed=("active",))

    async def resume(
        self, contract_id: str, now: datetime | None = None,
    ) -> CommunicationContract:
        """Reactivate a paused contract.

        A check-in that fell due while paused is re-anchored to ``now`` so
        resuming does not fire a backlog immediately.
        """
        now = normalize(now) if now is not None else utcnow()
        contract = await self._set_status(contract_id, "active", allowed=("paused",), save=False)
        if contract.next_checkin <= now:
            contract.last_checkin = now
            self.advance(contract)
        await self.store.save_contract(contract)
        return contract

    async def complete(self, contract_id: str) -> CommunicationContract:
        return await self._set_status(contract_id, "completed", allowed=("active", "paused"))

    async def _set_status(
        self, contract_id: str, status: str, allowed: tuple[str, ...], save: bool = True,
    ) -> CommunicationContract:
        contract = await self.store.get_contract(contract_id)
        if contract is None:
            raise KeyError(contract_id)
        if contract.status not in allowed:
            raise ValueError(
                f"Contract {contract_id} is {contract.status!r}, cannot become {status!r}"
            )
        contract.status = status
        if save:
            await self.store.save_contract(contract)
        return contract
