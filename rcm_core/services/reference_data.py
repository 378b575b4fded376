"""
Reference Data Providers.

Read-only lookups of payer rule sets and practice fee schedules for the
scrubbing engine.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from rcm_core.core.enums import PayerRuleType
from rcm_core.db.store import DocumentStore, Table
from rcm_core.schemas.reference import FeeSchedule, PayerRuleSet
from rcm_core.utils.errors import ValidationFailedError

logger = logging.getLogger(__name__)

_KNOWN_RULE_TYPES = frozenset(t.value for t in PayerRuleType)


class PayerRuleProvider(ABC):
    """Source of payer-specific scrubbing rules."""

    @abstractmethod
    async def lookup(self, tenant_id: str, payer_id: str) -> Optional[PayerRuleSet]:
        """Rule set for a payer, if one is configured."""


class FeeScheduleProvider(ABC):
    """Source of practice fee schedules."""

    @abstractmethod
    async def lookup(self, tenant_id: str, practice_id: str) -> list[FeeSchedule]:
        """All fee schedules of a practice, active or not."""


class StorePayerRuleProvider(PayerRuleProvider):
    """
    Payer rules read from the `payer_rules` table.

    Rules of a type the scrubber does not know are skipped; the rest of
    the set still applies.
    """

    def __init__(self, store: DocumentStore):
        self._store = store

    async def lookup(self, tenant_id: str, payer_id: str) -> Optional[PayerRuleSet]:
        """
        Raises:
            ValidationFailedError: If the stored rule set is malformed
        """
        if not payer_id:
            return None
        document = await self._store.first(Table.PAYER_RULES, tenant_id, payer_id=payer_id)
        if document is None:
            logger.debug(f"No payer rules for payer {payer_id}")
            return None

        rules = []
        for rule in document.get("rules") or []:
            rule_type = rule.get("rule_type") if isinstance(rule, dict) else None
            if not isinstance(rule_type, str) or rule_type not in _KNOWN_RULE_TYPES:
                logger.warning(
                    f"Skipping payer rule of unknown type {rule_type!r} for payer {payer_id}"
                )
                continue
            rules.append(rule)

        try:
            return PayerRuleSet.model_validate({**document, "rules": rules})
        except ValidationError as e:
            raise ValidationFailedError(
                f"Invalid payer rule set for payer {payer_id}",
                e.errors(include_url=False, include_context=False),
            ) from e


class StoreFeeScheduleProvider(FeeScheduleProvider):
    """Fee schedules read from the `fee_schedules` table."""

    def __init__(self, store: DocumentStore):
        self._store = store

    async def lookup(self, tenant_id: str, practice_id: str) -> list[FeeSchedule]:
        documents = await self._store.find(
            Table.FEE_SCHEDULES, tenant_id, practice_id=practice_id
        )
        return [FeeSchedule.model_validate(doc) for doc in documents]
