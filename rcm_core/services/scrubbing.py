"""
Claim Scrubbing Engine.

Provides:
- Required-field validation
- Payer rule evaluation
- Fee schedule comparison
- Common coding issue detection

Pure and synchronous: the same claim and reference data always yield the
same ordered issue list. Phases run in a fixed order and each appends to
one report, so issue order is stable for display.
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from rcm_core.core.config import RCMSettings, get_settings
from rcm_core.core.enums import ClaimStatus, PayerRuleType, ScrubSeverity
from rcm_core.schemas.claim import Claim, ScrubIssue
from rcm_core.schemas.reference import FeeSchedule, PayerRuleSet
from rcm_core.utils.money import ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)


# Rule types whose message lists the matching procedure codes
_CODE_LISTING_RULES = {
    PayerRuleType.PRE_AUTH_REQUIRED: "PRE_AUTH_REQUIRED",
    PayerRuleType.ATTACHMENT_REQUIRED: "ATTACHMENT_REQUIRED",
    PayerRuleType.FREQUENCY_LIMIT: "FREQUENCY_LIMIT",
}

_DESCRIPTION_RULES = {
    PayerRuleType.PROCEDURE_COMBO: ("PROCEDURE_COMBO", ScrubSeverity.WARNING),
    PayerRuleType.AGE_LIMIT: ("AGE_LIMIT", ScrubSeverity.WARNING),
    PayerRuleType.MISSING_DATA: ("MISSING_DATA", ScrubSeverity.ERROR),
}


@dataclass
class ScrubConfig:
    """Thresholds for claim scrubbing."""

    fee_over_schedule_ratio: Decimal = Decimal("1.10")
    money_tolerance: Decimal = Decimal("0.01")
    tooth_required_prefixes: tuple[str, ...] = ("D2", "D3", "D4", "D6", "D7")
    surgical_prefixes: tuple[str, ...] = ("D7",)

    @classmethod
    def from_settings(cls, settings: RCMSettings) -> "ScrubConfig":
        return cls(
            fee_over_schedule_ratio=settings.FEE_OVER_SCHEDULE_RATIO,
            money_tolerance=settings.MONEY_TOLERANCE,
            tooth_required_prefixes=settings.tooth_required_prefixes,
            surgical_prefixes=settings.surgical_prefixes,
        )


@dataclass
class ScrubReport:
    """Ordered scrub findings for one claim."""

    issues: list[ScrubIssue] = field(default_factory=list)

    def add_issue(
        self,
        code: str,
        message: str,
        severity: ScrubSeverity,
        field_path: Optional[str] = None,
    ) -> None:
        """Append a finding."""
        self.issues.append(
            ScrubIssue(code=code, message=message, severity=severity, field=field_path)
        )

    def _count(self, severity: ScrubSeverity) -> int:
        return sum(1 for issue in self.issues if issue.severity == severity)

    @property
    def error_count(self) -> int:
        return self._count(ScrubSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return self._count(ScrubSeverity.WARNING)

    @property
    def info_count(self) -> int:
        return self._count(ScrubSeverity.INFO)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    @property
    def status(self) -> ClaimStatus:
        """Claim status implied by the findings."""
        return ClaimStatus.SCRUB_FAILED if self.has_errors else ClaimStatus.READY

    @property
    def codes(self) -> list[str]:
        return [issue.code for issue in self.issues]


def select_fee_schedule(
    schedules: list[FeeSchedule],
    payer_id: str,
) -> Optional[FeeSchedule]:
    """Payer-specific active schedule, else the default active one."""
    payer_schedule = next(
        (s for s in schedules if s.payer_id == payer_id and s.is_active), None
    )
    if payer_schedule is not None:
        return payer_schedule
    return next((s for s in schedules if s.is_default and s.is_active), None)


def _money(value: Decimal) -> str:
    return f"${round_money(value)}"


# =============================================================================
# Scrubbing Engine
# =============================================================================


class ScrubbingEngine:
    """
    Rule-based pre-submission claim validator.

    Phases, in order:
    1. Required fields
    2. Payer rules
    3. Fee schedule comparison
    4. Common issues (duplicates, tooth numbers, total mismatch)
    """

    def __init__(self, config: Optional[ScrubConfig] = None):
        self.config = config or ScrubConfig.from_settings(get_settings())

    def scrub(
        self,
        claim: Claim,
        payer_rules: Optional[PayerRuleSet] = None,
        fee_schedules: Optional[list[FeeSchedule]] = None,
    ) -> ScrubReport:
        """
        Scrub a claim against its payer's rules and the practice fee schedules.

        Args:
            claim: Claim to validate
            payer_rules: Rule set for the claim's payer, if any
            fee_schedules: Fee schedules of the claim's practice

        Returns:
            ScrubReport with findings in phase order
        """
        report = ScrubReport()

        self._check_required_fields(claim, report)
        self._check_payer_rules(claim, payer_rules, report)
        self._check_fee_schedule(
            claim, select_fee_schedule(fee_schedules or [], claim.payer_id), report
        )
        self._check_common_issues(claim, report)

        logger.debug(
            f"Scrubbed claim {claim.id}: {report.error_count} errors, "
            f"{report.warning_count} warnings"
        )
        return report

    # =========================================================================
    # Phase 1: Required Fields
    # =========================================================================

    def _check_required_fields(self, claim: Claim, report: ScrubReport) -> None:
        if not claim.patient_id:
            report.add_issue(
                "MISSING_PATIENT",
                "Patient ID is required",
                ScrubSeverity.ERROR,
                "patient_id",
            )

        if not claim.payer_id:
            report.add_issue(
                "MISSING_PAYER",
                "Payer ID is required",
                ScrubSeverity.ERROR,
                "payer_id",
            )

        if not claim.procedures:
            report.add_issue(
                "NO_PROCEDURES",
                "At least one procedure is required",
                ScrubSeverity.ERROR,
                "procedures",
            )

        if claim.total_charged <= 0:
            report.add_issue(
                "INVALID_TOTAL",
                "Total charged must be greater than zero",
                ScrubSeverity.ERROR,
                "total_charged",
            )

        for i, proc in enumerate(claim.procedures):
            if not proc.code.strip():
                report.add_issue(
                    "MISSING_PROC_CODE",
                    f"Procedure {i + 1}: missing procedure code",
                    ScrubSeverity.ERROR,
                    f"procedures[{i}].code",
                )
            if proc.fee <= 0:
                report.add_issue(
                    "INVALID_PROC_FEE",
                    f"Procedure {i + 1} ({proc.code}): fee must be greater than zero",
                    ScrubSeverity.ERROR,
                    f"procedures[{i}].fee",
                )

    # =========================================================================
    # Phase 2: Payer Rules
    # =========================================================================

    def _check_payer_rules(
        self,
        claim: Claim,
        payer_rules: Optional[PayerRuleSet],
        report: ScrubReport,
    ) -> None:
        if payer_rules is None or not payer_rules.is_active:
            return

        claim_codes = {proc.code for proc in claim.procedures}

        for rule in payer_rules.rules:
            rule_codes = rule.procedure_codes or []
            matching = [code for code in rule_codes if code in claim_codes]

            # Rule is scoped to codes not on this claim
            if rule_codes and not matching:
                continue

            if rule.rule_type in _CODE_LISTING_RULES:
                report.add_issue(
                    _CODE_LISTING_RULES[rule.rule_type],
                    f"Payer rule: {rule.description}. Codes: {', '.join(matching)}",
                    ScrubSeverity.WARNING,
                )
            elif rule.rule_type in _DESCRIPTION_RULES:
                code, severity = _DESCRIPTION_RULES[rule.rule_type]
                report.add_issue(code, f"Payer rule: {rule.description}", severity)

    # =========================================================================
    # Phase 3: Fee Schedule
    # =========================================================================

    def _check_fee_schedule(
        self,
        claim: Claim,
        schedule: Optional[FeeSchedule],
        report: ScrubReport,
    ) -> None:
        if schedule is None:
            return

        fee_map = schedule.fee_map()
        for i, proc in enumerate(claim.procedures):
            scheduled = fee_map.get(proc.code)
            if scheduled is None or scheduled <= 0:
                continue

            ratio = proc.fee / scheduled
            if ratio > self.config.fee_over_schedule_ratio:
                percent = (ratio * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
                threshold = (self.config.fee_over_schedule_ratio * 100).normalize()
                report.add_issue(
                    "FEE_OVER_SCHEDULE",
                    f"Procedure {proc.code}: billed {_money(proc.fee)} is {percent}% "
                    f"of scheduled fee {_money(scheduled)} (>{threshold:f}% threshold)",
                    ScrubSeverity.WARNING,
                    f"procedures[{i}].fee",
                )

    # =========================================================================
    # Phase 4: Common Issues
    # =========================================================================

    def _check_common_issues(self, claim: Claim, report: ScrubReport) -> None:
        if not claim.procedures:
            return

        # Duplicates, in order of first appearance
        counts: dict[str, int] = {}
        for proc in claim.procedures:
            counts[proc.code] = counts.get(proc.code, 0) + 1
        for code, count in counts.items():
            if count > 1:
                report.add_issue(
                    "DUPLICATE_PROCEDURE",
                    f"Procedure code {code} appears {count} times. Verify this is intentional.",
                    ScrubSeverity.WARNING,
                )

        for i, proc in enumerate(claim.procedures):
            needs_tooth = proc.code.startswith(self.config.tooth_required_prefixes)
            if needs_tooth and not proc.tooth:
                kind = (
                    "surgical"
                    if proc.code.startswith(self.config.surgical_prefixes)
                    else "tooth-specific"
                )
                report.add_issue(
                    "MISSING_TOOTH_NUMBER",
                    f"Procedure {proc.code}: tooth number is required for {kind} procedures",
                    ScrubSeverity.ERROR,
                    f"procedures[{i}].tooth",
                )

        procedure_total = sum(
            (
                proc.fee * (proc.quantity if proc.quantity is not None else 1)
                for proc in claim.procedures
            ),
            ZERO,
        )
        if abs(procedure_total - to_decimal(claim.total_charged)) > self.config.money_tolerance:
            report.add_issue(
                "TOTAL_MISMATCH",
                f"Total charged ({_money(claim.total_charged)}) does not match "
                f"sum of procedures ({_money(procedure_total)})",
                ScrubSeverity.WARNING,
                "total_charged",
            )
