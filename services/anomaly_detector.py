"""Per-category z-score anomaly detection over a user's own spending history."""
import math
from statistics import fmean, pstdev
from typing import Iterable, List, Sequence, Tuple

from core.logger import get_logger
from models.enums import AnomalySeverity
from models.schemas import AnomalyResult, AnomalySummary, ExpectedRange

logger = get_logger("anomaly_detector")

MIN_HISTORY = 3
MAJOR_Z_SCORE = 3
MODERATE_Z_SCORE = 2
MINOR_MEAN_MULTIPLE = 2


def _category_of(transaction) -> str:
    category = transaction.category
    return getattr(category, "value", category)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class AnomalyDetector:
    @staticmethod
    def analyze_transaction(transaction, historical_transactions: Iterable) -> AnomalyResult:
        """Classify ``transaction`` against same-category history.

        Never raises: a failure while analysing one transaction is logged and
        reported as "not anomalous" so a batch scan keeps going.
        """
        try:
            return AnomalyDetector._analyze(transaction, historical_transactions)
        except Exception as e:
            logger.error(
                "Anomaly analysis failed for transaction %s: %s",
                getattr(transaction, "id", None), e
            )
            return AnomalyResult(is_anomaly=False)

    @staticmethod
    def _analyze(transaction, historical_transactions: Iterable) -> AnomalyResult:
        category = _category_of(transaction)
        amounts = [
            abs(t.amount) for t in historical_transactions
            if _category_of(t) == category
        ]

        if len(amounts) < MIN_HISTORY:
            return AnomalyResult(is_anomaly=False)

        avg_amount = fmean(amounts)
        std_dev = pstdev(amounts, mu=avg_amount)
        current_amount = abs(transaction.amount)

        # floor the denominator so identical history gives a finite score
        z_score = (current_amount - avg_amount) / max(std_dev, 1)

        is_anomaly = True
        if abs(z_score) > MAJOR_Z_SCORE:
            severity = AnomalySeverity.MAJOR
            if avg_amount > 0:
                multiple = _round_half_up(current_amount / avg_amount)
                reason = f"This {category} expense is highly unusual - {multiple}x your typical spending"
            else:
                reason = f"This {category} expense is highly unusual compared to your typical spending"
        elif abs(z_score) > MODERATE_Z_SCORE:
            severity = AnomalySeverity.MODERATE
            reason = f"This {category} expense is significantly higher than usual"
        elif current_amount > avg_amount * MINOR_MEAN_MULTIPLE:
            # low variance history makes the z-score insensitive
            severity = AnomalySeverity.MINOR
            reason = f"This {category} expense is above your normal range"
        else:
            is_anomaly = False
            severity = None
            reason = ""

        return AnomalyResult(
            is_anomaly=is_anomaly,
            severity=severity,
            reason=reason,
            z_score=round(z_score, 2),
            comparison=f"You usually spend ${avg_amount:.2f} on {category}, this was ${current_amount:.2f}",
            expected_range=ExpectedRange(
                min=round(avg_amount - std_dev, 2),
                max=round(avg_amount + std_dev, 2),
                average=round(avg_amount, 2)
            )
        )

    @staticmethod
    def rank_anomalies(flagged: Sequence[Tuple[object, AnomalyResult]]) -> List[Tuple[object, AnomalyResult]]:
        """Order by severity (major first), then by absolute amount, largest first."""
        return sorted(
            flagged,
            key=lambda item: (-item[1].severity.rank, -abs(item[0].amount))
        )

    @staticmethod
    def summarize(results: Iterable[AnomalyResult]) -> AnomalySummary:
        summary = AnomalySummary()
        for result in results:
            if not result.is_anomaly:
                continue
            summary.total += 1
            if result.severity == AnomalySeverity.MAJOR:
                summary.major += 1
            elif result.severity == AnomalySeverity.MODERATE:
                summary.moderate += 1
            elif result.severity == AnomalySeverity.MINOR:
                summary.minor += 1
        return summary
