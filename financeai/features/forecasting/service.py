"""
Day-by-day cash flow forecast from transaction history.

Each forecast day sums three signals: recurring transactions expected near
that date, the seasonal daily average for its calendar month, and the overall
month-over-month growth trend. Weak signals are ignored below fixed confidence
thresholds.
"""
import datetime
import logging
import re
import statistics
from typing import Dict, List, Optional, Sequence, Tuple

from financeai.features.context.service import DAYS_PER_MONTH, is_type, of_type
from financeai.features.forecasting.schemas import (
    CashFlowForecast,
    ForecastPeriod,
    ForecastSummary,
    RecurringPattern,
    SeasonalPattern,
    TrendAnalysis,
)
from financeai.features.transactions.models import TransactionType
from financeai.features.transactions.schemas import TransactionResponse, coerce_amount

logger = logging.getLogger(__name__)

DEFAULT_FORECAST_DAYS = 90
MIN_OCCURRENCES = 3
MIN_PATTERN_CONFIDENCE = 0.5
MIN_TREND_TRANSACTIONS = 30
OCCURRENCE_THRESHOLD = 0.1
SEASONAL_THRESHOLD = 0.3
TREND_THRESHOLD = 0.4
DEFAULT_DAY_CONFIDENCE = 0.3
LOW_BALANCE = 1000.0
SHORT_RUNWAY_MONTHS = 6

FREQUENCY_DAYS = {"weekly": 7, "monthly": 30, "quarterly": 90, "yearly": 365}

_DIGITS = re.compile(r"[0-9]")


def normalize_description(description: str) -> str:
    return _DIGITS.sub("", description.lower()).strip()


def _type_name(txn) -> str:
    return TransactionType.INCOME.value if is_type(txn, TransactionType.INCOME) else TransactionType.EXPENSE.value


def _frequency(average_interval: float) -> str:
    if average_interval <= 10:
        return "weekly"
    if average_interval <= 40:
        return "monthly"
    if average_interval <= 120:
        return "quarterly"
    return "yearly"


def analyze_group(group: Sequence[TransactionResponse], description: str) -> Optional[RecurringPattern]:
    """Recurring pattern for one description group, scored by interval and amount consistency."""
    if len(group) < MIN_OCCURRENCES:
        return None

    amounts = [coerce_amount(t.amount) for t in group]
    dates = sorted(t.date for t in group)
    intervals = [(later - earlier).days for earlier, later in zip(dates, dates[1:])]

    average_amount = statistics.fmean(amounts)
    average_interval = statistics.fmean(intervals)
    if average_amount <= 0 or average_interval <= 0:
        return None

    confidence = (
        1
        - statistics.pvariance(intervals) / average_interval ** 2
        - statistics.pvariance(amounts) / average_amount ** 2
    )
    return RecurringPattern(
        type=_type_name(group[0]),
        description=description,
        amount=average_amount,
        frequency=_frequency(average_interval),
        confidence=min(max(confidence, 0.0), 1.0),
        next_occurrence=dates[-1] + datetime.timedelta(days=round(average_interval)),
    )


def identify_recurring_patterns(transactions: Sequence[TransactionResponse]) -> List[RecurringPattern]:
    groups: Dict[Tuple[str, str], List[TransactionResponse]] = {}
    for t in transactions:
        key = (_type_name(t), normalize_description(t.description))
        groups.setdefault(key, []).append(t)

    patterns = []
    for (_, description), group in groups.items():
        pattern = analyze_group(group, description)
        if pattern and pattern.confidence > MIN_PATTERN_CONFIDENCE:
            patterns.append(pattern)
    return sorted(patterns, key=lambda p: p.confidence, reverse=True)


def analyze_seasonal_patterns(transactions: Sequence[TransactionResponse]) -> List[SeasonalPattern]:
    """Per calendar month: average transaction size and a confidence that saturates at 10 records."""
    income: Dict[int, List[float]] = {m: [] for m in range(1, 13)}
    expenses: Dict[int, List[float]] = {m: [] for m in range(1, 13)}
    for t in transactions:
        bucket = income if is_type(t, TransactionType.INCOME) else expenses
        bucket[t.date.month].append(coerce_amount(t.amount))

    patterns = []
    for month in range(1, 13):
        count = len(income[month]) + len(expenses[month])
        patterns.append(SeasonalPattern(
            month=month,
            average_income=statistics.fmean(income[month]) if income[month] else 0.0,
            average_expenses=statistics.fmean(expenses[month]) if expenses[month] else 0.0,
            transaction_count=count,
            confidence=min(count / 10, 1.0),
        ))
    return patterns


def growth_rate(values: Sequence[float]) -> float:
    """Mean month-over-month relative change, skipping months that start from zero."""
    if len(values) < 2:
        return 0.0
    total = sum((cur - prev) / prev for prev, cur in zip(values, values[1:]) if prev > 0)
    return total / (len(values) - 1)


def volatility(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.5
    mean = statistics.fmean(values)
    if mean <= 0:
        return 0.5
    return min(statistics.pstdev(values) / mean, 1.0)


def analyze_trends(transactions: Sequence[TransactionResponse]) -> TrendAnalysis:
    if len(transactions) < MIN_TREND_TRANSACTIONS:
        return TrendAnalysis(income_growth_rate=0, expense_growth_rate=0, volatility=0.5, confidence=0.2)

    monthly: Dict[str, List[float]] = {}
    for t in sorted(transactions, key=lambda t: t.date):
        totals = monthly.setdefault(t.date.strftime("%Y-%m"), [0.0, 0.0])
        totals[0 if is_type(t, TransactionType.INCOME) else 1] += coerce_amount(t.amount)

    if len(monthly) < 2:
        return TrendAnalysis(income_growth_rate=0, expense_growth_rate=0, volatility=0.5, confidence=0.3)

    incomes = [m[0] for m in monthly.values()]
    expenses = [m[1] for m in monthly.values()]
    spread = volatility(incomes + expenses)
    return TrendAnalysis(
        income_growth_rate=growth_rate(incomes),
        expense_growth_rate=growth_rate(expenses),
        volatility=spread,
        confidence=min(len(monthly) / 6, 1.0) * (1 - spread),
    )


def occurrence_probability(day: datetime.date, pattern: RecurringPattern) -> float:
    """Chance the pattern lands on ``day``, highest on multiples of its period from the next occurrence."""
    period = FREQUENCY_DAYS[pattern.frequency]
    offset = abs((day - pattern.next_occurrence).days) % period
    return max(0.0, 1 - offset / period) * pattern.confidence


def monthly_average_to_date(
    transactions: Sequence[TransactionResponse],
    txn_type: TransactionType,
    today: datetime.date
) -> float:
    """Monthly total of one type, spread from the oldest record up to today."""
    selected = of_type(transactions, txn_type)
    if not selected:
        return 0.0
    oldest = min(t.date for t in selected)
    span = max(1.0, (today - oldest).days / DAYS_PER_MONTH)
    return sum(coerce_amount(t.amount) for t in selected) / span


class CashFlowForecastingService:

    def generate_forecast(
        self,
        transactions: Sequence[TransactionResponse],
        current_balance: float = 0.0,
        forecast_days: int = DEFAULT_FORECAST_DAYS,
        today: Optional[datetime.date] = None
    ) -> CashFlowForecast:
        today = today or datetime.date.today()
        patterns = identify_recurring_patterns(transactions)
        seasonal = analyze_seasonal_patterns(transactions)
        trends = analyze_trends(transactions)

        periods = self.forecast_periods(patterns, seasonal, trends, current_balance, forecast_days, today)
        summary = self.summary(periods, transactions, current_balance, today)

        logger.info(
            f"Cash flow forecast over {forecast_days} days from {len(transactions)} transactions: "
            f"{len(patterns)} recurring patterns, confidence {summary.confidence_score:.2f}"
        )
        return CashFlowForecast(
            periods=periods,
            summary=summary,
            recurring_patterns=patterns,
            trends=trends,
            insights=self.insights(periods, trends, patterns),
            warnings=self.warnings(periods, summary),
        )

    def predict_day(
        self,
        day: datetime.date,
        patterns: Sequence[RecurringPattern],
        seasonal: Sequence[SeasonalPattern],
        trends: TrendAnalysis,
        today: datetime.date
    ) -> Tuple[float, float, float]:
        income = expenses = 0.0
        confidences = []

        for pattern in patterns:
            probability = occurrence_probability(day, pattern)
            if probability <= OCCURRENCE_THRESHOLD:
                continue
            if pattern.type == TransactionType.INCOME.value:
                income += pattern.amount * probability
            else:
                expenses += pattern.amount * probability
            confidences.append(pattern.confidence * probability)

        month = seasonal[day.month - 1]
        if month.confidence > SEASONAL_THRESHOLD:
            income += month.average_income / DAYS_PER_MONTH
            expenses += month.average_expenses / DAYS_PER_MONTH
            confidences.append(month.confidence)

        if trends.confidence > TREND_THRESHOLD:
            multiplier = 1 + (day - today).days / 365
            income *= 1 + trends.income_growth_rate * multiplier
            expenses *= 1 + trends.expense_growth_rate * multiplier

        confidence = statistics.fmean(confidences) if confidences else DEFAULT_DAY_CONFIDENCE
        return income, expenses, confidence

    def forecast_periods(
        self,
        patterns: Sequence[RecurringPattern],
        seasonal: Sequence[SeasonalPattern],
        trends: TrendAnalysis,
        current_balance: float,
        forecast_days: int,
        today: datetime.date
    ) -> List[ForecastPeriod]:
        periods = []
        balance = current_balance
        for offset in range(1, forecast_days + 1):
            day = today + datetime.timedelta(days=offset)
            income, expenses, confidence = self.predict_day(day, patterns, seasonal, trends, today)
            balance += income - expenses
            periods.append(ForecastPeriod(
                date=day,
                predicted_income=income,
                predicted_expenses=expenses,
                predicted_balance=balance,
                confidence=confidence,
            ))
        return periods

    def summary(
        self,
        periods: Sequence[ForecastPeriod],
        transactions: Sequence[TransactionResponse],
        current_balance: float,
        today: datetime.date
    ) -> ForecastSummary:
        monthly_income = monthly_average_to_date(transactions, TransactionType.INCOME, today)
        monthly_expenses = monthly_average_to_date(transactions, TransactionType.EXPENSE, today)
        net = monthly_income - monthly_expenses

        return ForecastSummary(
            current_balance=current_balance,
            projected_balance_in_30_days=periods[29].predicted_balance if len(periods) >= 30 else current_balance,
            projected_balance_in_90_days=periods[89].predicted_balance if len(periods) >= 90 else current_balance,
            average_monthly_income=monthly_income,
            average_monthly_expenses=monthly_expenses,
            burn_rate=current_balance / abs(net) if net < 0 else None,
            confidence_score=statistics.fmean(p.confidence for p in periods) if periods else 0.0,
        )

    def insights(
        self,
        periods: Sequence[ForecastPeriod],
        trends: TrendAnalysis,
        patterns: Sequence[RecurringPattern]
    ) -> List[str]:
        insights = []

        if len(periods) >= 30:
            change = periods[29].predicted_balance - periods[0].predicted_balance
            if change > 0:
                insights.append(f"Your balance is projected to grow by ${change:.2f} over the next 30 days")
            else:
                insights.append(f"Your balance is projected to decrease by ${abs(change):.2f} over the next 30 days")

        reliable = [p for p in patterns if p.confidence > 0.7]
        if reliable:
            insights.append(
                f"Identified {len(reliable)} reliable recurring transactions that help predict your cash flow"
            )

        if trends.confidence > 0.5:
            if trends.income_growth_rate > 0.02:
                insights.append("Your income shows a positive growth trend")
            if trends.expense_growth_rate > trends.income_growth_rate:
                insights.append(
                    "Your expenses are growing faster than your income - consider reviewing your spending"
                )

        return insights

    def warnings(self, periods: Sequence[ForecastPeriod], summary: ForecastSummary) -> List[str]:
        warnings = []

        if summary.projected_balance_in_30_days < LOW_BALANCE:
            warnings.append(
                "Your projected balance in 30 days is quite low - consider increasing income or reducing expenses"
            )

        if summary.burn_rate is not None and 0 < summary.burn_rate < SHORT_RUNWAY_MONTHS:
            warnings.append(
                f"At current spending rate, your balance may reach zero in {summary.burn_rate:.1f} months"
            )

        if summary.confidence_score < 0.4:
            warnings.append("Forecast confidence is low due to limited or inconsistent transaction data")

        changes = [b.predicted_balance - a.predicted_balance for a, b in zip(periods, periods[1:])]
        if volatility(changes) > 0.7:
            warnings.append("High volatility detected in your cash flow - consider building an emergency fund")

        return warnings
