"""
Pricing calculations and budget checks.

Handles cost computations for the hosted model and budget threshold math.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from habitnex.config.loader import AIConfig, BudgetConfig

from .token_counter import TokenUsage

_MILLION = Decimal("1000000")
_COST_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class BudgetCheck:
    """Where current spend sits relative to a budget."""
    percentage: float
    is_warning: bool
    is_critical: bool
    is_emergency: bool


def calculate_cost(usage: TokenUsage, ai_config: AIConfig = AIConfig()) -> float:
    """Calculate total cost for a model call.

    Args:
        usage: Token usage data
        ai_config: Per-million-token input and output rates

    Returns:
        Total cost in USD rounded to 6 decimal places
    """
    input_cost = (Decimal(usage.input_tokens) / _MILLION) * Decimal(str(ai_config.input_cost_per_million))
    output_cost = (Decimal(usage.output_tokens) / _MILLION) * Decimal(str(ai_config.output_cost_per_million))

    total_cost = input_cost + output_cost
    return float(total_cost.quantize(_COST_QUANTUM, rounding=ROUND_HALF_UP))


def check_budget_thresholds(current_cost: float, budget: float, config: BudgetConfig) -> BudgetCheck:
    """Compare spend against a budget using the configured alert levels.

    Args:
        current_cost: Spend so far in the period
        budget: Budget for the period
        config: Budget configuration holding alert and shutoff percentages

    Returns:
        BudgetCheck with the spend percentage and the levels it has reached
    """
    percentage = (current_cost / budget) * 100 if budget > 0 else 0.0
    return BudgetCheck(
        percentage=percentage,
        is_warning=percentage >= config.alert_thresholds.warning,
        is_critical=percentage >= config.alert_thresholds.critical,
        is_emergency=percentage >= config.emergency_shutoff_percent,
    )


def format_cost(cost: float, currency: str = "USD") -> str:
    """Format a cost for display; sub-cent amounts keep four decimals."""
    if cost < 0.001:
        return f"<$0.001 {currency}"
    if cost < 0.01:
        return f"${cost:.4f} {currency}"
    return f"${cost:.2f} {currency}"
