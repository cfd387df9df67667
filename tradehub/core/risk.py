"""
Risk and Position Sizing

Pure position sizing and portfolio circuit breaker math shared by every
exchange adapter, so identical inputs produce identical results whichever
exchange supplied the balance.

Circuit breakers:
- MDL (Maximum Daily Loss): 5% of starting capital, warning at 80% of the limit
- ML (Maximum Loss): 10% of starting capital
"""

from typing import List, Optional
import logging
import math

from .errors import ValidationError
from .models import PositionSizeResult, RiskMetrics, RiskValidationResult

logger = logging.getLogger(__name__)

MAX_DAILY_LOSS_PCT = 0.05
MAX_LOSS_PCT = 0.10
MDL_WARNING_RATIO = 0.8
HIGH_LEVERAGE_THRESHOLD = 20


def calculate_stop_distance(entry_price: float, stop_loss_price: float) -> float:
    """Stop distance as a fraction of the entry price."""
    if entry_price == 0:
        return 0.0
    return abs(entry_price - stop_loss_price) / entry_price


def calculate_risk_reward(entry_price: float, stop_loss_price: float, take_profit_price: float) -> float:
    """Reward to risk ratio; 0 when the stop distance is 0."""
    risk = abs(entry_price - stop_loss_price)
    reward = abs(take_profit_price - entry_price)
    return reward / risk if risk > 0 else 0.0


def round_to_precision(value: float, precision: int) -> float:
    """Round half away from zero to ``precision`` decimals."""
    multiplier = 10 ** precision
    return math.floor(abs(value) * multiplier + 0.5) / multiplier * (1 if value >= 0 else -1)


def precision_from_step(step_size: Optional[str]) -> int:
    """
    Number of decimals implied by a step size string such as '0.001'.

    Args:
        step_size: Step or tick size as returned by the exchange

    Returns:
        Decimal precision (8 when the step is missing or zero)
    """
    if not step_size:
        return 8
    try:
        step = float(step_size)
    except (TypeError, ValueError):
        return 8
    if step <= 0:
        return 8
    text = f"{step:.12f}".rstrip('0')
    if '.' not in text or text.endswith('.'):
        return 0
    return len(text.split('.')[1])


def calculate_position_size(risk_amount: float,
                            entry_price: float,
                            stop_loss_price: float,
                            available_balance: float,
                            leverage: float = 1,
                            account_type: str = "",
                            take_profit_price: Optional[float] = None) -> PositionSizeResult:
    """
    Size a position so that hitting the stop loses exactly ``risk_amount``.

    Args:
        risk_amount: Amount the trader is willing to lose
        entry_price: Planned entry price
        stop_loss_price: Planned stop loss price
        available_balance: Margin available on the account
        leverage: Leverage applied to the position
        account_type: Account type tag reported by the exchange
        take_profit_price: Optional target used for the risk reward ratio

    Returns:
        PositionSizeResult; ``position_size`` is 0 when entry equals stop
    """
    if leverage is None or leverage < 1:
        raise ValidationError(f"Leverage must be at least 1, got {leverage}")

    stop_distance = abs(entry_price - stop_loss_price)
    position_size = risk_amount / stop_distance if stop_distance > 0 else 0.0
    order_value = position_size * entry_price
    margin_required = order_value / leverage

    can_open = margin_required <= available_balance
    reason = None
    if not can_open:
        reason = f"Insufficient balance. Required: ${margin_required:.2f}, Available: ${available_balance:.2f}"

    risk_reward = None
    if take_profit_price is not None:
        risk_reward = calculate_risk_reward(entry_price, stop_loss_price, take_profit_price)

    return PositionSizeResult(
        position_size=position_size,
        order_value=order_value,
        margin_required=margin_required,
        leverage=leverage,
        available_balance=available_balance,
        account_type=account_type,
        can_open=can_open,
        reason=reason,
        risk_reward_ratio=risk_reward,
    )


def validate_risk(sizing: PositionSizeResult,
                  risk_amount: float,
                  current_daily_loss: Optional[float] = None,
                  total_loss: Optional[float] = None,
                  starting_capital: Optional[float] = None,
                  warn_high_leverage: bool = False) -> RiskValidationResult:
    """
    Apply the MDL and ML circuit breakers on top of a sizing result.

    Args:
        sizing: Result of ``calculate_position_size``
        risk_amount: Amount at risk on the new trade
        current_daily_loss: Loss already realized today
        total_loss: Loss realized since the starting capital was set
        starting_capital: Capital the loss limits are relative to
        warn_high_leverage: Add a warning when leverage exceeds 20x

    Returns:
        RiskValidationResult
    """
    if not sizing.can_open:
        return RiskValidationResult(valid=False, reason=sizing.reason)

    warnings: List[str] = []

    if starting_capital and current_daily_loss is not None:
        mdl_limit = starting_capital * MAX_DAILY_LOSS_PCT
        projected = current_daily_loss + risk_amount
        if projected >= mdl_limit:
            return RiskValidationResult(
                valid=False,
                reason=f"Would exceed MDL limit: ${projected:.2f} / ${mdl_limit:.2f}"
            )
        if projected >= mdl_limit * MDL_WARNING_RATIO:
            warnings.append("Approaching MDL limit (80%)")

    if starting_capital and total_loss is not None:
        ml_limit = starting_capital * MAX_LOSS_PCT
        if total_loss >= ml_limit:
            return RiskValidationResult(
                valid=False,
                reason=f"Maximum Loss (ML) limit reached: ${total_loss:.2f} / ${ml_limit:.2f}"
            )

    if warn_high_leverage and sizing.leverage > HIGH_LEVERAGE_THRESHOLD:
        warnings.append(f"High leverage ({sizing.leverage}x) increases liquidation risk")

    metrics = None
    if starting_capital:
        account_risk = sizing.margin_required / sizing.available_balance if sizing.available_balance > 0 else 0.0
        metrics = RiskMetrics(
            position_risk=risk_amount / starting_capital,
            account_risk=account_risk,
            daily_loss_used=(current_daily_loss / (starting_capital * MAX_DAILY_LOSS_PCT)
                             if current_daily_loss else 0.0),
            total_loss_used=(total_loss / (starting_capital * MAX_LOSS_PCT)
                             if total_loss else 0.0),
        )

    if warnings:
        logger.info(f"Risk validation passed with warnings: {warnings}")

    return RiskValidationResult(valid=True, warnings=warnings, risk_metrics=metrics)
