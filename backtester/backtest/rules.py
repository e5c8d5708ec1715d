"""backtester.backtest.rules

Rule engine: evaluates an entry or exit rule set at one bar.

A condition whose operands are not available at the bar (warm-up, index 0
for crosses, series missing from the map) is false. Evaluation never raises.

RuleSet combination:
- ``all``: conjunction, true when empty
- ``any``: disjunction, ALSO true when empty

The empty-``any`` rule is deliberate: a rule set with only ``all`` conditions
reduces to the conjunction, and ``RuleSet()`` is true at every bar.
"""

from __future__ import annotations

import operator as _op
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import StrEnum

from backtester.backtest.indicators import IndicatorMap, IndicatorSpec
from backtester.core.exceptions import StrategyError


class Operator(StrEnum):
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    CROSS_UP = "cross_up"
    CROSS_DOWN = "cross_down"

    @property
    def is_cross(self) -> bool:
        return self in (Operator.CROSS_UP, Operator.CROSS_DOWN)


_COMPARE: dict[Operator, Callable[[float, float], bool]] = {
    Operator.GT: _op.gt,
    Operator.LT: _op.lt,
    Operator.GTE: _op.ge,
    Operator.LTE: _op.le,
}


@dataclass(frozen=True, slots=True)
class CompareToValue:
    value: float


@dataclass(frozen=True, slots=True)
class CompareToIndicator:
    spec: IndicatorSpec


Operand = CompareToValue | CompareToIndicator


@dataclass(frozen=True, slots=True)
class Condition:
    left: IndicatorSpec
    operator: Operator
    right: Operand

    def __post_init__(self) -> None:
        if self.operator.is_cross and not isinstance(self.right, CompareToIndicator):
            raise StrategyError(f"{self.operator} requires an indicator to compare with")

    def specs(self) -> Iterator[IndicatorSpec]:
        yield self.left
        if isinstance(self.right, CompareToIndicator):
            yield self.right.spec


@dataclass(frozen=True, slots=True)
class RuleSet:
    all: tuple[Condition, ...] = ()
    any: tuple[Condition, ...] = ()

    def specs(self) -> Iterator[IndicatorSpec]:
        for cond in (*self.all, *self.any):
            yield from cond.specs()


def _value(indicators: IndicatorMap, spec: IndicatorSpec, index: int) -> float | None:
    series = indicators.get(spec)
    if series is None:
        return None
    return series.value_at(index)


def crossed_up(a_prev: float | None, a: float | None, b_prev: float | None, b: float | None) -> bool:
    if a_prev is None or a is None or b_prev is None or b is None:
        return False
    return a_prev <= b_prev and a > b


def crossed_down(a_prev: float | None, a: float | None, b_prev: float | None, b: float | None) -> bool:
    if a_prev is None or a is None or b_prev is None or b is None:
        return False
    return a_prev >= b_prev and a < b


def evaluate_condition(cond: Condition, indicators: IndicatorMap, index: int) -> bool:
    left = _value(indicators, cond.left, index)

    if cond.operator.is_cross:
        assert isinstance(cond.right, CompareToIndicator)
        if index <= 0:
            return False
        left_prev = _value(indicators, cond.left, index - 1)
        right = _value(indicators, cond.right.spec, index)
        right_prev = _value(indicators, cond.right.spec, index - 1)
        if cond.operator == Operator.CROSS_UP:
            return crossed_up(left_prev, left, right_prev, right)
        return crossed_down(left_prev, left, right_prev, right)

    if isinstance(cond.right, CompareToIndicator):
        right = _value(indicators, cond.right.spec, index)
    else:
        right = cond.right.value

    if left is None or right is None:
        return False
    return _COMPARE[cond.operator](left, right)


def evaluate(rules: RuleSet, indicators: IndicatorMap, index: int) -> bool:
    all_ok = all(evaluate_condition(c, indicators, index) for c in rules.all)
    any_ok = any(evaluate_condition(c, indicators, index) for c in rules.any) if rules.any else True
    return all_ok and any_ok
