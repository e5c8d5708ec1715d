"""backtester.backtest.strategy

Strategy definitions and the two document shapes they are parsed from.

Internal form (what the engine has always taken)::

    name: Golden cross
    entry:
      all:
        - {type: SMA, params: {period: 20}, op: cross_up, compareWith: {type: SMA, params: {period: 50}}}
    exit:
      any:
        - {type: RSI, params: {period: 14}, op: ">", value: 70}
    risk: {stopLoss: 2, takeProfit: 4}

Compact form (what strategy authoring tools emit)::

    entry:
      all:
        - {left: {indicator: SMA, period: 20}, operator: cross_above, right: {indicator: SMA, period: 50}}
    exit: {}
    risk: {stopLossPct: 2, takeProfitPct: 4}

Both are validated with pydantic and resolved once into typed rules; nothing
is re-inspected per bar.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from backtester.backtest.indicators import IndicatorSpec, spec_from_params
from backtester.backtest.rules import CompareToIndicator, CompareToValue, Condition, Operator, RuleSet
from backtester.core.exceptions import StrategyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RiskPolicy:
    """Percentages relative to entry price."""

    stop_loss_pct: float
    take_profit_pct: float

    def __post_init__(self) -> None:
        if self.stop_loss_pct <= 0 or self.take_profit_pct <= 0:
            raise StrategyError("stop loss and take profit must be positive percentages")


@dataclass(frozen=True, slots=True)
class Strategy:
    entry: RuleSet
    exit: RuleSet
    risk: RiskPolicy
    name: str = "Strategy"
    direction: Literal["long"] = "long"

    def specs(self) -> list[IndicatorSpec]:
        """Every spec referenced by entry or exit rules, first-seen order, no duplicates."""

        def walk() -> Iterator[IndicatorSpec]:
            yield from self.entry.specs()
            yield from self.exit.specs()

        return list(dict.fromkeys(walk()))


# ---------------------------------------------------------------------------
# Internal form
# ---------------------------------------------------------------------------


class _IndicatorRef(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str
    params: dict[str, Any] = Field(default_factory=dict)


class _ConditionDoc(_IndicatorRef):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    op: Operator
    value: float | None = None
    compare_with: _IndicatorRef | None = Field(default=None, alias="compareWith")

    @model_validator(mode="after")
    def operand_present(self) -> _ConditionDoc:
        if Operator(self.op).is_cross:
            if self.compare_with is None:
                raise ValueError(f"{self.op} requires compareWith")
        elif self.compare_with is None and self.value is None:
            raise ValueError(f"{self.op} requires value or compareWith")
        return self


class _RuleSetDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    all: list[_ConditionDoc] | None = None
    any: list[_ConditionDoc] | None = None


class _RiskDoc(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    stop_loss: float = Field(alias="stopLoss", gt=0)
    take_profit: float = Field(alias="takeProfit", gt=0)
    trailing_stop: float | None = Field(default=None, alias="trailingStop")


class _StrategyDoc(BaseModel):
    name: str = "Strategy"
    entry: _RuleSetDoc
    exit: _RuleSetDoc
    risk: _RiskDoc
    direction: Literal["long", "short", "both"] = "long"


def _condition(doc: _ConditionDoc) -> Condition:
    left = spec_from_params(doc.type, doc.params)
    # compareWith wins over value when a document carries both.
    if doc.compare_with is not None:
        right: CompareToValue | CompareToIndicator = CompareToIndicator(
            spec_from_params(doc.compare_with.type, doc.compare_with.params)
        )
    else:
        assert doc.value is not None
        right = CompareToValue(float(doc.value))
    return Condition(left=left, operator=Operator(doc.op), right=right)


def _rule_set(doc: _RuleSetDoc) -> RuleSet:
    return RuleSet(
        all=tuple(_condition(c) for c in doc.all or ()),
        any=tuple(_condition(c) for c in doc.any or ()),
    )


def _validation_message(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def parse_strategy(document: Mapping[str, Any]) -> Strategy:
    """Parse the internal strategy form.

    Raises ``StrategyError`` for structural problems and
    ``UnsupportedIndicatorError`` for an unknown indicator kind.
    """

    try:
        doc = _StrategyDoc.model_validate(dict(document))
    except ValidationError as e:
        raise StrategyError(f"Invalid strategy: {_validation_message(e)}") from e

    if doc.direction != "long":
        raise StrategyError(f"Only long strategies are supported, got direction {doc.direction!r}")
    if doc.risk.trailing_stop is not None:
        logger.warning("trailing_stop_ignored", extra={"strategy": doc.name, "trailing_stop": doc.risk.trailing_stop})

    return Strategy(
        name=doc.name,
        entry=_rule_set(doc.entry),
        exit=_rule_set(doc.exit),
        risk=RiskPolicy(stop_loss_pct=doc.risk.stop_loss, take_profit_pct=doc.risk.take_profit),
    )


# ---------------------------------------------------------------------------
# Compact form
# ---------------------------------------------------------------------------

_COMPACT_OPERATORS: dict[str, str] = {
    ">": ">",
    "<": "<",
    "cross_above": "cross_up",
    "cross_below": "cross_down",
}


class _CompactOperand(BaseModel):
    model_config = ConfigDict(extra="forbid")

    indicator: Literal["SMA", "EMA", "RSI"]
    period: int = Field(gt=0, le=500)


class _CompactCondition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    left: _CompactOperand
    operator: Literal[">", "<", "cross_above", "cross_below"]
    right: _CompactOperand | None = None
    value: float | None = None

    @model_validator(mode="after")
    def operand_shape(self) -> _CompactCondition:
        if self.operator in ("cross_above", "cross_below"):
            if self.right is None or self.value is not None:
                raise ValueError("cross conditions take a right indicator and no value")
        elif self.right is None and self.value is None:
            raise ValueError("comparisons take a right indicator or a value")
        return self


class _CompactRuleSet(BaseModel):
    model_config = ConfigDict(extra="forbid")

    all: list[_CompactCondition] | None = None
    any: list[_CompactCondition] | None = None


class _CompactRisk(BaseModel):
    model_config = ConfigDict(extra="forbid")

    stopLossPct: float = Field(gt=0, le=100)
    takeProfitPct: float = Field(gt=0, le=100)


class _CompactStrategy(BaseModel):
    name: str = "Compact Strategy"
    symbol: str = "BTCUSDT"
    timeframe: str = "1h"
    entry: _CompactRuleSet
    exit: _CompactRuleSet
    risk: _CompactRisk


def _expand_condition(c: _CompactCondition) -> dict[str, Any]:
    out: dict[str, Any] = {
        "type": c.left.indicator,
        "params": {"period": c.left.period, "source": "close"},
        "op": _COMPACT_OPERATORS[c.operator],
    }
    if c.right is not None:
        out["compareWith"] = {"type": c.right.indicator, "params": {"period": c.right.period, "source": "close"}}
    if c.value is not None:
        out["value"] = float(c.value)
    return out


def _expand_rule_set(rs: _CompactRuleSet) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if rs.all is not None:
        out["all"] = [_expand_condition(c) for c in rs.all]
    if rs.any is not None:
        out["any"] = [_expand_condition(c) for c in rs.any]
    return out


def parse_compact_strategy(document: Mapping[str, Any]) -> Strategy:
    """Map the compact authoring form onto the internal form and parse it."""

    try:
        doc = _CompactStrategy.model_validate(dict(document))
    except ValidationError as e:
        raise StrategyError(f"Invalid strategy: {_validation_message(e)}") from e

    return parse_strategy(
        {
            "name": doc.name,
            "entry": _expand_rule_set(doc.entry),
            "exit": _expand_rule_set(doc.exit),
            "risk": {"stopLoss": doc.risk.stopLossPct, "takeProfit": doc.risk.takeProfitPct},
            "direction": "long",
        }
    )


def is_compact(document: Mapping[str, Any]) -> bool:
    risk = document.get("risk")
    if isinstance(risk, Mapping) and ("stopLossPct" in risk or "takeProfitPct" in risk):
        return True
    for side in ("entry", "exit"):
        rules = document.get(side)
        if not isinstance(rules, Mapping):
            continue
        for key in ("all", "any"):
            for cond in rules.get(key) or ():
                if isinstance(cond, Mapping) and "left" in cond:
                    return True
    return False


def load_strategy_file(path: str | Path) -> Strategy:
    """Load a strategy from YAML or JSON, in either document form."""

    p = Path(path)
    if not p.exists():
        raise StrategyError(f"Strategy file not found: {p}")
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise StrategyError(f"Strategy file is not valid YAML/JSON: {p}: {e}") from e
    if not isinstance(raw, Mapping):
        raise StrategyError(f"Strategy file must contain a mapping: {p}")

    return parse_compact_strategy(raw) if is_compact(raw) else parse_strategy(raw)
