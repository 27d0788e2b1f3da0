"""
FormulaSpec: explicit model formula values and the outcome validator.

A FormulaSpec is a plain value: an ordered tuple of covariate names and,
for the survival side, references to a time field and an event-indicator
field. Formulas can be built directly or parsed from text with patsy's
formula grammar, restricted to main effects:

    Surv(time, status) ~ age + factor(grade) + Q("tumor size")

Each right-hand term must be a column name (dotted names allowed),
Q("any text"), or factor(column) / C(column). Interactions and
transforms such as log(x) are rejected; '1', '0' and '- 1' are accepted
and ignored because an intercept is never part of the covariate list.

Examples:
    >>> FormulaSpec.parse("Surv(ttdeath, death) ~ age + factor(grade)")
    >>> FormulaSpec.parse("~ age + grade")
    >>> FormulaSpec.survival("time", "status", ["age", "grade"])
"""

from __future__ import annotations

import ast
import keyword
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np
import patsy
from numpy.typing import NDArray

from pycure.core.datasource import (
    COLUMN_NUMERIC,
    Column,
    Dataset,
)
from pycure.core.exceptions import (
    FormulaError,
    OutcomeSpecificationError,
    ValidationError,
)


_SURV_KEYWORDS = ('time', 'time2', 'event', 'type')

_CATEGORICAL_CALLS = ('factor', 'C')

_RESERVED_NAMES = ('factor', 'C', 'Q', 'I', 'Surv')

OUTCOME_MESSAGE = (
    "The LHS of the survival formula must be a two-field right-censored "
    "outcome, Surv(time, status). The status variable must be numeric "
    "(0 = censored, 1 = event), logical, or a factor whose first level "
    "indicates the observation was censored and whose subsequent level "
    "is the event. Cannot use `Surv(time2=)` or a censoring type other "
    "than 'right'."
)


def _quote(name: str) -> str:
    parts = name.split('.')
    plain = all(p.isidentifier() and not keyword.iskeyword(p) for p in parts)
    if plain and name not in _RESERVED_NAMES:
        return name
    return f"Q({name!r})"


@dataclass(frozen=True)
class FormulaSpec:
    """
    Immutable model formula.

    Attributes:
        covariates: Ordered, duplicate-free covariate names (RHS terms)
        factor_terms: Covariates wrapped in factor(...), treated as
            categorical regardless of the column's storage type
        lhs: Raw outcome text, or None for a one-sided formula
        outcome_function: Name of the outcome call ('Surv'), if any
        time: Time field of a Surv() outcome
        time2: Second time field (counting-process form), if given
        event: Event-indicator field of a Surv() outcome
        censoring_type: The Surv(type=) argument, 'right' by default
    """
    covariates: tuple[str, ...]
    factor_terms: frozenset[str] = field(default_factory=frozenset)
    lhs: str | None = None
    outcome_function: str | None = None
    time: str | None = None
    time2: str | None = None
    event: str | None = None
    censoring_type: str = 'right'

    # === Construction ===

    @classmethod
    def survival(
        cls,
        time: str,
        event: str,
        covariates: Iterable[str],
        *,
        factor_terms: Iterable[str] = (),
    ) -> FormulaSpec:
        """Build a right-censored survival formula Surv(time, event) ~ covariates."""
        covs = _dedupe(covariates)
        return cls(
            covariates=covs,
            factor_terms=frozenset(factor_terms) & frozenset(covs),
            lhs=f"Surv({_quote(time)}, {_quote(event)})",
            outcome_function='Surv',
            time=time,
            event=event,
        )

    @classmethod
    def one_sided(
        cls,
        covariates: Iterable[str],
        *,
        factor_terms: Iterable[str] = (),
    ) -> FormulaSpec:
        """Build a one-sided formula ~ covariates (the cure side)."""
        covs = _dedupe(covariates)
        return cls(
            covariates=covs,
            factor_terms=frozenset(factor_terms) & frozenset(covs),
        )

    @classmethod
    def parse(cls, text: str) -> FormulaSpec:
        """
        Parse formula text.

        Raises:
            FormulaError: If the text does not follow the formula grammar
        """
        if not isinstance(text, str):
            raise FormulaError(
                f"formula: expected text or FormulaSpec, got {type(text).__name__}"
            )
        return _parse(text)

    @classmethod
    def coerce(cls, formula: str | FormulaSpec, name: str = 'formula') -> FormulaSpec:
        """Accept either formula text or an existing FormulaSpec."""
        if isinstance(formula, FormulaSpec):
            return formula
        if isinstance(formula, str):
            return cls.parse(formula)
        raise FormulaError(
            f"{name}: expected text or FormulaSpec, got {type(formula).__name__}"
        )

    # === Derived ===

    @property
    def has_outcome(self) -> bool:
        return self.lhs is not None

    @property
    def outcome_fields(self) -> tuple[str, ...]:
        return tuple(f for f in (self.time, self.time2, self.event) if f is not None)

    def __str__(self) -> str:
        terms = [
            f"factor({_quote(c)})" if c in self.factor_terms else _quote(c)
            for c in self.covariates
        ]
        rhs = " + ".join(terms) if terms else "1"
        if self.lhs is None:
            return f"~ {rhs}"
        return f"{self.lhs} ~ {rhs}"


def _dedupe(names: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for name in names:
        if not isinstance(name, str) or not name:
            raise FormulaError(f"covariate names must be non-empty strings, got {name!r}")
        seen.setdefault(name, None)
    return tuple(seen)


# =====================================================================
# Parser
# =====================================================================

def _fail(text: str, message: str):
    raise FormulaError(f"formula {text!r}: {message}", formula=text)


def _parse(text: str) -> FormulaSpec:
    """Read formula text through patsy's formula grammar."""
    if text.count('~') != 1:
        _fail(text, "expected exactly one '~'")
    try:
        desc = patsy.ModelDesc.from_formula(text)
    except patsy.PatsyError as e:
        raise FormulaError(f"formula {text!r}: {e}", formula=text) from e

    outcome = _read_outcome(desc.lhs_termlist, text)
    covariates, factor_terms = _read_terms(desc.rhs_termlist, text)

    return FormulaSpec(
        covariates=_dedupe(covariates),
        factor_terms=frozenset(factor_terms),
        lhs=outcome.get('lhs'),
        outcome_function=outcome.get('function'),
        time=outcome.get('time'),
        time2=outcome.get('time2'),
        event=outcome.get('event'),
        censoring_type=outcome.get('type') or 'right',
    )


def _factor_node(code: str, text: str) -> ast.expr:
    try:
        return ast.parse(code, mode='eval').body
    except SyntaxError as e:
        raise FormulaError(
            f"formula {text!r}: cannot read term {code!r}", formula=text
        ) from e


def _column_name(node: ast.expr) -> str | None:
    """Column referenced by a bare name, a dotted name, or Q("...")."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute) and isinstance(node.value, (ast.Name, ast.Attribute)):
        base = _column_name(node.value)
        return None if base is None else f"{base}.{node.attr}"
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id == 'Q'
        and len(node.args) == 1
        and not node.keywords
        and isinstance(node.args[0], ast.Constant)
        and isinstance(node.args[0].value, str)
    ):
        return node.args[0].value
    return None


def _read_outcome(lhs_termlist, text: str) -> dict[str, str | None]:
    if not lhs_termlist:
        return {}
    if len(lhs_termlist) != 1 or len(lhs_termlist[0].factors) != 1:
        _fail(text, "the outcome must be a single expression before '~'")

    code = lhs_termlist[0].factors[0].name()
    node = _factor_node(code, text)
    if _column_name(node) is not None:
        # bare response such as `y ~ x`; rejected by the outcome validator
        return {'lhs': code}
    if not isinstance(node, ast.Call) or not isinstance(node.func, ast.Name):
        _fail(text, f"cannot read outcome {code!r}")

    function = node.func.id
    positional = []
    for arg in node.args:
        name = _column_name(arg)
        if name is None:
            _fail(text, f"{function}() fields must be column names, got {ast.unparse(arg)!r}")
        positional.append(name)
    if len(positional) > 3:
        _fail(text, f"{function}() takes at most three fields, got {len(positional)}")

    fields: dict[str, str | None] = {'lhs': code, 'function': function}
    slots = ['time', 'event'] if len(positional) <= 2 else ['time', 'time2', 'event']
    for slot, name in zip(slots, positional):
        fields[slot] = name

    for kw in node.keywords:
        if kw.arg not in _SURV_KEYWORDS:
            _fail(text, f"unknown {function}() argument {kw.arg!r}")
        value = _column_name(kw.value)
        if value is None and isinstance(kw.value, ast.Constant) and isinstance(kw.value.value, str):
            value = kw.value.value
        if value is None:
            _fail(text, f"invalid value for {function}({kw.arg}=)")
        if fields.get(kw.arg) is not None:
            _fail(text, f"{function}() argument {kw.arg!r} given twice")
        fields[kw.arg] = value
    return fields


def _read_terms(rhs_termlist, text: str) -> tuple[list[str], list[str]]:
    """Main-effect columns and the subset wrapped in factor(); intercepts dropped."""
    covariates: list[str] = []
    factor_terms: list[str] = []
    for term in rhs_termlist:
        if len(term.factors) == 0:
            continue
        if len(term.factors) > 1:
            _fail(
                text,
                f"interaction {term.name()!r} is not supported; "
                f"list main effects with '+'",
            )
        code = term.factors[0].name()
        node = _factor_node(code, text)

        name = _column_name(node)
        if name is not None:
            covariates.append(name)
            continue

        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id in _CATEGORICAL_CALLS
        ):
            inner = _column_name(node.args[0]) if len(node.args) == 1 else None
            if inner is None or node.keywords:
                _fail(text, f"{node.func.id}() expects a single column name")
            covariates.append(inner)
            factor_terms.append(inner)
            continue

        _fail(
            text,
            f"term {code!r} is not supported on the right-hand side; "
            f"use column names or factor(column)",
        )
    return covariates, factor_terms


# =====================================================================
# Outcome validation
# =====================================================================

def encode_event(column: Column) -> NDArray[np.floating]:
    """
    Map an event-indicator column to 0.0 (censored) / 1.0 (event).

    Numeric columns may use 0/1 or 1/2 coding (the larger code is the
    event); categorical columns use their first level as "censored" and
    must have at most two levels. Missing values map to NaN.

    Raises:
        OutcomeSpecificationError: If the column cannot be encoded
    """
    if column.kind == COLUMN_NUMERIC:
        values = np.asarray(column.values, dtype=np.float64)
        observed = np.unique(values[~np.isnan(values)])
        if np.all(np.isin(observed, [0.0, 1.0])):
            return values.copy()
        if np.all(np.isin(observed, [1.0, 2.0])):
            return np.where(np.isnan(values), np.nan, values - 1.0)
        raise OutcomeSpecificationError(
            f"{OUTCOME_MESSAGE} Column {column.name!r} contains status codes "
            f"{observed.tolist()}."
        )

    levels = column.levels or ()
    if len(levels) > 2:
        raise OutcomeSpecificationError(
            f"{OUTCOME_MESSAGE} Column {column.name!r} has {len(levels)} levels "
            f"{list(levels)}; competing events are not supported by the "
            f"mixture cure fit."
        )
    if len(levels) == 0:
        raise OutcomeSpecificationError(
            f"{OUTCOME_MESSAGE} Column {column.name!r} has no observed levels."
        )
    censored = levels[0]
    encoded = np.empty(len(column.values), dtype=np.float64)
    for i, v in enumerate(column.values):
        if v is None:
            encoded[i] = np.nan
        else:
            encoded[i] = 0.0 if v == censored else 1.0
    return encoded


def validate_outcome(spec: FormulaSpec, dataset: Dataset) -> None:
    """
    Check that the survival formula's outcome is Surv(time, status) with
    right-censoring, evaluated against the dataset.

    Pure precondition check; runs before any matrix construction.

    Raises:
        OutcomeSpecificationError: If the outcome is not a two-field
            right-censored specification or the status cannot be encoded
        FormulaError: If an outcome field is not a column of the dataset
        ValidationError: If the time field is not non-negative numeric
    """
    formula_text = str(spec)
    if spec.lhs is None or spec.outcome_function != 'Surv':
        raise OutcomeSpecificationError(OUTCOME_MESSAGE, formula=formula_text)
    if spec.time2 is not None or spec.time is None or spec.event is None:
        raise OutcomeSpecificationError(OUTCOME_MESSAGE, formula=formula_text)
    if spec.censoring_type != 'right':
        raise OutcomeSpecificationError(
            f"{OUTCOME_MESSAGE} Got type={spec.censoring_type!r}.",
            formula=formula_text,
            censoring_type=spec.censoring_type,
        )

    for field_name in (spec.time, spec.event):
        if field_name not in dataset:
            raise FormulaError(
                f"There was an error evaluating the LHS of the formula: "
                f"column {field_name!r} not found in data. "
                f"Available: {list(dataset.names)}",
                formula=formula_text,
            )

    time_col = dataset[spec.time]
    if time_col.kind != COLUMN_NUMERIC:
        raise ValidationError(
            f"{spec.time}: survival time must be numeric, got {time_col.kind} column"
        )
    times = time_col.values
    if np.any(times[~np.isnan(times)] < 0):
        raise ValidationError(f"{spec.time}: survival time must be non-negative")

    encode_event(dataset[spec.event])


def validate_cure_formula(spec: FormulaSpec) -> None:
    """
    The cure formula is one-sided: it carries covariates only.

    Raises:
        FormulaError: If the cure formula has a left-hand side
    """
    if spec.lhs is not None:
        raise FormulaError(
            f"The cure formula must be one-sided (~ covariates), got {str(spec)!r}",
            formula=str(spec),
        )
