"""
Formula parsing and predictor completeness.
"""
import keyword
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from ..exceptions import InvalidFormula


def _split_terms(side: str, label: str) -> List[str]:
    terms = [term.strip() for term in side.split('+')]
    if not side.strip():
        raise InvalidFormula(f"The {label} side of the formula is empty.")
    if any(term == '' for term in terms):
        raise InvalidFormula(f"Empty term in the {label} side of the formula: '{side.strip()}'")
    duplicated = sorted({term for term in terms if terms.count(term) > 1})
    if duplicated:
        raise InvalidFormula(f"Duplicated {label} variables: {', '.join(duplicated)}")
    return terms


def _quote(name: str) -> str:
    if name.isidentifier() and not keyword.iskeyword(name):
        return name
    escaped = name.replace('\\', '\\\\').replace('"', '\\"')
    return f'Q("{escaped}")'


@dataclass(frozen=True)
class FormulaSpec:
    """
    Parsed imputation formula.

    Parameters
    ----------
    targets : tuple of str
        Variables to impute, in formula order.
    predictors : tuple of str
        Variables used as model inputs, in formula order.
    """

    targets: Tuple[str, ...]
    predictors: Tuple[str, ...]

    def predictors_for(self, target: str) -> List[str]:
        """Predictors of ``target``; a target never predicts itself."""
        return [p for p in self.predictors if p != target]

    def model_formula(self, target: str) -> str:
        """
        Render the statsmodels formula used to fit ``target``.

        Raises
        ------
        InvalidFormula
            If ``target`` has no predictor left once it is removed from the
            right-hand side.
        """
        predictors = self.predictors_for(target)
        if not predictors:
            raise InvalidFormula(f"No predictor variables left for {target}.")
        return f"{_quote(target)} ~ {' + '.join(_quote(p) for p in predictors)}"

    def model_formulas(self) -> Dict[str, str]:
        """
        Render the statsmodels formula of every target.

        Raises
        ------
        InvalidFormula
            If any target has no predictor left, before anything is fitted.
        """
        return {target: self.model_formula(target) for target in self.targets}

    def __str__(self) -> str:
        return f"{' + '.join(self.targets)} ~ {' + '.join(self.predictors)}"


def parse_formula(formula: str, columns: Optional[Iterable[str]] = None) -> FormulaSpec:
    """
    Split ``"T1 + T2 ~ P1 + P2"`` into target and predictor names.

    Parameters
    ----------
    formula : str
        Imputation formula.
    columns : iterable of str, optional
        Dataset columns; when given, every name must be one of them.

    Returns
    -------
    FormulaSpec
        Ordered targets and predictors with whitespace stripped.

    Raises
    ------
    InvalidFormula
        If the formula is malformed or names an unknown column.
    """
    if not isinstance(formula, str):
        raise InvalidFormula(f"Formula must be a string, got {type(formula).__name__}")

    sides = formula.split('~')
    if len(sides) != 2:
        raise InvalidFormula(f"Formula must contain exactly one '~': '{formula}'")

    targets = _split_terms(sides[0], 'left-hand')
    predictors = _split_terms(sides[1], 'right-hand')

    if columns is not None:
        known = set(columns)
        unknown = [name for name in targets + predictors if name not in known]
        if unknown:
            raise InvalidFormula(f"Variables not found in data: {', '.join(dict.fromkeys(unknown))}")

    return FormulaSpec(tuple(targets), tuple(predictors))


def complete_predictors(data: pd.DataFrame, predictors: Iterable[str]) -> pd.Series:
    """
    Flag rows in which every predictor value is present.

    Parameters
    ----------
    data : DataFrame
        Dataset.
    predictors : iterable of str
        Predictor columns to check.

    Returns
    -------
    Series of bool
        One entry per row of ``data``.
    """
    predictors = list(predictors)
    if not predictors:
        return pd.Series(True, index=data.index)
    return data[predictors].notna().all(axis=1)
