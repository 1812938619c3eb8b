"""
Model family resolution.

Every target variable is mapped to a :class:`ModelPlan` describing which
statsmodels routine fits it and how its predictions are turned into imputed
values.  The family argument is either the string ``"AUTO"`` or an explicit
statsmodels family::

    resolve_plan(Auto(), data['b1'], robust=False)
    resolve_plan(Explicit(sm.families.Poisson()), data['count'], robust=True)
"""
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import pandas as pd
import statsmodels.api as sm
from statsmodels.genmod.families import Family

from ..exceptions import UnsupportedFamily

NUMERIC = 'numeric'
BINARY = 'binary'
MULTINOMIAL = 'multinomial'


@dataclass(frozen=True)
class Auto:
    """Choose the model from the target's type and number of levels."""

    def __str__(self) -> str:
        return 'AUTO'


@dataclass(frozen=True)
class Explicit:
    """Fit a generalized linear model with the given statsmodels family."""

    family: Family

    def __str__(self) -> str:
        return type(self.family).__name__


FamilySelector = Union[Auto, Explicit]


@dataclass(frozen=True)
class ModelPlan:
    """
    How one target variable is fitted and predicted.

    Parameters
    ----------
    kind : str
        'numeric', 'binary' or 'multinomial'; selects the prediction mode.
    routine : str
        Backend routine: 'ols', 'rlm', 'glm', 'robust_glm' or 'mnlogit'.
    family : Family, optional
        statsmodels family for the GLM routines.
    levels : tuple
        Category levels for categorical targets, empty for numeric ones.
    """

    kind: str
    routine: str
    family: Optional[Family] = None
    levels: Tuple = ()

    @property
    def categorical(self) -> bool:
        return self.kind != NUMERIC

    def describe(self) -> str:
        if self.family is None:
            return self.routine
        return f"{self.routine}({type(self.family).__name__})"


def as_family_selector(family) -> FamilySelector:
    """
    Turn the user-facing family argument into a selector.

    Parameters
    ----------
    family : str, Family instance or Family subclass
        ``"AUTO"`` or a statsmodels family.

    Raises
    ------
    UnsupportedFamily
        For any other value.
    """
    if isinstance(family, (Auto, Explicit)):
        return family
    if isinstance(family, str):
        if family == 'AUTO':
            return Auto()
        raise UnsupportedFamily(f"Unknown family '{family}'. Use 'AUTO' or a statsmodels family.")
    if isinstance(family, Family):
        return Explicit(family)
    if isinstance(family, type) and issubclass(family, Family):
        return Explicit(family())
    raise UnsupportedFamily(f"Unsupported family argument of type {type(family).__name__}")


def column_levels(column: pd.Series) -> Optional[Tuple]:
    """
    Levels of a categorical column, or None for a numeric one.

    Declared categories are used for ``category`` columns (unused ones
    included), sorted distinct values for object and string columns. Labels
    of mixed types are sorted by their string form.

    Raises
    ------
    UnsupportedFamily
        If the column is neither numeric nor categorical.
    """
    dtype = column.dtype
    if isinstance(dtype, pd.CategoricalDtype):
        return tuple(dtype.categories)
    if pd.api.types.is_bool_dtype(dtype):
        return (False, True)
    if pd.api.types.is_numeric_dtype(dtype):
        return None
    if pd.api.types.is_object_dtype(dtype) or pd.api.types.is_string_dtype(dtype):
        values = column.dropna().unique()
        try:
            return tuple(sorted(values))
        except TypeError:
            # mixed label types, e.g. 'a' and 1
            return tuple(sorted(values, key=str))
    raise UnsupportedFamily(f"Cannot impute column {column.name} of dtype {dtype}")


def resolve_plan(selector: FamilySelector, column: pd.Series, robust: bool = False) -> ModelPlan:
    """
    Select the fitting routine and prediction mode for a target column.

    Parameters
    ----------
    selector : Auto or Explicit
        Family selector.
    column : Series
        Target column.
    robust : bool, default=False
        Use the outlier-resistant variant of the routine.

    Returns
    -------
    ModelPlan

    Raises
    ------
    UnsupportedFamily
        For robust multinomial fits, categorical targets with fewer than two
        levels and categorical targets an explicit family cannot model.
    """
    levels = column_levels(column)

    if levels is None:
        if isinstance(selector, Explicit):
            return ModelPlan(NUMERIC, 'robust_glm' if robust else 'glm', selector.family)
        return ModelPlan(NUMERIC, 'rlm' if robust else 'ols')

    if len(levels) < 2:
        raise UnsupportedFamily(f"{column.name} needs at least two levels, found {len(levels)}")

    if isinstance(selector, Explicit):
        if len(levels) == 2 and isinstance(selector.family, sm.families.Binomial):
            return ModelPlan(BINARY, 'robust_glm' if robust else 'glm', selector.family, levels)
        raise UnsupportedFamily(
            f"Family {selector} cannot model categorical variable {column.name} "
            f"with {len(levels)} levels"
        )

    if len(levels) == 2:
        return ModelPlan(BINARY, 'robust_glm' if robust else 'glm', sm.families.Binomial(), levels)

    if robust:
        raise UnsupportedFamily(
            f"No robust multinomial model is available for {column.name} ({len(levels)} levels)"
        )
    return ModelPlan(MULTINOMIAL, 'mnlogit', None, levels)
