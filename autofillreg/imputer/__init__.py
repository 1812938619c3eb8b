"""
Imputer module for AutoFillReg.

This module provides classes and functions for regression-based imputation
using statsmodels models.
"""

from .imputer import RegressionImputer, regression_imp, multiple_imputation
from .formula import FormulaSpec, parse_formula, complete_predictors
from .families import Auto, Explicit, ModelPlan, as_family_selector, resolve_plan

__all__ = [
    'RegressionImputer',
    'regression_imp',
    'multiple_imputation',
    'FormulaSpec',
    'parse_formula',
    'complete_predictors',
    'Auto',
    'Explicit',
    'ModelPlan',
    'as_family_selector',
    'resolve_plan',
]
