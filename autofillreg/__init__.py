"""
AutoFillReg: regression-based imputation of missing values.
"""

from .exceptions import AutoFillRegError, InvalidFormula, UnsupportedFamily, ModelFitFailure
from .imputer import RegressionImputer, regression_imp, multiple_imputation
from .survey import SurveyDesign

__version__ = '0.1.0'

__all__ = [
    'RegressionImputer',
    'regression_imp',
    'multiple_imputation',
    'SurveyDesign',
    'AutoFillRegError',
    'InvalidFormula',
    'UnsupportedFamily',
    'ModelFitFailure',
]
