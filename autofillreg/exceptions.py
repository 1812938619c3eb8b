"""
Exceptions raised by AutoFillReg.
"""


class AutoFillRegError(Exception):
    """Base class for all AutoFillReg errors."""


class InvalidFormula(AutoFillRegError, ValueError):
    """The formula is malformed or references columns that do not exist."""


class UnsupportedFamily(AutoFillRegError, ValueError):
    """The family argument is invalid or cannot be used for a target variable."""


class ModelFitFailure(AutoFillRegError, RuntimeError):
    """Fitting or predicting with the regression model failed."""
