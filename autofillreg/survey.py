"""
Container for survey data with design information.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import pandas as pd


@dataclass
class SurveyDesign:
    """
    Survey data together with its design.

    Imputing a ``SurveyDesign`` imputes ``variables`` in place and records the
    call in ``call``; the design fields are left as they are.

    Parameters
    ----------
    variables : DataFrame
        The raw survey table.
    weights : Series, optional
        Sampling weights, one per row of ``variables``.
    strata : Series, optional
        Stratum of each row.
    ids : Series, optional
        Cluster identifiers.
    call : str, optional
        Description of the last call that produced or modified the design.
    metadata : dict
        Any other design information.
    """

    variables: pd.DataFrame
    weights: Optional[pd.Series] = None
    strata: Optional[pd.Series] = None
    ids: Optional[pd.Series] = None
    call: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.variables, pd.DataFrame):
            self.variables = pd.DataFrame(self.variables)
        for name in ('weights', 'strata', 'ids'):
            values = getattr(self, name)
            if values is not None and len(values) != len(self.variables):
                raise ValueError(f"{name} has {len(values)} entries, expected {len(self.variables)}")
