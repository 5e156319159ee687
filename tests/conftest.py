from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import pytest

_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from plotlybind.figure_ids import reset_ids  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_ids():
    reset_ids()
    yield


@pytest.fixture
def iris_like() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "sepal_width": [3.5, 3.0, 3.2, 2.9, 3.1, 2.8],
            "sepal_length": [5.1, 4.9, 7.0, 6.4, 6.3, 5.8],
            "petal_length": [1.4, 1.3, 4.7, 4.5, 6.0, 5.1],
            "species": ["setosa", "setosa", "versicolor", "versicolor", "virginica", "virginica"],
        }
    )
