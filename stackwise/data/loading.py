"""Loading of comma-separated datasets into DataFrames."""

from pathlib import Path
from typing import Union

import pandas as pd


def load_dataset(path: Union[str, Path], label_column: str, **read_csv_kwargs) -> pd.DataFrame:
    """Read a CSV file with a header row and check the label column.

    Empty cells and 'NA' become missing values. The label column is read
    as strings so class names are never coerced to numbers.

    Parameters
    ----------
    path : str or Path
        CSV file to read.
    label_column : str
        Name of the label column; must be present in the header.
    **read_csv_kwargs
        Passed through to pandas.read_csv.

    Returns
    -------
    data : pd.DataFrame
    """
    dtype = dict(read_csv_kwargs.pop('dtype', {}) or {})
    dtype.setdefault(label_column, str)

    data = pd.read_csv(path, dtype=dtype, **read_csv_kwargs)

    if label_column not in data.columns:
        raise ValueError(
            f"Label column '{label_column}' not found in {path}. "
            f"Columns: {list(data.columns)}"
        )

    return data
