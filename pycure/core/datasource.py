"""
Dataset: the immutable table both model formulas are evaluated against.

Dataset is the "I have data" abstraction. It knows which columns are
numeric and which are categorical, and what the categories are, but
nothing about survival or cure models.

Usage:
    from pycure.core.datasource import Dataset

    ds = Dataset.from_dataframe(df)
    ds = Dataset.from_mapping({'time': t, 'status': s, 'grade': g})
    ds = Dataset.build(df)          # dispatches on the input type

    ds.names                        # ('time', 'status', 'grade')
    ds['grade'].levels              # ('I', 'II', 'III')
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from pycure.core.exceptions import ValidationError

if TYPE_CHECKING:
    import pandas as pd


COLUMN_NUMERIC = 'numeric'
COLUMN_FACTOR = 'factor'
COLUMN_CHARACTER = 'character'


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (float, np.floating)):
        return bool(np.isnan(value))
    # pandas.NA and NaT do not compare equal to themselves
    try:
        return bool(value != value)
    except (TypeError, ValueError):
        return False


def _freeze(array: NDArray) -> NDArray:
    array = np.array(array, copy=True)
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class Column:
    """
    One named column of a Dataset.

    Numeric columns hold float64 values (NaN = missing). Categorical
    columns (factor or character) hold an object array of level strings
    with None marking a missing value, plus the ordered level set.
    """
    name: str
    kind: str
    values: NDArray
    levels: tuple[str, ...] | None = None
    ordered: bool = False

    @property
    def is_categorical(self) -> bool:
        return self.kind in (COLUMN_FACTOR, COLUMN_CHARACTER)

    @property
    def missing(self) -> NDArray[np.bool_]:
        """Boolean mask of missing entries."""
        if self.kind == COLUMN_NUMERIC:
            return np.isnan(self.values)
        return np.array([v is None for v in self.values], dtype=bool)

    def __len__(self) -> int:
        return len(self.values)


def _numeric_column(name: str, values: Any) -> Column:
    arr = np.asarray(values)
    if arr.dtype == np.bool_:
        arr = arr.astype(np.float64)
    try:
        arr = arr.astype(np.float64)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"column {name!r}: cannot convert to numeric: {e}") from e
    if arr.ndim != 1:
        raise ValidationError(
            f"column {name!r}: expected 1D values, got shape {arr.shape}"
        )
    return Column(name=name, kind=COLUMN_NUMERIC, values=_freeze(arr))


def _categorical_column(
    name: str,
    values: Any,
    *,
    levels: Any = None,
    ordered: bool = False,
) -> Column:
    raw = list(values)
    labels = np.empty(len(raw), dtype=object)
    for i, v in enumerate(raw):
        labels[i] = None if _is_missing(v) else str(v)

    observed = {v for v in labels if v is not None}
    if levels is None:
        kind = COLUMN_CHARACTER
        level_tuple = tuple(sorted(observed))
    else:
        kind = COLUMN_FACTOR
        level_tuple = tuple(str(lv) for lv in levels)
        unknown = observed.difference(level_tuple)
        if unknown:
            raise ValidationError(
                f"column {name!r}: values {sorted(unknown)} are not among "
                f"the declared levels {list(level_tuple)}"
            )

    return Column(
        name=name,
        kind=kind,
        values=_freeze(labels),
        levels=level_tuple,
        ordered=bool(ordered),
    )


@dataclass(frozen=True)
class Dataset:
    """
    Immutable table of named columns.

    Construct via factory classmethods, not directly. Every column has the
    same number of rows; arrays are copied and marked read-only.
    """
    _columns: Mapping[str, Column]
    _n: int
    _metadata: dict[str, Any] = field(default_factory=dict)

    # === Column Access ===

    @property
    def names(self) -> tuple[str, ...]:
        """Column names in insertion order."""
        return tuple(self._columns.keys())

    def __getitem__(self, key: str) -> Column:
        if key not in self._columns:
            raise KeyError(
                f"Dataset has no column '{key}'. Available: {list(self.names)}"
            )
        return self._columns[key]

    def __contains__(self, key: object) -> bool:
        return key in self._columns

    # === Properties ===

    @property
    def n_observations(self) -> int:
        """Number of rows."""
        return self._n

    @property
    def metadata(self) -> dict[str, Any]:
        return dict(self._metadata)

    def __repr__(self) -> str:
        return f"Dataset(n={self._n}, columns={list(self.names)})"

    # === Factory Methods ===

    @classmethod
    def _from_columns(cls, columns: list[Column], source: str) -> Dataset:
        if not columns:
            raise ValidationError("data: must contain at least one column")
        lengths = {c.name: len(c) for c in columns}
        if len(set(lengths.values())) > 1:
            details = ", ".join(f"{k}={v}" for k, v in lengths.items())
            raise ValidationError(f"data: columns have inconsistent lengths: {details}")
        n = len(columns[0])
        if n == 0:
            raise ValidationError("data: must have at least one row")
        return cls(
            _columns=MappingProxyType({c.name: c for c in columns}),
            _n=n,
            _metadata={'n_observations': n, 'source': source},
        )

    @classmethod
    def from_dataframe(cls, df: 'pd.DataFrame') -> Dataset:
        """
        Construct from a pandas DataFrame.

        Categorical dtype columns become factors (levels = categories,
        ordering preserved); object/string columns become character
        columns; booleans and numbers become numeric columns.
        """
        import pandas as pd

        columns: list[Column] = []
        for col in df.columns:
            name = str(col)
            series = df[col]
            dtype = series.dtype
            if isinstance(dtype, pd.CategoricalDtype):
                columns.append(_categorical_column(
                    name,
                    series.astype(object).tolist(),
                    levels=list(dtype.categories),
                    ordered=bool(dtype.ordered),
                ))
            elif pd.api.types.is_bool_dtype(dtype) or pd.api.types.is_numeric_dtype(dtype):
                columns.append(_numeric_column(
                    name, series.to_numpy(dtype=np.float64, na_value=np.nan)
                ))
            elif pd.api.types.is_object_dtype(dtype) or pd.api.types.is_string_dtype(dtype):
                columns.append(_categorical_column(name, series.tolist()))
            else:
                raise ValidationError(
                    f"column {name!r}: unsupported dtype {dtype}; expected "
                    f"numeric, boolean, categorical or string data"
                )
        return cls._from_columns(columns, source='dataframe')

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> Dataset:
        """
        Construct from a mapping of column name -> 1D array-like.

        Numeric and boolean arrays become numeric columns; string or
        object arrays become character columns.
        """
        columns: list[Column] = []
        for key, values in mapping.items():
            name = str(key)
            arr = np.asarray(values)
            if arr.dtype == np.bool_ or np.issubdtype(arr.dtype, np.number):
                columns.append(_numeric_column(name, arr))
            elif arr.dtype.kind in ('U', 'S', 'O'):
                columns.append(_categorical_column(name, arr.tolist()))
            else:
                raise ValidationError(
                    f"column {name!r}: unsupported dtype {arr.dtype}"
                )
        return cls._from_columns(columns, source='mapping')

    @classmethod
    def build(cls, data: Any) -> Dataset:
        """
        Convenience factory that dispatches on the input type.

        Examples:
            Dataset.build(df)                 # from_dataframe
            Dataset.build({'x': [1, 2, 3]})   # from_mapping
            Dataset.build(existing_dataset)   # returned unchanged
        """
        if isinstance(data, Dataset):
            return data
        if hasattr(data, 'columns') and hasattr(data, 'dtypes'):
            return cls.from_dataframe(data)
        if isinstance(data, Mapping):
            return cls.from_mapping(data)
        raise ValidationError(
            f"data: expected a pandas DataFrame, a mapping of columns or a "
            f"Dataset, got {type(data).__name__}"
        )
