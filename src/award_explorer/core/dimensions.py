from __future__ import annotations

from enum import Enum
from typing import Dict, List


class Dimension(str, Enum):
    """Entity axes by which awarded contracts can be grouped."""

    CONTRACTOR = "contractor"
    AREA = "area"
    ORGANIZATION = "organization"
    CATEGORY = "category"

    @property
    def column(self) -> str:
        return DIMENSION_COLUMNS[self]

    @property
    def file_stem(self) -> str:
        return DIMENSION_FILE_STEMS[self]


ALL_DIMENSIONS: List[Dimension] = [
    Dimension.CONTRACTOR,
    Dimension.AREA,
    Dimension.ORGANIZATION,
    Dimension.CATEGORY,
]

# Column holding each dimension in the facts file. Every query that filters or
# groups by a dimension resolves the column here.
DIMENSION_COLUMNS: Dict[Dimension, str] = {
    Dimension.CONTRACTOR: "contractor_name",
    Dimension.AREA: "area_of_delivery",
    Dimension.ORGANIZATION: "organization_name",
    Dimension.CATEGORY: "business_category",
}

# Entity part of the aggregate file name (agg_<stem>.parquet)
DIMENSION_FILE_STEMS: Dict[Dimension, str] = {
    Dimension.CONTRACTOR: "contractor",
    Dimension.AREA: "area",
    Dimension.ORGANIZATION: "organization",
    Dimension.CATEGORY: "business_category",
}

# Top-level table datasets
DATASET_DIMENSIONS: Dict[str, Dimension] = {
    "contractors": Dimension.CONTRACTOR,
    "areas": Dimension.AREA,
    "organizations": Dimension.ORGANIZATION,
    "categories": Dimension.CATEGORY,
}


def as_dimension(value: "Dimension | str") -> Dimension:
    """
    Coerce a dimension keyword or a facts column name to a Dimension.

    Accepts 'contractor' as well as 'contractor_name', so callers holding
    either spelling resolve through the same table.
    """
    if isinstance(value, Dimension):
        return value
    key = str(value).strip().lower()
    for dim, col in DIMENSION_COLUMNS.items():
        if key == dim.value or key == col:
            return dim
    raise ValueError(f"Unknown dimension: {value!r}. Expected one of {[d.value for d in ALL_DIMENSIONS]}.")


def dimension_for_dataset(dataset: str) -> Dimension:
    try:
        return DATASET_DIMENSIONS[str(dataset).strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown dataset: {dataset!r}. Expected one of {sorted(DATASET_DIMENSIONS)}."
        ) from None


def complementary_dimensions(source: Dimension) -> List[Dimension]:
    """All dimensions except `source`, in canonical order."""
    return [d for d in ALL_DIMENSIONS if d != source]
