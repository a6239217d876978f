"""
Query result utilities: the coercion, filtering, grouping, sorting,
pagination and chart reshaping the reporting screens apply to a tabular
result, plus CSV/JSON export.

Processing order is filter, then group, then sort.
"""
import csv
import io
import json
import math
import re
from typing import Any, Dict, List, Optional, Tuple

import config
from .errors import InvalidRequestError
from .schemas import PageMeta, QueryResult

CHART_TYPES = ("bar", "line", "pie")
AGGREGATIONS = ("none", "count", "sum", "avg", "min", "max")

# Plain ASCII decimal or exponent notation; no underscores, no other digit sets
NUMBER_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$", re.ASCII)


def coerce_value(value: Any) -> Any:
    """Strings that parse as finite numbers become numbers; everything else is unchanged."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not NUMBER_PATTERN.match(text):
        return value
    number = float(text)
    if not math.isfinite(number):
        return value
    if "." not in text and "e" not in text.lower():
        return int(text)
    return number


def to_records(result: QueryResult) -> List[Dict[str, Any]]:
    records = []
    for row in result.rows:
        record = {}
        for idx, column in enumerate(result.columns):
            value = row[idx] if idx < len(row) else None
            record[column] = coerce_value(value)
        records.append(record)
    return records


def _check_column(records: List[Dict[str, Any]], column: str, columns: Optional[List[str]] = None):
    known = columns if columns is not None else (list(records[0].keys()) if records else [column])
    if column not in known:
        raise InvalidRequestError(f"Unknown column: {column}")


def filter_records(records: List[Dict[str, Any]], column: Optional[str], value: Optional[str]) -> List[Dict[str, Any]]:
    """Case-insensitive substring match on one column. No column or empty value keeps everything."""
    if not column or not value:
        return list(records)
    needle = value.lower()
    out = []
    for record in records:
        cell = record.get(column)
        text = "" if cell is None else str(cell)
        if needle in text.lower():
            out.append(record)
    return out


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def sort_records(records: List[Dict[str, Any]], column: Optional[str], direction: str = "asc") -> List[Dict[str, Any]]:
    """
    Numbers sort numerically, everything else by lower-cased text.
    Missing values go last when ascending and first when descending.
    """
    if not column:
        return list(records)
    if direction not in ("asc", "desc"):
        raise InvalidRequestError(f"Invalid sort direction: {direction}")

    present = [r for r in records if r.get(column) is not None]
    missing = [r for r in records if r.get(column) is None]

    def sort_key(record):
        value = record.get(column)
        if _is_number(value):
            return (0, value, "")
        return (1, 0, str(value).lower())

    ordered = sorted(present, key=sort_key, reverse=(direction == "desc"))
    if direction == "asc":
        return ordered + missing
    return missing + ordered


def clamp_page(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    page = max(1, int(page or 1))
    if limit is None:
        limit = config.DEFAULT_PAGE_SIZE
    limit = min(config.MAX_PAGE_SIZE, max(1, int(limit)))
    return page, limit


def paginate(records: List[Dict[str, Any]], page: Optional[int] = 1, limit: Optional[int] = None):
    page, limit = clamp_page(page, limit)
    total = len(records)
    start = (page - 1) * limit
    meta = PageMeta(page=page, limit=limit, total=total, totalPages=math.ceil(total / limit))
    return records[start:start + limit], meta


def group_records(records: List[Dict[str, Any]], group_by: str,
                  aggregate_column: Optional[str] = None, aggregation: str = "count") -> List[Dict[str, Any]]:
    """
    One record per distinct value of group_by, in first-seen order. Keys are
    text (missing values group together as None). 'count' adds a "count"
    column; sum/avg/min/max add "<aggregation>_<column>" over the numeric
    values of aggregate_column, 0 when there are none.
    """
    if aggregation not in AGGREGATIONS:
        raise InvalidRequestError(f"Unsupported aggregation: {aggregation}")

    groups: Dict[Optional[str], List[Dict[str, Any]]] = {}
    for record in records:
        value = record.get(group_by)
        key = None if value is None else str(value)
        groups.setdefault(key, []).append(record)

    grouped = []
    for key, items in groups.items():
        row = {group_by: key}
        if aggregation == "count":
            row["count"] = len(items)
        elif aggregation != "none" and aggregate_column:
            values = [item.get(aggregate_column) for item in items]
            values = [v for v in values if _is_number(v)]
            name = f"{aggregation}_{aggregate_column}"
            if aggregation == "sum":
                row[name] = sum(values)
            elif not values:
                row[name] = 0
            elif aggregation == "avg":
                row[name] = sum(values) / len(values)
            elif aggregation == "min":
                row[name] = min(values)
            else:
                row[name] = max(values)
        grouped.append(row)
    return grouped


def display_columns(records: List[Dict[str, Any]], columns: List[str], group_by: Optional[str] = None) -> List[str]:
    """Columns of the processed records: the grouped shape when grouping produced rows."""
    if group_by and records:
        return list(records[0].keys())
    return list(columns)


def process(result: QueryResult, filter_column=None, filter_value=None,
            sort_column=None, sort_direction="asc",
            group_by=None, aggregate_column=None, aggregation="count"):
    records = to_records(result)
    if filter_column and filter_value:
        _check_column(records, filter_column, result.columns)
        records = filter_records(records, filter_column, filter_value)
    if group_by:
        _check_column(records, group_by, result.columns)
        if aggregate_column:
            _check_column(records, aggregate_column, result.columns)
        records = group_records(records, group_by, aggregate_column, aggregation)
        if not records:
            return records
    if sort_column:
        _check_column(records, sort_column, display_columns(records, result.columns, group_by))
        records = sort_records(records, sort_column, sort_direction)
    return records


def _to_number(value: Any) -> float:
    if _is_number(value):
        return value
    coerced = coerce_value(value) if isinstance(value, str) else None
    return coerced if _is_number(coerced) else 0


def chart_data(records: List[Dict[str, Any]], chart_type: str, x_column: str, y_column: str) -> List[Dict[str, Any]]:
    """
    Reshapes records for a chart. Bar and line charts keep one point per
    record with a numeric value; pie slices get a name (or "Item N") and
    drop non-positive values.
    """
    if chart_type not in CHART_TYPES:
        raise InvalidRequestError(f"Unsupported chart type: {chart_type}")

    if chart_type == "pie":
        slices = []
        for index, record in enumerate(records):
            label = record.get(x_column)
            name = str(label) if label not in (None, "") else f"Item {index + 1}"
            value = _to_number(record.get(y_column))
            if value > 0:
                slices.append({"name": name, "value": value})
        return slices

    return [
        {"name": "" if record.get(x_column) is None else str(record.get(x_column)),
         y_column: _to_number(record.get(y_column))}
        for record in records
    ]


def build_chart(result: QueryResult, chart_type: str, x_column: Optional[str] = None,
                y_column: Optional[str] = None, **processing) -> List[Dict[str, Any]]:
    """Charts the processed records; axes default to the first two (grouped) columns."""
    records = process(result, **processing)
    columns = display_columns(records, result.columns, processing.get("group_by"))
    if len(columns) < 2 and (x_column is None or y_column is None):
        raise InvalidRequestError("Charts need at least two columns")
    x_column = x_column or columns[0]
    y_column = y_column or columns[1]
    for column in (x_column, y_column):
        if column not in columns:
            raise InvalidRequestError(f"Unknown column: {column}")
    return chart_data(records, chart_type, x_column, y_column)


def to_csv(records: List[Dict[str, Any]], columns: Optional[List[str]] = None) -> str:
    if not records and not columns:
        return ""
    headers = columns or list(records[0].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for record in records:
        writer.writerow(["" if record.get(h) is None else record.get(h) for h in headers])
    return buffer.getvalue()


def to_json(records: List[Dict[str, Any]]) -> str:
    return json.dumps(records, indent=2, default=str)
