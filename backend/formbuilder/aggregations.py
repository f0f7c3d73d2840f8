"""
Aggregations run inside the database for dashboard widgets. Each builder
returns the collection to aggregate over and the pipeline; they are exposed
through ``Backend.rpc`` under the names the widgets call.
"""
from typing import Any, Dict, List, Optional, Tuple

DATE_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%G-%V",
    "month": "%Y-%m",
    "year": "%Y",
}

# Postgres to_char patterns sent by older widget configs
POSTGRES_DATE_FORMATS = {
    "YYYY-MM-DD": "day",
    "IYYY-IW": "week",
    "YYYY-MM": "month",
    "YYYY": "year",
}

ACCUMULATORS = {
    "count": {"$sum": 1},
    "sum": {"$sum": "$numeric_value"},
    "avg": {"$avg": "$numeric_value"},
    "min": {"$min": "$numeric_value"},
    "max": {"$max": "$numeric_value"},
}

Pipeline = Tuple[str, List[Dict[str, Any]]]


def _accumulator(aggregation: Optional[str]) -> Dict[str, Any]:
    key = (aggregation or "count").lower()
    if key not in ACCUMULATORS:
        raise ValueError(f"Unsupported aggregation: {aggregation}")
    return ACCUMULATORS[key]


def _date_format(p_date_grouping: Optional[str], p_date_format: Optional[str]) -> str:
    grouping = p_date_grouping or POSTGRES_DATE_FORMATS.get(p_date_format or "", "day")
    if grouping not in DATE_FORMATS:
        raise ValueError(f"Unsupported date grouping: {grouping}")
    return DATE_FORMATS[grouping]


def aggregate_responses_by_field(p_form_id: str, p_field_id: str, p_aggregation: str = "count") -> Pipeline:
    return "form_response_values", [
        {"$match": {"form_id": p_form_id, "field_id": p_field_id}},
        {"$group": {"_id": "$value", "value": _accumulator(p_aggregation)}},
        {"$sort": {"_id": 1}},
        {"$project": {"_id": 0, "key": "$_id", "value": 1}},
    ]


def aggregate_responses_by_date(
    p_form_id: str,
    p_date_grouping: Optional[str] = None,
    p_date_format: Optional[str] = None,
) -> Pipeline:
    date_format = _date_format(p_date_grouping, p_date_format)
    return "form_responses", [
        {"$match": {"form_id": p_form_id}},
        {"$group": {
            "_id": {"$dateToString": {"format": date_format, "date": "$completed_at"}},
            "value": {"$sum": 1},
        }},
        {"$sort": {"_id": 1}},
        {"$project": {"_id": 0, "date_group": "$_id", "value": 1}},
    ]


def aggregate_field_by_date(
    p_form_id: str,
    p_field_id: str,
    p_date_grouping: Optional[str] = None,
    p_date_format: Optional[str] = None,
    p_aggregation: str = "sum",
) -> Pipeline:
    date_format = _date_format(p_date_grouping, p_date_format)
    return "form_response_values", [
        {"$match": {"form_id": p_form_id, "field_id": p_field_id}},
        {"$group": {
            "_id": {"$dateToString": {"format": date_format, "date": "$created_at"}},
            "value": _accumulator(p_aggregation),
        }},
        {"$sort": {"_id": 1}},
        {"$project": {"_id": 0, "date_group": "$_id", "value": 1}},
    ]


RPC_FUNCTIONS = {
    "aggregate_responses_by_field": aggregate_responses_by_field,
    "aggregate_responses_by_date": aggregate_responses_by_date,
    "aggregate_field_by_date": aggregate_field_by_date,
}
