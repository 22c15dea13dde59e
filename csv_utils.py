import csv
import io
from typing import Iterable, Any, Sequence, Callable, Optional
from fastapi.responses import StreamingResponse


def _text(attr: str) -> Callable[[Any], str]:
    def getter(obj: Any) -> str:
        value = getattr(obj, attr, None)
        if value is None:
            return ""
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)
    return getter


ASSET_COLUMNS: Sequence[tuple[str, Callable[[Any], str]]] = [
    (name, _text(name))
    for name in (
        "id", "asset_id", "asset_tag", "name", "category", "brand", "model",
        "serial_number", "status", "current_assignee_id", "location", "department",
        "purchase_date", "purchase_cost", "warranty_end_date", "updated_at",
    )
]

ALLOCATION_COLUMNS: Sequence[tuple[str, Callable[[Any], str]]] = [
    (name, _text(name))
    for name in (
        "id", "asset_id", "employee_id", "employee_name", "department", "location",
        "condition", "status", "allocated_date", "return_date", "notes",
    )
]


def rows_to_csv_response(
    rows: Iterable[Any],
    *,
    filename: str,
    columns: Sequence[tuple[str, Callable[[Any], str]]],
) -> StreamingResponse:
    """
    Stream ``rows`` as a CSV download. Anything with attribute access works
    (ORM rows or pydantic models).
    """

    def generate():
        buf = io.StringIO()
        w = csv.writer(buf)

        w.writerow([h for h, _ in columns])
        yield buf.getvalue()
        buf.seek(0)
        buf.truncate(0)

        for r in rows:
            w.writerow([getter(r) for _, getter in columns])
            yield buf.getvalue()
            buf.seek(0)
            buf.truncate(0)

    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(generate(), media_type="text/csv; charset=utf-8", headers=headers)


def assets_to_csv_response(
    assets: Iterable[Any],
    *,
    filename: str = "assets_export.csv",
    columns: Optional[Sequence[tuple[str, Callable[[Any], str]]]] = None,
) -> StreamingResponse:
    return rows_to_csv_response(assets, filename=filename, columns=columns or ASSET_COLUMNS)


def allocations_to_csv_response(
    allocations: Iterable[Any],
    *,
    filename: str = "allocations_export.csv",
) -> StreamingResponse:
    return rows_to_csv_response(allocations, filename=filename, columns=ALLOCATION_COLUMNS)
