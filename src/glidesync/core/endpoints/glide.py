"""Glide Tables endpoint."""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from glidesync.core.endpoints.base import SyncEndpoint
from glidesync.core.endpoints.exceptions import (
    EndpointConnectionError,
    EndpointWriteError,
    TableNotFoundError,
)
from glidesync.core.endpoints.registry import EndpointRegistry
from glidesync.core.endpoints.schemas import GlideConfig
from glidesync.core.models.schemas import ColumnSchema, RowPage, RowWriteResult, TableInfo

logger = logging.getLogger(__name__)

ROW_ID_COLUMN = "$rowID"


def _to_json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


@EndpointRegistry.register(
    kind="glide",
    display_name="Glide Tables",
    config_schema=GlideConfig,
)
class GlideEndpoint(SyncEndpoint):
    """Endpoint for Glide big tables via the Glide function API.

    Reads go through `queryTables` and page with the `startAt` continuation
    token the API returns as `next`. Writes go through `mutateTables`, one
    mutation per row: `set-columns-in-row` when the row carries a `$rowID`,
    `add-row-to-table` otherwise.
    """

    def __init__(self, config: GlideConfig) -> None:
        super().__init__(config)
        self.config: GlideConfig = config
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the HTTP client. No request is made until first use."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            timeout=self.config.timeout,
            headers={
                "Authorization": f"Bearer {self.config.api_key.get_secret_value()}",
                "Content-Type": "application/json",
            },
        )

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise EndpointConnectionError(
                "Not connected. Call connect() first.",
                kind="glide",
            )
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True,
    )
    async def _post(self, function: str, payload: dict[str, Any]) -> Any:
        """POST to a Glide function with retry on transient network errors."""
        client = self._get_client()
        response = await client.post(f"/{function}", json=payload)
        response.raise_for_status()
        return response.json()

    async def _call(self, function: str, payload: dict[str, Any]) -> Any:
        """Call a Glide function, translating transport failures.

        Authentication failures and server errors are connection-level: every
        later request would fail the same way.
        """
        try:
            return await self._post(function, payload)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            logger.error(f"Glide {function} unreachable: {e}")
            raise EndpointConnectionError(
                f"Glide API unreachable: {e}",
                kind="glide",
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Glide {function} returned {status}: {e.response.text}")
            if status in (401, 403) or status >= 500:
                raise EndpointConnectionError(
                    f"Glide API returned {status}: {e.response.text}",
                    kind="glide",
                ) from e
            if function == "mutateTables":
                raise EndpointWriteError(
                    f"Glide API rejected mutation ({status}): {e.response.text}",
                    kind="glide",
                ) from e
            raise EndpointConnectionError(
                f"Glide API returned {status}: {e.response.text}",
                kind="glide",
            ) from e

    async def _query(self, query: dict[str, Any]) -> dict[str, Any]:
        data = await self._call(
            "queryTables",
            {"appID": self.config.app_id, "queries": [query]},
        )
        if isinstance(data, list) and data and isinstance(data[0], dict):
            return data[0]
        return {}

    async def test_connection(self) -> bool:
        """Test connectivity with an empty one-row query."""
        try:
            await self._call(
                "queryTables",
                {"appID": self.config.app_id, "queries": [{"limit": 1}]},
            )
            return True
        except EndpointConnectionError:
            return False

    async def list_tables(self) -> list[TableInfo]:
        """List the app's tables with a `listTables` query.

        The table id addresses the table; its name in the app is the display name.
        """
        data = await self._call(
            "queryTables",
            {"appID": self.config.app_id, "queries": [{"listTables": True}]},
        )
        if isinstance(data, list):
            data = data[0] if data and isinstance(data[0], dict) else {}
        raw_tables = data.get("tables") if isinstance(data, dict) else None

        tables = []
        for raw in raw_tables or []:
            if isinstance(raw, dict) and raw.get("id"):
                tables.append(TableInfo(name=raw["id"], display_name=raw.get("name")))
        return tables

    async def list_columns(self, table: str) -> list[ColumnSchema]:
        """Describe a Glide table from the column metadata of a one-row query.

        `$rowID` is always listed. It is writable in the sense that writes
        use it to address the row.
        """
        result = await self._query({"tableName": table, "limit": 1})
        if not result:
            raise TableNotFoundError(table, kind="glide")

        columns = [
            ColumnSchema(
                name=ROW_ID_COLUMN,
                native_type="row-id",
                writable=True,
                primary_key=True,
                unique=True,
            )
        ]
        seen = {ROW_ID_COLUMN}

        raw_columns = result.get("columns")
        if isinstance(raw_columns, dict):
            for column_id, info in raw_columns.items():
                info = info if isinstance(info, dict) else {}
                name = info.get("name") or column_id
                if name in seen:
                    continue
                seen.add(name)
                columns.append(
                    ColumnSchema(
                        name=name,
                        native_type=info.get("type") or "string",
                        writable=not info.get("isComputed", False),
                    )
                )
        else:
            # Older apps return no column metadata; fall back to the sample row
            for row in result.get("rows") or []:
                for name in row:
                    if name not in seen:
                        seen.add(name)
                        columns.append(ColumnSchema(name=name, native_type="string"))
                break

        return columns

    async def read_rows(
        self,
        table: str,
        cursor: str | None,
        batch_size: int,
    ) -> RowPage:
        """Read one page, continuing from the `next` token of the previous page."""
        query: dict[str, Any] = {"tableName": table, "utc": True, "limit": batch_size}
        if cursor:
            query["startAt"] = cursor
        result = await self._query(query)
        return RowPage(rows=result.get("rows") or [], next_cursor=result.get("next") or None)

    async def write_rows(
        self,
        table: str,
        rows: list[dict[str, Any]],
        key_column: str | None = None,
    ) -> list[RowWriteResult]:
        """Send one mutation per row in a single `mutateTables` call."""
        if not rows:
            return []

        key = key_column or ROW_ID_COLUMN
        mutations = []
        for row in rows:
            values = {name: _to_json_value(value) for name, value in row.items() if name != key}
            row_id = row.get(key)
            if row_id:
                mutations.append(
                    {
                        "kind": "set-columns-in-row",
                        "tableName": table,
                        "columnValues": values,
                        "rowID": row_id,
                    }
                )
            else:
                mutations.append(
                    {
                        "kind": "add-row-to-table",
                        "tableName": table,
                        "columnValues": values,
                    }
                )

        data = await self._call(
            "mutateTables",
            {"appID": self.config.app_id, "mutations": mutations},
        )

        results: list[RowWriteResult] = []
        outcomes = data if isinstance(data, list) else []
        for index, row in enumerate(rows):
            outcome = outcomes[index] if index < len(outcomes) else {}
            outcome = outcome if isinstance(outcome, dict) else {}
            if outcome.get("error"):
                results.append(
                    RowWriteResult(
                        success=False,
                        row_id=row.get(key),
                        error=str(outcome["error"]),
                    )
                )
            else:
                results.append(
                    RowWriteResult(success=True, row_id=outcome.get("rowID") or row.get(key))
                )
        return results
