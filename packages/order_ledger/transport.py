"""Transport for the remote spreadsheet behind a Google Apps Script web app.

Two very different guarantees live here:

- :meth:`SheetsTransport.push` is **best-effort**. It returns ``None`` and
  never reads the response: the web app's reply is not something callers may
  rely on (browsers cannot read it at all under ``no-cors``), so the only
  observable failure is a network-level one (DNS, connect, timeout), raised as
  :class:`~order_ledger.errors.TransportError`. Returning normally means
  "dispatched", never "durable".
- :meth:`SheetsTransport.fetch_all` is **confirmable**. It reads and parses
  the body and raises ``TransportError`` on any network failure, non-2xx
  status or malformed payload.

Wire format
-----------
Write (POST, body is JSON sent as ``text/plain`` to avoid a CORS preflight)::

    {"spreadsheetId": "...", "sheetName": "Orders", "values": [header, *rows]}

Read (GET ``?action=fetch&spreadsheetId=...``)::

    {"orders": [[...], ...], "customers": [[...], ...], "expenses": [[...], ...]}

A sheet missing from the read payload is an empty collection.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from .background import gather_settled
from .codec import FLAG_ONLY, CollectionKind, ImageColumnPolicy, encode_table, parse_table
from .config import RemoteConfig
from .errors import PushFailures, TransportError
from .logging_setup import get_logger
from .models import Customers, Expenses, FetchedCollections, Orders

_logger = get_logger("order_ledger.transport")


class Transport(Protocol):
    def push(
        self, collection: CollectionKind, header: Sequence[str], rows: Sequence[Sequence[str]]
    ) -> None:
        """Dispatch a whole-sheet overwrite. Best-effort; no result."""

    def fetch_all(self) -> FetchedCollections:
        """Read every sheet. Raises ``TransportError`` on failure."""


class SheetsTransport:
    """Apps Script client. Stateless apart from its :class:`RemoteConfig`."""

    def __init__(
        self,
        config: RemoteConfig,
        *,
        urlopen: Callable[..., Any] = urllib.request.urlopen,
    ) -> None:
        self._config = config
        self._urlopen = urlopen

    @property
    def config(self) -> RemoteConfig:
        return self._config

    def push(
        self, collection: CollectionKind, header: Sequence[str], rows: Sequence[Sequence[str]]
    ) -> None:
        payload = {
            "spreadsheetId": self._config.spreadsheet_id,
            "sheetName": collection.sheet_name,
            "values": [list(header), *[list(r) for r in rows]],
        }
        req = urllib.request.Request(
            self._config.apps_script_url,
            data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            method="POST",
        )
        req.add_header("Content-Type", "text/plain;charset=utf-8")

        try:
            with self._urlopen(req, timeout=self._config.timeout):
                pass  # response is deliberately not consumed
        except urllib.error.HTTPError as e:
            # A status line came back, so the request was delivered; the
            # endpoint's verdict is not part of the push contract.
            _logger.debug("push:status_ignored sheet=%s status=%s", collection.sheet_name, e.code)
            e.close()
        except (urllib.error.URLError, OSError) as e:
            raise TransportError(
                f"push to sheet {collection.sheet_name!r} could not be dispatched: {e}"
            ) from e

        _logger.info(
            "push:dispatched sheet=%s rows=%d", collection.sheet_name, len(payload["values"]) - 1
        )

    def fetch_all(self) -> FetchedCollections:
        query = urllib.parse.urlencode(
            {"action": "fetch", "spreadsheetId": self._config.spreadsheet_id}
        )
        sep = "&" if "?" in self._config.apps_script_url else "?"
        # Plain GET without custom headers keeps it a "simple" request.
        req = urllib.request.Request(f"{self._config.apps_script_url}{sep}{query}", method="GET")

        try:
            with self._urlopen(req, timeout=self._config.timeout) as resp:
                body = resp.read()
        except urllib.error.HTTPError as e:
            try:
                err_body = e.read().decode("utf-8", errors="replace")
            except OSError:
                err_body = ""
            finally:
                e.close()
            raise TransportError(f"fetch failed: {e.code} {e.reason}: {err_body}") from e
        except (urllib.error.URLError, OSError) as e:
            raise TransportError(f"fetch failed: {e}") from e

        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise TransportError("fetch returned a body that is not JSON") from e
        if not isinstance(data, dict):
            raise TransportError(f"fetch returned {type(data).__name__}, expected an object")
        if "error" in data and not any(k.value in data for k in CollectionKind):
            raise TransportError(f"fetch rejected by endpoint: {data['error']}")

        fetched = FetchedCollections(
            orders=parse_table(CollectionKind.ORDERS, _table(data, CollectionKind.ORDERS)),  # type: ignore[arg-type]
            customers=parse_table(CollectionKind.CUSTOMERS, _table(data, CollectionKind.CUSTOMERS)),  # type: ignore[arg-type]
            expenses=parse_table(CollectionKind.EXPENSES, _table(data, CollectionKind.EXPENSES)),  # type: ignore[arg-type]
        )
        _logger.info(
            "fetch:ok orders=%d customers=%d expenses=%d",
            len(fetched.orders),
            len(fetched.customers),
            len(fetched.expenses),
        )
        return fetched


def _table(data: dict[str, Any], kind: CollectionKind) -> list[list[Any]] | None:
    raw = data.get(kind.value)
    if raw is None:
        return None
    if not isinstance(raw, list) or not all(isinstance(r, list) for r in raw):
        _logger.warning("fetch:table_malformed sheet=%s; treating as empty", kind.sheet_name)
        return None
    return raw


def push_all(
    transport: Transport,
    orders: Orders,
    customers: Customers,
    expenses: Expenses,
    *,
    images: ImageColumnPolicy = FLAG_ONLY,
) -> None:
    """Push all three sheets as independent, concurrent, unordered operations.

    Every push is attempted even when another fails. Failures are raised
    together afterwards as :class:`~order_ledger.errors.PushFailures`.
    """

    tables = (
        (CollectionKind.ORDERS, encode_table(CollectionKind.ORDERS, orders, images=images)),
        (CollectionKind.CUSTOMERS, encode_table(CollectionKind.CUSTOMERS, customers)),
        (CollectionKind.EXPENSES, encode_table(CollectionKind.EXPENSES, expenses)),
    )

    def _push_one(kind: CollectionKind, header: list[str], rows: list[list[str]]) -> Callable[[], None]:
        return lambda: transport.push(kind, header, rows)

    outcomes = gather_settled(
        [_push_one(kind, header, rows) for kind, (header, rows) in tables],
        concurrency=len(tables),
    )
    errors = [o.error for o in outcomes if o.error is not None]
    if errors:
        raise PushFailures(f"push_all: {len(errors)} of {len(tables)} sheet pushes failed", errors)


__all__ = ["Transport", "SheetsTransport", "push_all"]
