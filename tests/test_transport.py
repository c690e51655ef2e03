import io
import json
import urllib.error
import urllib.parse

import pytest

from order_ledger.codec import CollectionKind, encode_table
from order_ledger.config import RemoteConfig
from order_ledger.errors import PushFailures, TransportError
from order_ledger.models import Expense, Order
from order_ledger.transport import SheetsTransport, push_all
from tests.helpers.fake_transport import FakeTransport

CONFIG = RemoteConfig(
    spreadsheet_id="sheet-123",
    apps_script_url="https://script.example.com/macros/s/abc/exec",
    timeout=7.5,
)


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class _Urlopen:
    """Records requests and replays a canned outcome."""

    def __init__(self, body: bytes = b"{}", error: Exception | None = None) -> None:
        self.body = body
        self.error = error
        self.requests = []
        self.timeouts = []

    def __call__(self, req, timeout=None):
        self.requests.append(req)
        self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error
        return _Response(self.body)


def _http_error(code: int, body: bytes = b"") -> urllib.error.HTTPError:
    return urllib.error.HTTPError(CONFIG.apps_script_url, code, "Bad", {}, io.BytesIO(body))


def test_push_posts_whole_sheet_as_text_plain_json():
    urlopen = _Urlopen()
    transport = SheetsTransport(CONFIG, urlopen=urlopen)

    transport.push(CollectionKind.EXPENSES, ["id", "description"], [["e1", "Flour"], ["e2", "Sugar"]])

    (req,) = urlopen.requests
    assert req.get_method() == "POST"
    assert req.full_url == CONFIG.apps_script_url
    assert req.get_header("Content-type") == "text/plain;charset=utf-8"
    assert json.loads(req.data.decode("utf-8")) == {
        "spreadsheetId": "sheet-123",
        "sheetName": "Expenses",
        "values": [["id", "description"], ["e1", "Flour"], ["e2", "Sugar"]],
    }
    assert urlopen.timeouts == [7.5]


def test_push_ignores_endpoint_status():
    transport = SheetsTransport(CONFIG, urlopen=_Urlopen(error=_http_error(500, b"boom")))
    assert transport.push(CollectionKind.ORDERS, ["id"], []) is None


def test_push_raises_when_request_cannot_be_dispatched():
    transport = SheetsTransport(
        CONFIG, urlopen=_Urlopen(error=urllib.error.URLError("name resolution failed"))
    )
    with pytest.raises(TransportError, match="Orders"):
        transport.push(CollectionKind.ORDERS, ["id"], [])


def test_fetch_all_issues_get_and_parses_every_sheet():
    order = Order(id="o1", customer_name="Asha", cake_type="Truffle")
    expense = Expense(id="e1", description="Flour")
    o_header, o_rows = encode_table(CollectionKind.ORDERS, [order])
    e_header, e_rows = encode_table(CollectionKind.EXPENSES, [expense])
    body = json.dumps({"orders": [o_header, *o_rows], "expenses": [e_header, *e_rows]}).encode()
    urlopen = _Urlopen(body=body)

    fetched = SheetsTransport(CONFIG, urlopen=urlopen).fetch_all()

    (req,) = urlopen.requests
    assert req.get_method() == "GET"
    parsed = urllib.parse.urlsplit(req.full_url)
    assert parsed.path == "/macros/s/abc/exec"
    assert urllib.parse.parse_qs(parsed.query) == {"action": ["fetch"], "spreadsheetId": ["sheet-123"]}
    assert fetched.orders == (order,)
    assert fetched.customers == ()
    assert fetched.expenses == (expense,)


@pytest.mark.parametrize(
    "outcome",
    [
        {"error": urllib.error.URLError("timed out")},
        {"error": _http_error(403, b"denied")},
        {"body": b"<html>not json</html>"},
        {"body": b"[1, 2, 3]"},
        {"body": b'{"error": "spreadsheet not found"}'},
    ],
)
def test_fetch_all_failures_raise_transport_error(outcome):
    transport = SheetsTransport(CONFIG, urlopen=_Urlopen(**outcome))
    with pytest.raises(TransportError):
        transport.fetch_all()


def test_push_all_pushes_every_sheet_and_groups_failures():
    transport = FakeTransport(fail_push={CollectionKind.CUSTOMERS})
    orders = (Order(id="o1", customer_name="Asha", cake_type="Truffle"),)

    with pytest.raises(PushFailures) as info:
        push_all(transport, orders, (), ())

    (failure,) = info.value.exceptions
    assert isinstance(failure, TransportError)
    assert {p.collection for p in transport.pushes} == {CollectionKind.ORDERS, CollectionKind.EXPENSES}
    assert transport.pushed(CollectionKind.EXPENSES)[0].rows == []
