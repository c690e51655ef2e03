import datetime as dt
from decimal import Decimal

import pytest
from typer.testing import CliRunner

from order_ledger import cli
from order_ledger.cache import JsonFileCache
from order_ledger.codec import CollectionKind
from order_ledger.config import LedgerSettings
from order_ledger.models import Expense, Order, OrderStatus
from tests.helpers.fake_transport import FakeTransport

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_dotenv(tmp_path, monkeypatch):
    # Keep a developer's .env out of the CLI's environment.
    monkeypatch.chdir(tmp_path)


def _seed():
    today = dt.date.today()
    cache = JsonFileCache()
    cache.write(
        CollectionKind.ORDERS,
        [
            Order(
                id="o1",
                customer_name="Asha",
                cake_type="Truffle",
                price=Decimal("40"),
                delivery_charge=Decimal("5"),
                order_date=today,
                due_date=today + dt.timedelta(days=2),
                is_eggless=True,
                cake_image="1AbCdEf",
            ),
            Order(
                id="o2",
                customer_name="Ben",
                cake_type="Sponge",
                price=Decimal("20"),
                order_date=today,
                due_date=today + dt.timedelta(days=1),
                status=OrderStatus.DELIVERED,
            ),
        ],
    )
    cache.write(
        CollectionKind.EXPENSES,
        [Expense(id="e1", description="Flour", amount=Decimal("12.50"), date=today)],
    )


def test_status_reports_local_only_mode():
    _seed()
    result = runner.invoke(cli.app, ["status"])

    assert result.exit_code == 0, result.output
    assert "sync: disabled (missing ORDER_LEDGER_SYNC_ENABLED" in result.stdout
    assert "orders: 2" in result.stdout
    assert "expenses: 1" in result.stdout


def test_dashboard_prints_monthly_figures():
    _seed()
    result = runner.invoke(cli.app, ["dashboard", "--offline"])

    assert result.exit_code == 0, result.output
    assert "revenue: 65.00" in result.stdout
    assert "orders: 2" in result.stdout
    assert "eggless: 1" in result.stdout
    assert "expenses: 12.50" in result.stdout
    assert "net: 52.50" in result.stdout


def test_dashboard_rejects_month_outside_calendar():
    result = runner.invoke(cli.app, ["dashboard", "--month", "13"])
    assert result.exit_code != 0


def test_upcoming_lists_undelivered_orders_with_image_links():
    _seed()
    result = runner.invoke(cli.app, ["upcoming", "--offline"])

    assert result.exit_code == 0, result.output
    assert "Asha  Truffle" in result.stdout
    assert "https://drive.google.com/uc?export=view&id=1AbCdEf" in result.stdout
    assert "Ben" not in result.stdout


def test_upcoming_with_empty_cache():
    result = runner.invoke(cli.app, ["upcoming"])
    assert result.exit_code == 0, result.output
    assert "No upcoming orders." in result.stdout


def test_sync_without_remote_settings_exits_2():
    result = runner.invoke(cli.app, ["sync"])
    assert result.exit_code == 2


def test_bad_settings_exit_2(monkeypatch):
    monkeypatch.setenv("ORDER_LEDGER_CACHE_BACKEND", "redis")
    result = runner.invoke(cli.app, ["status"])
    assert result.exit_code == 2


def test_sync_pushes_every_sheet(monkeypatch):
    _seed()
    # Startup fetch fails, so the store keeps the seeded cache.
    transport = FakeTransport(fail_fetch=True)

    def _build_store(settings: LedgerSettings, *, offline: bool = False):
        return cli.LedgerStore(cache=JsonFileCache(), transport=transport)

    monkeypatch.setattr(cli, "build_store", _build_store)
    result = runner.invoke(cli.app, ["sync", "--force"])

    assert result.exit_code == 0, result.output
    assert "Sync dispatched" in result.stdout
    assert {p.collection for p in transport.pushes} == set(CollectionKind)
    assert [r[0] for r in transport.pushed(CollectionKind.ORDERS)[0].rows] == ["o1", "o2"]


def test_sync_refuses_to_overwrite_an_unread_sheet(monkeypatch):
    _seed()
    transport = FakeTransport(fail_fetch=True)
    monkeypatch.setattr(
        cli, "build_store", lambda settings, *, offline=False: cli.LedgerStore(cache=JsonFileCache(), transport=transport)
    )
    result = runner.invoke(cli.app, ["sync"])

    assert result.exit_code == 1
    assert "--force" in result.output
    assert transport.fetches == 1
    assert transport.pushes == []


def test_sync_reports_failed_sheets(monkeypatch):
    transport = FakeTransport(fail_push={CollectionKind.ORDERS})
    monkeypatch.setattr(
        cli, "build_store", lambda settings, *, offline=False: cli.LedgerStore(cache=JsonFileCache(), transport=transport)
    )
    result = runner.invoke(cli.app, ["sync"])

    assert result.exit_code == 1
    assert "--force" not in result.output
    assert transport.pushed(CollectionKind.ORDERS)


def test_build_store_enables_sync_only_when_configured(tmp_path):
    local = cli.build_store(LedgerSettings(cache_dir=tmp_path))
    remote = cli.build_store(
        LedgerSettings(
            sync_enabled=True,
            spreadsheet_id="sheet-123",
            apps_script_url="https://script.example.com/exec",
            cache_dir=tmp_path,
        )
    )
    offline = cli.build_store(
        LedgerSettings(
            sync_enabled=True,
            spreadsheet_id="sheet-123",
            apps_script_url="https://script.example.com/exec",
            cache_dir=tmp_path,
        ),
        offline=True,
    )
    try:
        assert not local.sync_enabled
        assert remote.sync_enabled
        assert not offline.sync_enabled
    finally:
        for store in (local, remote, offline):
            store.close()
