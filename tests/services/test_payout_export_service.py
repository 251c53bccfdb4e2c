"""Tests for the Paystack and MPESA payout CSV exports."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from annotation_hub.core.exceptions import ExchangeRateUnavailableError
from annotation_hub.services.payout_export_service import (
    MPESA_HEADER,
    PAYSTACK_HEADER,
    PayoutExportService,
    render_csv,
)
from tests.factories import FakeCursor, approved_worker, invoice

RATE = 1500.0


def paystack_worker(**payment_overrides):
    payment_info = {
        "account_name": "Ada Worker",
        "account_number": "0123456789",
        "bank_name": "Access Bank",
    }
    payment_info.update(payment_overrides)
    return approved_worker(payment_info=payment_info)


@pytest.fixture
def rates():
    mock = MagicMock()
    mock.convert_usd_to_ngn = AsyncMock(side_effect=lambda amount: round(amount * RATE, 2))
    return mock


@pytest.fixture
def service(collections, rates):
    return PayoutExportService(invoices=collections["invoices"], users=collections["users"], rates=rates)


def load(collections, pairs):
    """Wire (invoice, worker) pairs into the fake collections."""
    collections["invoices"].find.return_value = FakeCursor([inv for inv, _ in pairs])
    collections["users"].find.return_value = FakeCursor([w for _, w in pairs])


def test_render_csv_quotes_every_field():
    content = render_csv([["a", 'say "hi"', "x,y", ""]])

    assert content == '"a","say ""hi""","x,y",""'


@pytest.mark.asyncio
async def test_paystack_skips_invalid_rows_and_keeps_going(service, collections):
    good = [paystack_worker() for _ in range(3)]
    no_account = paystack_worker(account_number="")
    unknown_bank = paystack_worker(bank_name="Bank of Nowhere")
    workers = good + [no_account, unknown_bank]
    invoices = [
        invoice("unpaid", invoiceNumber=f"20240100{i:02d}", dtUserId=w["_id"], invoiceAmount=10.0)
        for i, w in enumerate(workers, start=1)
    ]
    load(collections, list(zip(invoices, workers)))

    content, summary = await service.generate_paystack_csv(user_id="admin")

    lines = content.split("\n")
    assert len(lines) == 4
    assert lines[0] == render_csv([PAYSTACK_HEADER])
    assert summary["totalInvoices"] == 5
    assert summary["processedInvoices"] == 3
    assert summary["totalAmountUSD"] == 30.0
    assert summary["totalAmountNGN"] == 45000.0
    assert [e["invoiceNumber"] for e in summary["errors"]] == ["2024010004", "2024010005"]
    assert all(e["error"] == "Invalid payment info" for e in summary["errors"])
    assert "Account number is required" in summary["errors"][0]["details"]


@pytest.mark.asyncio
async def test_paystack_row_layout(service, collections):
    worker = paystack_worker()
    record = invoice("unpaid", invoiceNumber="2024010001", dtUserId=worker["_id"], invoiceAmount=12.5,
                     description='Batch "A"')
    load(collections, [(record, worker)])

    content, _ = await service.generate_paystack_csv()

    row = content.split("\n")[1]
    assert row == (
        '"18750.00","Batch ""A"" for Ada Worker","2024010001","","access-bank",'
        '"0123456789","Ada Worker","ada@example.com"'
    )


@pytest.mark.asyncio
async def test_paystack_default_note(service, collections):
    worker = paystack_worker()
    record = invoice("overdue", dtUserId=worker["_id"])
    load(collections, [(record, worker)])

    content, _ = await service.generate_paystack_csv()

    assert '"Project completion payment for Ada Worker"' in content


@pytest.mark.asyncio
async def test_paystack_aborts_without_exchange_rate(service, collections, rates):
    worker = paystack_worker()
    load(collections, [(invoice("unpaid", dtUserId=worker["_id"]), worker)])
    rates.convert_usd_to_ngn.side_effect = ExchangeRateUnavailableError("timeout")

    with pytest.raises(ExchangeRateUnavailableError):
        await service.generate_paystack_csv()


@pytest.mark.asyncio
async def test_paystack_unexpected_row_failure_is_reported(service, collections, rates):
    worker = paystack_worker()
    records = [invoice("unpaid", invoiceNumber="2024010001", dtUserId=worker["_id"]),
               invoice("unpaid", invoiceNumber="2024010002", dtUserId=worker["_id"], invoiceAmount=3.0)]
    load(collections, [(records[0], worker), (records[1], worker)])
    rates.convert_usd_to_ngn.side_effect = [1500.0, RuntimeError("boom"), 4500.0]

    content, summary = await service.generate_paystack_csv()

    assert summary["processedInvoices"] == 1
    assert summary["errors"] == [{"invoiceNumber": "2024010001", "error": "Processing failed", "details": "boom"}]
    assert len(content.split("\n")) == 2


@pytest.mark.asyncio
async def test_empty_export(service, collections, rates):
    collections["invoices"].find.return_value = FakeCursor([])

    content, summary = await service.generate_paystack_csv()

    assert content == ""
    assert summary["totalInvoices"] == 0
    rates.convert_usd_to_ngn.assert_not_awaited()


@pytest.mark.asyncio
async def test_export_restricted_to_selected_invoices(service, collections):
    record = invoice("unpaid")
    collections["invoices"].find.return_value = FakeCursor([])

    await service.generate_mpesa_csv(invoice_ids=[str(record["_id"])])

    query = collections["invoices"].find.call_args.args[0]
    assert query["_id"] == {"$in": [record["_id"]]}
    assert query["paymentStatus"] == {"$in": ["unpaid", "overdue"]}


@pytest.mark.asyncio
async def test_mpesa_keeps_usd_and_reports_missing_info(service, collections, rates):
    with_info = approved_worker(payment_info={"account_number": "254700000001", "account_name": "Ada Worker"})
    without_info = approved_worker(payment_info={"account_number": "254700000002"})
    records = [
        invoice("unpaid", invoiceNumber="2024010001", dtUserId=with_info["_id"], invoiceAmount=40),
        invoice("unpaid", invoiceNumber="2024010002", dtUserId=without_info["_id"]),
    ]
    load(collections, [(records[0], with_info), (records[1], without_info)])

    content, summary = await service.generate_mpesa_csv()

    lines = content.split("\n")
    assert lines[0] == render_csv([MPESA_HEADER])
    assert lines[1] == '"40.00","Payment for Ada Worker","2024010001","254700000001","Ada Worker","ada@example.com"'
    assert summary["errors"] == [{"invoiceNumber": "2024010002", "error": "Missing MPESA info"}]
    rates.convert_usd_to_ngn.assert_not_awaited()


@pytest.mark.asyncio
async def test_mpesa_malformed_invoice_does_not_abort_export(service, collections):
    ada = approved_worker(payment_info={"account_number": "254700000001", "account_name": "Ada Worker"})
    bob = approved_worker(
        fullName="Bob Worker", payment_info={"account_number": "254700000002", "account_name": "Bob Worker"}
    )
    no_amount = invoice("unpaid", invoiceNumber="2024010002", dtUserId=bob["_id"])
    no_amount["invoiceAmount"] = None
    no_worker = invoice("unpaid", invoiceNumber="2024010003")
    del no_worker["dtUserId"]
    records = [
        invoice("unpaid", invoiceNumber="2024010001", dtUserId=ada["_id"], invoiceAmount=25),
        no_amount,
        no_worker,
    ]
    collections["invoices"].find.return_value = FakeCursor(records)
    collections["users"].find.return_value = FakeCursor([ada, bob])

    content, summary = await service.generate_mpesa_csv()

    assert len(content.split("\n")) == 2
    assert summary["processedInvoices"] == 1
    assert summary["totalAmountUSD"] == 25
    errors = {e["invoiceNumber"]: e for e in summary["errors"]}
    assert errors["2024010002"]["error"] == "Processing failed"
    assert "NoneType" in errors["2024010002"]["details"]
    assert errors["2024010003"]["error"] == "Processing failed"
