import asyncio
from datetime import date

import aiohttp
import pytest

from agilwatch.domain.models import AccessCredential, DetailSource
from agilwatch.errors import AuthRequired, DetailUnavailable, InvalidShape, SourceUnavailable
from agilwatch.infrastructure.http import (
    DetailClient,
    JsonFetcher,
    ListingSourceClient,
    build_listing_filter,
    listing_window,
    parse_listing_payload,
)
from agilwatch.infrastructure.observability import get_counter_value
from tests.support import LISTING_FILTER, FakeResponse, FakeSession

API_URL = "https://api.example.test/compra-agil"

DETAIL_BODY = {
    "success": "OK",
    "payload": {
        "descripcion": "Resmas",
        "plazo_entrega": "5 días",
        "direccion_entrega": "Santiago",
        "productos_solicitados": [{"nombre": "Resma", "cantidad": 10}],
    },
}


def _fetcher(responder):
    session = FakeSession(responder)
    return session, JsonFetcher(session, headers={"Accept": "application/json"})


def test_listing_window_covers_lookback_days():
    assert listing_window(30, today=date(2024, 3, 31)) == ("2024-03-01", "2024-03-31")
    listing_filter = build_listing_filter(lookback_days=7, status="3", today=date(2024, 1, 5))
    assert (listing_filter.date_from, listing_filter.date_to) == ("2023-12-29", "2024-01-05")
    assert listing_filter.status == "3"


def test_fetch_page_parses_items_and_page_count():
    body = {
        "payload": {
            "resultados": [
                {"codigo": "A-1", "nombre": "Uno", "monto_disponible_CLP": 100},
                {"nombre": "sin código"},
                {"codigo": "A-2", "nombre": "Dos"},
            ],
            "pageCount": 45,
        }
    }
    session, fetcher = _fetcher(lambda url, params, headers: FakeResponse(200, body))
    client = ListingSourceClient(fetcher, api_url=API_URL)

    page = asyncio.run(client.fetch_page(LISTING_FILTER.for_page(3)))

    assert [item.code for item in page.items] == ["A-1", "A-2"]
    assert page.page_number == 3
    assert page.total_pages == 45
    request = session.requests[0]
    assert request["url"] == API_URL
    assert request["params"]["page_number"] == "3"
    assert request["params"]["order_by"] == "recent"
    assert request["headers"]["Accept"] == "application/json"
    assert get_counter_value("listing_pages_total", {"outcome": "success"}) == 1


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"items": [], "totalPages": 7}, 7),
        ({"results": [], "total_paginas": "4"}, 4),
        ({"resultados": [], "totalPagesCount": 2}, 2),
        ({"resultados": []}, 1),
        ({"resultados": [], "pageCount": 0}, 1),
        ({"resultados": [], "pageCount": "3.0"}, 3),
        ({"resultados": [], "pageCount": 12.0}, 12),
        ({"resultados": [], "pageCount": "n/a"}, 1),
    ],
)
def test_page_count_field_variants(payload, expected):
    assert parse_listing_payload(1, {"payload": payload}).total_pages == expected


def test_missing_items_array_is_source_unavailable():
    with pytest.raises(SourceUnavailable) as excinfo:
        parse_listing_payload(4, {"payload": {"pageCount": 3}})
    assert excinfo.value.page_number == 4


def test_fetch_page_http_error_raises_source_unavailable():
    _, fetcher = _fetcher(lambda url, params, headers: FakeResponse(503))
    client = ListingSourceClient(fetcher, api_url=API_URL)

    with pytest.raises(SourceUnavailable) as excinfo:
        asyncio.run(client.fetch_page(LISTING_FILTER))

    assert excinfo.value.status == 503
    assert get_counter_value("listing_pages_total", {"outcome": "failed"}) == 1


def test_fetch_page_transport_error_raises_source_unavailable():
    _, fetcher = _fetcher(lambda url, params, headers: aiohttp.ClientConnectionError("reset"))
    client = ListingSourceClient(fetcher, api_url=API_URL)

    with pytest.raises(SourceUnavailable):
        asyncio.run(client.fetch_page(LISTING_FILTER))


def test_public_detail_success():
    session, fetcher = _fetcher(lambda url, params, headers: FakeResponse(200, DETAIL_BODY))
    client = DetailClient(fetcher, api_url=API_URL)

    record = asyncio.run(client.fetch_public("C-1"))

    assert record.description == "Resmas"
    assert [item.name for item in record.line_items] == ["Resma"]
    assert session.requests[0]["params"] == {"action": "ficha", "code": "C-1"}
    assert "Authorization" not in session.requests[0]["headers"]
    assert get_counter_value(
        "detail_fetches_total", {"mode": DetailSource.PUBLIC.value, "outcome": "success"}
    ) == 1


def test_public_detail_without_line_items_is_invalid_shape():
    body = {"success": "OK", "payload": {"descripcion": "x", "productos_solicitados": []}}
    _, fetcher = _fetcher(lambda url, params, headers: FakeResponse(200, body))
    client = DetailClient(fetcher, api_url=API_URL)

    with pytest.raises(InvalidShape):
        asyncio.run(client.fetch_public("C-1"))


def test_authenticated_detail_accepts_empty_line_items_and_sends_credential():
    body = {"success": "OK", "payload": {"descripcion": "x", "productos_solicitados": []}}
    session, fetcher = _fetcher(lambda url, params, headers: FakeResponse(200, body))
    client = DetailClient(fetcher, api_url=API_URL, api_key="static-key")

    record = asyncio.run(
        client.fetch_authenticated("C-1", AccessCredential(token="abc", api_key=None))
    )

    assert record.line_items == ()
    headers = session.requests[0]["headers"]
    assert headers["Authorization"] == "Bearer abc"
    assert headers["x-api-key"] == "static-key"


def test_captured_api_key_wins_over_configured_key():
    session, fetcher = _fetcher(lambda url, params, headers: FakeResponse(200, DETAIL_BODY))
    client = DetailClient(fetcher, api_url=API_URL, api_key="static-key")

    asyncio.run(client.fetch_authenticated("C-1", AccessCredential(token="abc", api_key="captured")))

    assert session.requests[0]["headers"]["x-api-key"] == "captured"


@pytest.mark.parametrize("status", [401, 403])
def test_gate_rejection_is_auth_required_in_both_modes(status):
    _, fetcher = _fetcher(lambda url, params, headers: FakeResponse(status))
    client = DetailClient(fetcher, api_url=API_URL)

    with pytest.raises(AuthRequired):
        asyncio.run(client.fetch_public("C-1"))
    with pytest.raises(AuthRequired):
        asyncio.run(client.fetch_authenticated("C-1", AccessCredential(token="t")))


@pytest.mark.parametrize(
    "outcome",
    [
        FakeResponse(500),
        FakeResponse(404),
        asyncio.TimeoutError(),
        aiohttp.ClientConnectionError("refused"),
    ],
)
def test_transient_failures_are_detail_unavailable(outcome):
    _, fetcher = _fetcher(lambda url, params, headers: outcome)
    client = DetailClient(fetcher, api_url=API_URL)

    with pytest.raises(DetailUnavailable):
        asyncio.run(client.fetch_public("C-1"))


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(200, {"payload": DETAIL_BODY["payload"]}),
        FakeResponse(200, {"success": "ERROR", "payload": DETAIL_BODY["payload"]}),
        FakeResponse(200, {"success": "OK"}),
        FakeResponse(200, bad_json=True),
    ],
)
def test_malformed_detail_is_invalid_shape(response):
    _, fetcher = _fetcher(lambda url, params, headers: response)
    client = DetailClient(fetcher, api_url=API_URL)

    with pytest.raises(InvalidShape):
        asyncio.run(client.fetch_authenticated("C-1", AccessCredential(token="t")))
