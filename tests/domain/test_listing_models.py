from agilwatch.domain.models import (
    AccessCredential,
    BatchCursor,
    CircuitState,
    DetailRecord,
    EnrichedRecord,
    ListingFilter,
    ListingRecord,
)


def test_listing_record_from_payload_applies_defaults():
    record = ListingRecord.from_payload(
        {
            "codigo": " 1234-56-COT24 ",
            "nombre": "Compra de resmas",
            "organismo": "",
            "monto_disponible_CLP": None,
            "fecha_publicacion": "2024-03-01",
            "fecha_cierre": "2024-03-08",
            "estado": "Publicada",
        }
    )

    assert record is not None
    assert record.code == "1234-56-COT24"
    assert record.title == "Compra de resmas"
    assert record.organism == "No especificado"
    assert record.amount == 0.0
    assert record.close_date == "2024-03-08"
    assert record.url == "https://buscador.mercadopublico.cl/ficha?code=1234-56-COT24"


def test_listing_record_without_code_is_rejected():
    assert ListingRecord.from_payload({"nombre": "Sin código"}) is None
    assert ListingRecord.from_payload({"codigo": "   "}) is None


def test_listing_record_parses_numeric_amount_strings():
    record = ListingRecord.from_payload({"codigo": "C1", "monto_disponible_CLP": "150000"})
    assert record.amount == 150000.0


def test_listing_filter_params_follow_page():
    listing_filter = ListingFilter(date_from="2024-03-01", date_to="2024-03-31")

    params = listing_filter.for_page(7).to_params()

    assert params == {
        "date_from": "2024-03-01",
        "date_to": "2024-03-31",
        "order_by": "recent",
        "status": "2",
        "page_number": "7",
    }
    assert listing_filter.page_number == 1


def test_detail_record_keeps_line_item_order_and_skips_garbage():
    detail = DetailRecord.from_payload(
        {
            "descripcion": "Resmas tamaño carta",
            "plazo_entrega": "5 días",
            "direccion_entrega": "Av. Siempre Viva 123",
            "productos_solicitados": [
                {"nombre": "Resma carta", "cantidad": "10"},
                "not-a-product",
                {"nombre": "Resma oficio", "descripcion": "75g", "cantidad": 5},
            ],
        }
    )

    assert [item.name for item in detail.line_items] == ["Resma carta", "Resma oficio"]
    assert detail.line_items[0].quantity == 10.0
    assert detail.line_items[1].to_dict() == {
        "name": "Resma oficio",
        "description": "75g",
        "quantity": 5.0,
    }


def test_detail_record_tolerates_missing_line_items():
    assert DetailRecord.from_payload({"descripcion": "x"}).line_items == ()
    assert DetailRecord.from_payload({"productos_solicitados": None}).line_items == ()


def test_enriched_record_bare_has_no_detail():
    record = EnrichedRecord.bare(ListingRecord(code="C1"))
    assert record.code == "C1"
    assert not record.is_enriched
    assert record.detail_source is None


def test_circuit_state_trust():
    assert CircuitState.CLOSED.trusts_public
    assert not CircuitState.OPEN.trusts_public


def test_credential_repr_hides_token():
    credential = AccessCredential(token="supersecrettoken", api_key="k")
    assert "supersecrettoken" not in repr(credential)
    assert credential.authorization_header == "Bearer supersecrettoken"


def test_cursor_window_and_advance():
    cursor = BatchCursor(20)

    assert cursor.start_page == 21
    assert cursor.window_end(20, 45) == 40
    assert cursor.advance(40, 45) == BatchCursor(40)


def test_cursor_wraps_at_last_page():
    cursor = BatchCursor(40)

    end_page = cursor.window_end(20, 45)

    assert end_page == 45
    assert cursor.advance(end_page, 45) == BatchCursor(0)
    assert cursor.advance(end_page, 45).start_page == 1


def test_cursor_state_round_trip_and_bad_values():
    assert BatchCursor.from_state(BatchCursor(12).to_state()) == BatchCursor(12)
    assert BatchCursor.from_state(None) == BatchCursor(0)
    assert BatchCursor.from_state({"last_processed_page": "nope"}) == BatchCursor(0)
    assert BatchCursor.from_state({"last_processed_page": -3}) == BatchCursor(0)
