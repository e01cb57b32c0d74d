from app.stockroom.db.models import IdempotencyRecord
from app.stockroom.services.idempotency import IdempotencyService
from tests.stock_helpers import create_product, current_stock, movement_count, post_movement


def test_replay_returns_stored_response_without_new_movement(client, db_session):
    product = create_product(client, stock=5)
    headers = {"Idempotency-Key": "move-1"}

    first = post_movement(client, product["id"], "in", quantity=2, headers=headers)
    second = post_movement(client, product["id"], "in", quantity=2, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"
    assert second.json() == first.json()
    assert current_stock(db_session, product["id"]) == 7
    assert movement_count(db_session, product["id"], "in") == 1


def test_same_key_with_different_payload_is_conflict(client, db_session):
    product = create_product(client, stock=5)
    headers = {"Idempotency-Key": "move-2"}

    assert post_movement(client, product["id"], "in", quantity=2, headers=headers).status_code == 201
    response = post_movement(client, product["id"], "in", quantity=3, headers=headers)

    assert response.status_code == 409
    assert response.json()["code"] == "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD"
    assert current_stock(db_session, product["id"]) == 7


def test_failed_movement_is_replayed_as_failure(client, db_session):
    product = create_product(client, stock=1)
    headers = {"Idempotency-Key": "move-3"}

    first = post_movement(client, product["id"], "out", quantity=4, headers=headers)
    assert first.status_code == 422

    client.post("/stock-movements", json={"product_id": product["id"], "type": "in", "quantity": 10})
    second = post_movement(client, product["id"], "out", quantity=4, headers=headers)

    assert second.status_code == 422
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"
    assert second.json()["code"] == "INSUFFICIENT_STOCK"
    assert movement_count(db_session, product["id"], "out") == 0

    record = db_session.query(IdempotencyRecord).filter(IdempotencyRecord.idempotency_key == "move-3").one()
    assert record.state == "failed"
    assert record.status_code == 422


def test_in_progress_key_blocks_duplicate_movement(client, db_session):
    product = create_product(client, stock=5)
    payload = {"product_id": product["id"], "type": "out", "quantity": 1}
    body = {"product_id": product["id"], "type": "out", "quantity": 1, "new_stock": None, "notes": None}
    db_session.add(
        IdempotencyRecord(
            endpoint="/stock-movements",
            method="POST",
            idempotency_key="move-4",
            request_hash=IdempotencyService.fingerprint(body),
            state="in_progress",
        )
    )
    db_session.commit()

    response = client.post("/stock-movements", json=payload, headers={"Idempotency-Key": "move-4"})

    assert response.status_code == 409
    assert response.json()["code"] == "IDEMPOTENCY_REQUEST_IN_PROGRESS"
    assert current_stock(db_session, product["id"]) == 5


def test_requests_without_key_are_not_deduplicated(client, db_session):
    product = create_product(client, stock=0)

    post_movement(client, product["id"], "in", quantity=1)
    post_movement(client, product["id"], "in", quantity=1)

    assert current_stock(db_session, product["id"]) == 2
    assert movement_count(db_session, product["id"], "in") == 2
    assert db_session.query(IdempotencyRecord).count() == 0
