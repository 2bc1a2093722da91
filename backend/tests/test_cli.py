from stockroom.extensions import db
from stockroom.models import Product, StockMovement


def test_seed_demo_is_idempotent_and_ledger_verifies(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "seed-demo"])
    second = runner.invoke(args=["system", "seed-demo"])

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert "SKIP Product exists: WID-001" in second.output
    assert db.session.query(Product).count() == 4
    # SPR-001 starts at zero and writes no movement
    assert db.session.query(StockMovement).count() == 3

    verify = runner.invoke(args=["ledger", "verify"])
    assert verify.exit_code == 0, verify.output
    assert "4 product ledger(s) reconcile" in verify.output


def test_ledger_verify_unknown_product(app, db_session):
    result = app.test_cli_runner().invoke(args=["ledger", "verify", "--product-id", "999"])

    assert result.exit_code != 0
    assert "Product with ID 999 not found" in result.output
