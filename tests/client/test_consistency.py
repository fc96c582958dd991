"""Tests for the client-side data consistency service."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from productsync.client.api import APIError, ConflictError, ProductClient, ProductRecord
from productsync.client.consistency import DataConsistencyService, snapshot_checksum
from productsync.core.config import ConsistencyOptions
from productsync.core.conflicts import ConflictDescriptor

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def make_record(record_id: str, updated_at: datetime = T0, **fields: Any) -> ProductRecord:
    values: dict[str, Any] = {
        "name": "Widget",
        "description": "A useful widget",
        "price": 10.0,
        "quantity": 5,
        "category": "tools",
    }
    values.update(fields)
    return ProductRecord(
        id=record_id, created_at=T0, updated_at=updated_at, revision=1, **values
    )


@pytest.fixture
def api() -> MagicMock:
    """Mocked ProductClient."""
    return MagicMock(spec=ProductClient)


@pytest.fixture
def service(api: MagicMock) -> DataConsistencyService:
    return DataConsistencyService(api, ConsistencyOptions(retry_delay=0))


class TestSnapshots:
    """Tests for create_snapshot."""

    def test_snapshot_is_deep_copy(self, service: DataConsistencyService) -> None:
        products = [make_record("a", tags=["x"])]
        snapshot = service.create_snapshot(products)

        products[0].tags.append("y")  # type: ignore[union-attr]
        products[0].price = 99.0

        assert snapshot.products[0].tags == ["x"]
        assert snapshot.products[0].price == 10.0
        assert service.last_snapshot is snapshot

    def test_checksum_ignores_order(self) -> None:
        a, b = make_record("a"), make_record("b")
        assert snapshot_checksum([a, b]) == snapshot_checksum([b, a])

    def test_checksum_tracks_updated_at(self) -> None:
        before = snapshot_checksum([make_record("a")])
        after = snapshot_checksum([make_record("a", updated_at=T0 + timedelta(seconds=1))])
        assert before != after


class TestCheckConsistency:
    """Tests for check_consistency."""

    def test_consistent(self, service: DataConsistencyService, api: MagicMock) -> None:
        api.list_products.return_value = [make_record("a")]
        result = service.check_consistency([make_record("a")])
        assert result.is_consistent is True
        assert result.conflicts == []

    def test_server_newer_with_changes(
        self, service: DataConsistencyService, api: MagicMock
    ) -> None:
        """Changed fields on a newer server copy are conflicts; callbacks hear about them."""
        api.list_products.return_value = [
            make_record("a", updated_at=T0 + timedelta(minutes=1), price=12.0)
        ]
        callback = MagicMock()
        service.on_conflict_detected(callback)

        result = service.check_consistency([make_record("a")])

        assert result.is_consistent is False
        assert [(c.field, c.client_value, c.server_value) for c in result.conflicts] == [
            ("price", 10.0, 12.0)
        ]
        callback.assert_called_once_with(result.conflicts)

    def test_client_newer_is_not_conflict(
        self, service: DataConsistencyService, api: MagicMock
    ) -> None:
        api.list_products.return_value = [make_record("a", price=12.0)]
        result = service.check_consistency([make_record("a", updated_at=T0 + timedelta(1))])
        assert result.is_consistent is True

    def test_unknown_server_product_ignored(
        self, service: DataConsistencyService, api: MagicMock
    ) -> None:
        api.list_products.return_value = []
        assert service.check_consistency([make_record("a")]).is_consistent is True

    def test_raising_callback_is_contained(
        self, service: DataConsistencyService, api: MagicMock
    ) -> None:
        api.list_products.return_value = [
            make_record("a", updated_at=T0 + timedelta(minutes=1), price=12.0)
        ]
        later = MagicMock()
        service.on_conflict_detected(MagicMock(side_effect=RuntimeError("boom")))
        service.on_conflict_detected(later)

        service.check_consistency([make_record("a")])

        later.assert_called_once()

    def test_server_errors_propagate(
        self, service: DataConsistencyService, api: MagicMock
    ) -> None:
        api.list_products.side_effect = APIError("down", 503)
        with pytest.raises(APIError):
            service.check_consistency([])


class TestRefreshAndResolve:
    """Tests for refresh_data and resolve_conflicts."""

    def test_refresh_data(self, service: DataConsistencyService, api: MagicMock) -> None:
        products = [make_record("a")]
        api.list_products.return_value = products
        callback = MagicMock()
        service.on_data_refresh(callback)

        assert service.refresh_data() == products

        callback.assert_called_once_with(products)
        assert service.last_snapshot is not None
        assert service.last_snapshot.products == products

    def test_removed_callback_not_called(
        self, service: DataConsistencyService, api: MagicMock
    ) -> None:
        api.list_products.return_value = []
        callback = MagicMock()
        service.on_data_refresh(callback)
        service.remove_refresh_callback(callback)
        service.remove_refresh_callback(callback)

        service.refresh_data()

        callback.assert_not_called()

    def test_resolve_uses_configured_strategy(self, api: MagicMock) -> None:
        """client-wins pushes through the ProductClient."""
        service = DataConsistencyService(api, ConsistencyOptions(strategy="client-wins"))  # type: ignore[arg-type]
        client = [make_record("a", price=10.0)]
        api.update_product.return_value = make_record("a", price=10.0)
        resolved = service.resolve_conflicts(
            [ConflictDescriptor("a", "price", 10.0, 12.0, T0)],
            client,
            [make_record("a", price=12.0)],
        )

        api.update_product.assert_called_once()
        assert resolved[0].price == 10.0


class TestValidation:
    """Tests for validate_product_data."""

    def test_valid_product(self, service: DataConsistencyService) -> None:
        assert service.validate_product_data(make_record("a")) == (True, [])

    def test_invalid_product(self, service: DataConsistencyService) -> None:
        product = make_record(
            "",
            name=" ",
            price=0,
            quantity=-1,
            image_url="not a url",
            cost_price=-5.0,
        )
        product.updated_at = None

        is_valid, errors = service.validate_product_data(product)

        assert is_valid is False
        assert errors == [
            "Product ID is required",
            "Product name is required",
            "Product price must be a positive number",
            "Product quantity must be a non-negative number",
            "Product image URL must be a valid URL",
            "Product cost price must be a non-negative number",
            "Product update timestamp is required",
        ]


class TestOptimisticUpdate:
    """Tests for perform_optimistic_update."""

    def test_success_first_try(self, service: DataConsistencyService) -> None:
        rollback = MagicMock()
        assert service.perform_optimistic_update(lambda: "ok", rollback) == "ok"
        rollback.assert_not_called()

    def test_retries_then_succeeds(self, service: DataConsistencyService) -> None:
        """Each failure rolls back before the retry."""
        operation = MagicMock(side_effect=[APIError("flaky", 503), "ok"])
        rollback = MagicMock()

        assert service.perform_optimistic_update(operation, rollback) == "ok"

        assert operation.call_count == 2
        rollback.assert_called_once()

    def test_gives_up_after_retries(self, service: DataConsistencyService) -> None:
        operation = MagicMock(side_effect=APIError("down", 503))
        rollback = MagicMock()

        with pytest.raises(APIError):
            service.perform_optimistic_update(operation, rollback, retries=2)

        assert operation.call_count == 3
        assert rollback.call_count == 3

    def test_conflict_not_retried(self, service: DataConsistencyService) -> None:
        operation = MagicMock(side_effect=ConflictError("stale", 409))
        rollback = MagicMock()

        with pytest.raises(ConflictError):
            service.perform_optimistic_update(operation, rollback)

        operation.assert_called_once()
        rollback.assert_called_once()

    def test_waits_retry_delay(self, api: MagicMock) -> None:
        service = DataConsistencyService(api, ConsistencyOptions(retry_delay=0.5))
        operation = MagicMock(side_effect=[APIError("flaky", 503), "ok"])

        with patch("productsync.client.consistency.time.sleep") as mock_sleep:
            service.perform_optimistic_update(operation, MagicMock())

        mock_sleep.assert_called_once_with(0.5)


class TestLifecycle:
    """Tests for initialize and cleanup."""

    def test_initialize_without_auto_refresh(self, service: DataConsistencyService) -> None:
        with patch("productsync.client.consistency.ConsistencyPoller") as mock_poller:
            service.initialize()
            mock_poller.assert_not_called()

    def test_initialize_and_cleanup(self, api: MagicMock) -> None:
        service = DataConsistencyService(
            api, ConsistencyOptions(enable_auto_refresh=True, refresh_interval=5)
        )
        callback = MagicMock()
        service.on_data_refresh(callback)

        with patch("productsync.client.consistency.ConsistencyPoller") as mock_poller_class:
            service.initialize()
            mock_poller_class.assert_called_once_with(service.refresh_data, 5)
            mock_poller_class.return_value.start.assert_called_once()

            service.cleanup()
            mock_poller_class.return_value.stop.assert_called_once()

        api.list_products.return_value = []
        service.refresh_data()
        callback.assert_not_called()
