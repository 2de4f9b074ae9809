from decimal import Decimal
from unittest.mock import patch

from django.test import SimpleTestCase, TestCase

from .models import Order
from .services import OrderStatusConflict, OrderStatusService
from .status import (
    PAYMENT,
    RECORD_TRACKING,
    SET_STATUS,
    SHIPMENT,
    TERMINAL_STATES,
    ProviderEvent,
    is_known_shipment_status,
    transition,
)


class OrderStatusTransitionTests(SimpleTestCase):
    def test_payment_success_moves_pending_to_paid(self):
        for status in ("PAID", "SETTLED"):
            result = transition("pending", ProviderEvent(PAYMENT, status))
            self.assertEqual(result.status, "paid")
            self.assertTrue(result.changed)
            self.assertEqual(result.effects[0].kind, SET_STATUS)

    def test_payment_failure_cancels_pending_order(self):
        for status in ("EXPIRED", "FAILED"):
            result = transition("pending", ProviderEvent(PAYMENT, status))
            self.assertEqual(result.status, "cancelled")

    def test_payment_failure_does_not_cancel_paid_order(self):
        result = transition("paid", ProviderEvent(PAYMENT, "EXPIRED"))
        self.assertEqual(result.status, "paid")
        self.assertFalse(result.changed)
        self.assertEqual(result.writes(), {})

    def test_pending_payment_status_is_a_no_op(self):
        result = transition("pending", ProviderEvent(PAYMENT, "PENDING"))
        self.assertEqual(result.status, "pending")
        self.assertEqual(result.effects, ())

    def test_late_payment_does_not_move_shipped_order_backwards(self):
        result = transition("shipped", ProviderEvent(PAYMENT, "PAID"))
        self.assertEqual(result.status, "shipped")

    def test_shipment_status_mapping(self):
        self.assertEqual(transition("paid", ProviderEvent(SHIPMENT, "DELIVERED")).status, "completed")
        self.assertEqual(transition("paid", ProviderEvent(SHIPMENT, "CANCELLED")).status, "cancelled")
        self.assertEqual(transition("paid", ProviderEvent(SHIPMENT, "IN_TRANSIT")).status, "shipped")
        self.assertEqual(transition("shipped", ProviderEvent(SHIPMENT, "CANCELLED")).status, "cancelled")

    def test_unknown_shipment_status_counts_as_shipped(self):
        self.assertFalse(is_known_shipment_status("TELEPORTED"))
        self.assertEqual(transition("paid", ProviderEvent(SHIPMENT, "TELEPORTED")).status, "shipped")

    def test_shipment_event_always_records_tracking(self):
        result = transition("paid", ProviderEvent(SHIPMENT, "PICKED_UP", courier="JNE", tracking_number="AWB1"))
        kinds = [effect.kind for effect in result.effects]
        self.assertEqual(kinds, [SET_STATUS, RECORD_TRACKING])
        self.assertEqual(
            result.writes(),
            {"status": "shipped", "shipping_courier": "JNE", "tracking_number": "AWB1"},
        )

    def test_terminal_states_are_never_left(self):
        events = [
            ProviderEvent(PAYMENT, "PAID"),
            ProviderEvent(PAYMENT, "SETTLED"),
            ProviderEvent(PAYMENT, "EXPIRED"),
            ProviderEvent(PAYMENT, "FAILED"),
            ProviderEvent(SHIPMENT, "CREATED"),
            ProviderEvent(SHIPMENT, "IN_TRANSIT"),
            ProviderEvent(SHIPMENT, "DELIVERED"),
            ProviderEvent(SHIPMENT, "CANCELLED"),
            ProviderEvent(SHIPMENT, "SOMETHING_NEW"),
        ]
        for state in TERMINAL_STATES:
            for event in events:
                result = transition(state, event)
                self.assertEqual(result.status, state, f"{state} left via {event}")
                self.assertNotIn("status", result.writes())


class OrderStatusServiceTests(TestCase):
    def setUp(self):
        self.order = Order.objects.create(id="42", total_amount=Decimal("100000.00"))

    def test_apply_persists_new_status(self):
        result = OrderStatusService.apply("42", ProviderEvent(PAYMENT, "PAID"))
        self.order.refresh_from_db()
        self.assertEqual(result.status, "paid")
        self.assertEqual(self.order.status, Order.Status.PAID)

    def test_apply_writes_tracking_fields_for_shipments(self):
        OrderStatusService.apply("42", ProviderEvent(SHIPMENT, "DELIVERED", courier="JNE", tracking_number="AWB123"))
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.COMPLETED)
        self.assertEqual(self.order.shipping_courier, "JNE")
        self.assertEqual(self.order.tracking_number, "AWB123")

    def test_apply_keeps_completed_order_completed(self):
        self.order.status = Order.Status.COMPLETED
        self.order.save(update_fields=["status", "updated_at"])

        OrderStatusService.apply("42", ProviderEvent(PAYMENT, "EXPIRED"))
        OrderStatusService.apply("42", ProviderEvent(SHIPMENT, "CANCELLED"))

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.COMPLETED)

    def test_apply_returns_none_for_unknown_order(self):
        self.assertIsNone(OrderStatusService.apply("missing", ProviderEvent(PAYMENT, "PAID")))

    def test_apply_rereads_when_status_changes_concurrently(self):
        real_transition = transition
        calls = []

        def cancel_then_transition(current, event):
            # The storefront cancels the order between our read and our write.
            if not calls:
                Order.objects.filter(id="42").update(status=Order.Status.CANCELLED)
            calls.append(current)
            return real_transition(current, event)

        with patch("order.services.transition", side_effect=cancel_then_transition):
            result = OrderStatusService.apply("42", ProviderEvent(PAYMENT, "PAID"))

        self.order.refresh_from_db()
        self.assertEqual(calls, ["pending", "cancelled"])
        self.assertEqual(result.status, "cancelled")
        self.assertEqual(self.order.status, Order.Status.CANCELLED)

    def test_apply_gives_up_after_repeated_conflicts(self):
        with patch("order.services.Order.objects.filter") as mock_filter:
            mock_filter.return_value.values_list.return_value.first.return_value = "pending"
            mock_filter.return_value.update.return_value = 0
            with self.assertRaises(OrderStatusConflict):
                OrderStatusService.apply("42", ProviderEvent(PAYMENT, "PAID"))
