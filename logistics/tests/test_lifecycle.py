"""
Tests for the delivery lifecycle state machine and the status guard.
"""

from itertools import product

from django.test import TestCase

from core.exceptions import InsufficientRole, InvalidTransition
from core.models import User, UserRole
from logistics.lifecycle import DeliveryLifecycle, TRANSITIONS
from logistics.models import ActorRole, Offer, OfferStatus, OfferStatusHistory
from logistics.tests.fixtures import advance, complete, make_courier, make_offer, make_requester


class TestTransitionTable(TestCase):
    """Every (from, to) pair is either in the table or rejected."""

    def setUp(self):
        self.requester = make_requester()
        self.courier = make_courier()

    def test_every_pair_outside_table_is_rejected(self):
        for from_status, to_status in product(OfferStatus.values, repeat=2):
            if (from_status, to_status) in TRANSITIONS:
                continue
            offer = Offer(requester=self.requester, courier=self.courier, status=from_status)
            lifecycle = DeliveryLifecycle(offer)
            for actor in (self.requester, self.courier):
                with self.subTest(edge=(from_status, to_status), actor=actor.role):
                    with self.assertRaises(InvalidTransition):
                        lifecycle.update_status(to_status, actor)
                    self.assertEqual(offer.status, from_status)
                    self.assertEqual(lifecycle.pending_changes, [])

    def test_terminal_statuses_have_no_exit(self):
        for status in (OfferStatus.COMPLETED, OfferStatus.CANCELLED):
            lifecycle = DeliveryLifecycle(Offer(requester=self.requester, status=status))
            self.assertTrue(lifecycle.is_terminal)
            self.assertEqual(lifecycle.valid_next_statuses(), [])

    def test_valid_next_statuses_by_role(self):
        lifecycle = DeliveryLifecycle(Offer(requester=self.requester, status=OfferStatus.OPEN))
        self.assertCountEqual(
            lifecycle.valid_next_statuses(ActorRole.COURIER),
            [OfferStatus.ACCEPTED, OfferStatus.CANCELLED]
        )
        self.assertEqual(lifecycle.valid_next_statuses(ActorRole.REQUESTER), [OfferStatus.CANCELLED])


class TestDeliveryLifecycle(TestCase):

    def setUp(self):
        self.requester = make_requester()
        self.courier = make_courier()
        self.other_courier = make_courier(phone='+15552000002')
        self.offer = make_offer(self.requester)

    # ==========================================
    # Happy path
    # ==========================================

    def test_accept_assigns_courier(self):
        lifecycle = DeliveryLifecycle(self.offer)
        change = lifecycle.update_status(OfferStatus.ACCEPTED, self.courier)

        self.assertEqual(change.previous_status, OfferStatus.OPEN)
        self.assertEqual(change.actor_role, ActorRole.COURIER)
        self.assertEqual(self.offer.courier, self.courier)
        self.assertIsNotNone(self.offer.accepted_at)

    def test_full_path_writes_history(self):
        advance(self.offer, self.courier)
        complete(self.offer, self.requester)

        self.offer.refresh_from_db()
        self.assertEqual(self.offer.status, OfferStatus.COMPLETED)
        self.assertIsNotNone(self.offer.completed_at)

        history = list(self.offer.status_history.all())
        self.assertEqual(
            [(h.previous_status, h.status) for h in history],
            [
                ('open', 'accepted'),
                ('accepted', 'picked_up'),
                ('picked_up', 'in_transit'),
                ('in_transit', 'delivered'),
                ('delivered', 'completed'),
            ]
        )
        self.assertEqual(history[-1].actor, self.requester)
        self.assertEqual(history[-1].actor_role, ActorRole.REQUESTER)

    def test_update_without_save_is_not_persisted(self):
        lifecycle = DeliveryLifecycle(self.offer)
        lifecycle.update_status(OfferStatus.ACCEPTED, self.courier)
        self.assertEqual(len(lifecycle.pending_changes), 1)

        stored = Offer.objects.get(pk=self.offer.pk)
        self.assertEqual(stored.status, OfferStatus.OPEN)
        self.assertFalse(OfferStatusHistory.objects.exists())

    def test_save_clears_pending(self):
        lifecycle = DeliveryLifecycle(self.offer)
        lifecycle.update_status(OfferStatus.ACCEPTED, self.courier)
        lifecycle.save()
        self.assertEqual(lifecycle.pending_changes, [])

    def test_coordinates_and_notes_recorded(self):
        lifecycle = DeliveryLifecycle(self.offer)
        lifecycle.update_status(OfferStatus.ACCEPTED, self.courier, notes='On my way', coordinates=[-73.99, 40.75])
        lifecycle.save()

        entry = self.offer.status_history.get()
        self.assertEqual(entry.notes, 'On my way')
        self.assertEqual(entry.coordinates, [-73.99, 40.75])

    def test_requester_cancels_open_offer(self):
        lifecycle = DeliveryLifecycle(self.offer)
        lifecycle.update_status(OfferStatus.CANCELLED, self.requester)
        lifecycle.save()
        self.offer.refresh_from_db()
        self.assertEqual(self.offer.status, OfferStatus.CANCELLED)
        self.assertIsNotNone(self.offer.cancelled_at)

    def test_assigned_courier_cancels_accepted_offer(self):
        advance(self.offer, self.courier, until=OfferStatus.ACCEPTED)
        lifecycle = DeliveryLifecycle(self.offer)
        lifecycle.update_status(OfferStatus.CANCELLED, self.courier)
        lifecycle.save()
        self.assertEqual(Offer.objects.get(pk=self.offer.pk).status, OfferStatus.CANCELLED)

    # ==========================================
    # Role checks
    # ==========================================

    def test_requester_cannot_accept(self):
        with self.assertRaises(InsufficientRole):
            DeliveryLifecycle(self.offer).update_status(OfferStatus.ACCEPTED, self.requester)
        self.assertEqual(self.offer.status, OfferStatus.OPEN)

    def test_courier_cannot_complete(self):
        advance(self.offer, self.courier)
        with self.assertRaises(InsufficientRole):
            DeliveryLifecycle(self.offer).update_status(OfferStatus.COMPLETED, self.courier)

    def test_other_courier_cannot_progress(self):
        advance(self.offer, self.courier, until=OfferStatus.ACCEPTED)
        with self.assertRaises(InsufficientRole):
            DeliveryLifecycle(self.offer).update_status(OfferStatus.PICKED_UP, self.other_courier)
        self.assertEqual(self.offer.status, OfferStatus.ACCEPTED)

    def test_other_courier_cannot_cancel(self):
        advance(self.offer, self.courier, until=OfferStatus.ACCEPTED)
        with self.assertRaises(InsufficientRole):
            DeliveryLifecycle(self.offer).update_status(OfferStatus.CANCELLED, self.other_courier)

    def test_unrelated_requester_has_no_role(self):
        stranger = make_requester(phone='+15551000002')
        with self.assertRaises(InsufficientRole):
            DeliveryLifecycle(self.offer).update_status(OfferStatus.CANCELLED, stranger)

    def test_admin_has_no_role(self):
        admin = User.objects.create_user(phone_number='+15559000001', role=UserRole.ADMIN)
        with self.assertRaises(InsufficientRole):
            DeliveryLifecycle(self.offer).update_status(OfferStatus.CANCELLED, admin)

    def test_invalid_transition_checked_before_role(self):
        with self.assertRaises(InvalidTransition):
            DeliveryLifecycle(self.offer).update_status(OfferStatus.DELIVERED, self.requester)

    def test_status_info(self):
        advance(self.offer, self.courier, until=OfferStatus.ACCEPTED)
        info = DeliveryLifecycle(self.offer).status_info()
        self.assertEqual(info['status'], OfferStatus.ACCEPTED)
        self.assertFalse(info['is_terminal'])
        self.assertEqual(info['courier_id'], self.courier.pk)
        self.assertIsNotNone(info['timestamps'][OfferStatus.ACCEPTED])
        self.assertIsNone(info['timestamps'][OfferStatus.DELIVERED])


class TestStatusGuard(TestCase):
    """Status writes outside the lifecycle are rejected."""

    def setUp(self):
        self.requester = make_requester()
        self.courier = make_courier()

    def test_offer_must_be_created_open(self):
        with self.assertRaises(InvalidTransition):
            make_offer(self.requester, status=OfferStatus.COMPLETED)
        self.assertFalse(Offer.objects.exists())

    def test_direct_status_write_rejected(self):
        offer = make_offer(self.requester)
        offer.status = OfferStatus.COMPLETED
        with self.assertRaises(InvalidTransition):
            offer.save()
        self.assertEqual(Offer.objects.get(pk=offer.pk).status, OfferStatus.OPEN)

    def test_other_fields_can_be_saved(self):
        offer = make_offer(self.requester)
        offer.title = 'Renamed'
        offer.save()
        self.assertEqual(Offer.objects.get(pk=offer.pk).title, 'Renamed')

    def test_authorization_is_consumed_by_save(self):
        offer = make_offer(self.requester)
        advance(offer, self.courier, until=OfferStatus.ACCEPTED)
        offer.status = OfferStatus.DELIVERED
        with self.assertRaises(InvalidTransition):
            offer.save()
