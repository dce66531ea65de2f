"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  PharmIA - Order Workflow (Direct Python Tests)                              ║
║                                                                              ║
║  1. Checkout: prix, timbre, rejet global                                     ║
║  2. Raccourci de confirmation (ADMIN, total nul)                             ║
║  3. Preuve de paiement + fan-out par thème                                   ║
║  4. Confirmation idempotente, crédits accordés une fois                      ║
║  5. Inscrit CONFIRMED jamais rétrogradé                                      ║
║  6. Réconciliation d'une exécution incomplète                                ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import pytest

from pharmia.config import new_id, now_iso
from pharmia.models.order import CheckoutItem
from pharmia.services import orders as order_service
from pharmia.services.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError

from tests.helpers import (
    _db_op,
    attendee_of,
    fetch,
    insert_master_class,
    insert_user,
    insert_webinar,
)


def webinar_item(webinar, slots=()):
    return CheckoutItem(webinar_id=webinar["id"], slots=list(slots))


def pack_item(pack_id):
    return CheckoutItem(pack_id=pack_id)


def checkout(db, user, items):
    return _db_op(order_service.create_order(db, user, items))


class TestCheckout:

    def test_master_class_total_with_stamp(self, db):
        """priceHT 100 + TVA 19% + timbre 1.000 = 120.000"""
        user = insert_user(db, "PHARMACIEN")
        webinar = insert_webinar(db, group="Master Class", price=100)

        order = checkout(db, user, [webinar_item(webinar)])["order"]
        assert order["total_amount"] == 120.0
        assert order["stamp_duty"] == 1.0
        assert order["tax_applicable"] is True
        assert order["status"] == "PENDING_PAYMENT"
        assert order["items"][0]["price"] == 119.0
        print(f"✅ Total Master Class: {order['total_amount']}")

    def test_crop_tunis_flat_price_no_stamp(self, db):
        user = insert_user(db, "PHARMACIEN")
        webinar = insert_webinar(db, group="CROP Tunis", price=80)

        order = checkout(db, user, [webinar_item(webinar, ["MORNING"])])["order"]
        assert order["total_amount"] == 80.0
        assert order["stamp_duty"] == 0
        assert order["tax_applicable"] is False
        assert order["items"][0]["slots"] == ["MORNING"]
        print("✅ CROP Tunis: 80.000 sans timbre")

    def test_single_stamp_for_many_taxed_items(self, db):
        user = insert_user(db, "APPRENANT")
        webinar = insert_webinar(db, group="PharmIA")

        order = checkout(db, user, [webinar_item(webinar), pack_item("PHARMIA_PACK_5"), pack_item("MC_UNIT")])["order"]
        # 59.5 + 47.6 + 119 + 1 timbre
        assert order["total_amount"] == 227.1
        assert order["stamp_duty"] == 1.0
        print(f"✅ Un seul timbre pour {len(order['items'])} articles")

    def test_unknown_pack_rejects_whole_cart(self, db):
        user = insert_user(db, "PHARMACIEN")
        webinar = insert_webinar(db)

        with pytest.raises(BadRequestError):
            checkout(db, user, [webinar_item(webinar), pack_item("PACK_INCONNU")])
        assert _db_op(db.orders.count_documents({})) == 0
        print("✅ Pack inconnu: aucune commande créée")

    def test_missing_webinar_rejects_whole_cart(self, db):
        user = insert_user(db, "PHARMACIEN")
        webinar = insert_webinar(db)

        with pytest.raises(NotFoundError):
            checkout(db, user, [webinar_item(webinar), CheckoutItem(webinar_id=new_id())])
        assert _db_op(db.orders.count_documents({})) == 0
        print("✅ Webinaire manquant: 404 et aucune commande")

    def test_malformed_webinar_id(self, db):
        user = insert_user(db, "PHARMACIEN")
        with pytest.raises(BadRequestError):
            checkout(db, user, [CheckoutItem(webinar_id="xyz")])
        print("✅ ID de webinaire mal formé -> 400")

    def test_empty_cart(self, db):
        user = insert_user(db, "PHARMACIEN")
        with pytest.raises(BadRequestError):
            checkout(db, user, [])
        print("✅ Panier vide -> 400")

    def test_item_must_reference_exactly_one_target(self):
        with pytest.raises(ValueError):
            CheckoutItem()
        with pytest.raises(ValueError):
            CheckoutItem(webinar_id=new_id(), pack_id="MC_UNIT")
        print("✅ Article sans référence ou doublement référencé refusé")


class TestAutoConfirm:

    def test_admin_checkout_confirmed_with_effects(self, db):
        """ADMIN: CONFIRMED immédiat, fan-out et crédits appliqués avant la réponse"""
        admin = insert_user(db, "ADMIN")
        sessions = insert_master_class(db, sessions=3)

        result = checkout(db, admin, [webinar_item(sessions[0]), pack_item("MC_PACK_3")])
        order = result["order"]

        assert order["status"] == "CONFIRMED"
        assert result["fulfillment"]["credits"] == {"master_class_credits": 3}
        assert fetch(db, "users", admin["id"])["master_class_credits"] == 3
        for session in sessions:
            attendee = attendee_of(fetch(db, "webinars", session["id"]), admin["id"])
            assert attendee["status"] == "CONFIRMED"
            assert attendee["proof_url"] == order_service.ADMIN_CONFIRMED_PROOF
        assert fetch(db, "orders", order["id"])["fulfilled_at"]
        print("✅ Checkout ADMIN confirmé et exécuté")

    def test_zero_total_auto_confirmed(self, db):
        user = insert_user(db, "APPRENANT")
        webinar = insert_webinar(db, group="CROP Tunis", price=0)

        order = checkout(db, user, [webinar_item(webinar)])["order"]
        assert order["total_amount"] == 0
        assert order["status"] == "CONFIRMED"
        assert attendee_of(fetch(db, "webinars", webinar["id"]), user["id"])["status"] == "CONFIRMED"
        print("✅ Total nul -> confirmation immédiate")

    def test_admin_webinar_not_auto_confirmed(self, db):
        user = insert_user(db, "ADMIN_WEBINAR")
        webinar = insert_webinar(db)
        assert checkout(db, user, [webinar_item(webinar)])["order"]["status"] == "PENDING_PAYMENT"
        print("✅ ADMIN_WEBINAR: pas de raccourci")


class TestSubmitPayment:

    def test_theme_fan_out_to_all_sessions(self, db):
        """Une session achetée -> inscription PAYMENT_SUBMITTED sur les 5 sessions du thème"""
        user = insert_user(db, "PHARMACIEN")
        sessions = insert_master_class(db, theme="MC-DERMO", sessions=5)
        other = insert_webinar(db, group="Master Class", master_class_theme="MC-AUTRE")

        order = checkout(db, user, [webinar_item(sessions[2])])["order"]
        result = _db_op(order_service.submit_payment(db, user, order["id"], "https://files/preuve.pdf"))

        assert result["order"]["status"] == "PAYMENT_SUBMITTED"
        assert len(result["registrations"]["registered"]) == 5
        for session in sessions:
            attendee = attendee_of(fetch(db, "webinars", session["id"]), user["id"])
            assert attendee["status"] == "PAYMENT_SUBMITTED"
            assert attendee["proof_url"] == "https://files/preuve.pdf"
        assert attendee_of(fetch(db, "webinars", other["id"]), user["id"]) is None
        print("✅ Fan-out sur les 5 sessions du thème")

    def test_large_theme_fully_expanded(self, db):
        """Aucun plafond sur le nombre de sessions d'un thème"""
        sessions = insert_master_class(db, theme="MC-LONG", sessions=120)
        expanded = _db_op(order_service.expand_theme(db, sessions[0]["id"]))
        assert sorted(expanded) == sorted(s["id"] for s in sessions)
        print(f"✅ Thème de {len(expanded)} sessions entièrement développé")

    def test_existing_pending_attendee_updated_in_place(self, db):
        user = insert_user(db, "PHARMACIEN")
        webinar = insert_webinar(db, attendees=[{
            "user_id": user["id"], "status": "PENDING", "proof_url": None, "time_slots": [],
        }])

        order = checkout(db, user, [webinar_item(webinar, ["EVENING"])])["order"]
        result = _db_op(order_service.submit_payment(db, user, order["id"], "https://files/p.png"))

        attendees = fetch(db, "webinars", webinar["id"])["attendees"]
        assert len(attendees) == 1
        assert attendees[0]["status"] == "PAYMENT_SUBMITTED"
        assert attendees[0]["time_slots"] == ["EVENING"]
        assert result["registrations"]["updated"] == [webinar["id"]]
        print("✅ Inscription existante mise à jour sur place")

    def test_non_owner_forbidden(self, db):
        owner = insert_user(db, "PHARMACIEN")
        other = insert_user(db, "PHARMACIEN")
        order = checkout(db, owner, [webinar_item(insert_webinar(db))])["order"]

        with pytest.raises(ForbiddenError):
            _db_op(order_service.submit_payment(db, other, order["id"], "https://files/p.png"))
        print("✅ Non propriétaire -> 403")

    def test_second_submission_conflict(self, db):
        user = insert_user(db, "PHARMACIEN")
        order = checkout(db, user, [webinar_item(insert_webinar(db))])["order"]
        _db_op(order_service.submit_payment(db, user, order["id"], "https://files/1.png"))

        with pytest.raises(ConflictError):
            _db_op(order_service.submit_payment(db, user, order["id"], "https://files/2.png"))
        print("✅ Deuxième soumission -> 409")

    def test_missing_order(self, db):
        user = insert_user(db, "PHARMACIEN")
        with pytest.raises(NotFoundError):
            _db_op(order_service.submit_payment(db, user, new_id(), "https://files/p.png"))
        with pytest.raises(BadRequestError):
            _db_op(order_service.submit_payment(db, user, "pas-un-id", "https://files/p.png"))
        print("✅ Commande inexistante 404, ID mal formé 400")


class TestConfirm:

    def test_confirm_twice_grants_credits_once(self, db):
        user = insert_user(db, "PHARMACIEN")
        admin = insert_user(db, "ADMIN_WEBINAR")
        order = checkout(db, user, [pack_item("MC_PACK_3"), pack_item("PHARMIA_PACK_10")])["order"]
        _db_op(order_service.submit_payment(db, user, order["id"], "https://files/p.png"))

        result = _db_op(order_service.confirm_order(db, order["id"], actor=admin))
        assert result["order"]["status"] == "CONFIRMED"

        with pytest.raises(ConflictError):
            _db_op(order_service.confirm_order(db, order["id"], actor=admin))

        stored = fetch(db, "users", user["id"])
        assert stored["master_class_credits"] == 3
        assert stored["pharmia_credits"] == 10
        print("✅ Deuxième confirmation 409, crédits accordés une seule fois")

    def test_credits_accumulate_across_orders(self, db):
        user = insert_user(db, "PHARMACIEN", master_class_credits=2)
        admin = insert_user(db, "ADMIN")
        for _ in range(2):
            order = checkout(db, user, [pack_item("MC_PACK_3")])["order"]
            _db_op(order_service.confirm_order(db, order["id"], actor=admin))

        assert fetch(db, "users", user["id"])["master_class_credits"] == 8
        print("✅ Crédits cumulés (2 + 3 + 3)")

    def test_confirm_from_pending_inserts_confirmed_attendees(self, db):
        user = insert_user(db, "PHARMACIEN")
        admin = insert_user(db, "ADMIN")
        sessions = insert_master_class(db, sessions=2)
        order = checkout(db, user, [webinar_item(sessions[0])])["order"]

        _db_op(order_service.confirm_order(db, order["id"], actor=admin))
        for session in sessions:
            attendee = attendee_of(fetch(db, "webinars", session["id"]), user["id"])
            assert attendee["status"] == "CONFIRMED"
            assert attendee["proof_url"] == order_service.ADMIN_CONFIRMED_PROOF
        print("✅ Confirmation directe: inscrits CONFIRMED avec preuve admin")

    def test_confirm_upgrades_and_keeps_proof(self, db):
        user = insert_user(db, "PHARMACIEN")
        admin = insert_user(db, "ADMIN")
        webinar = insert_webinar(db, group="PharmIA")
        order = checkout(db, user, [webinar_item(webinar, ["PHARMIA_TUESDAY"])])["order"]
        _db_op(order_service.submit_payment(db, user, order["id"], "https://files/virement.pdf"))

        _db_op(order_service.confirm_order(db, order["id"], actor=admin))
        attendees = fetch(db, "webinars", webinar["id"])["attendees"]
        assert len(attendees) == 1
        assert attendees[0]["status"] == "CONFIRMED"
        assert attendees[0]["proof_url"] == "https://files/virement.pdf"
        print("✅ PAYMENT_SUBMITTED -> CONFIRMED, preuve conservée")

    def test_session_added_after_submit_gets_admin_proof(self, db):
        """Session ajoutée au thème après la preuve: créée CONFIRMED avec le marqueur admin"""
        user = insert_user(db, "PHARMACIEN")
        admin = insert_user(db, "ADMIN_WEBINAR")
        sessions = insert_master_class(db, theme="MC-AJOUT", sessions=2)
        order = checkout(db, user, [webinar_item(sessions[0])])["order"]
        _db_op(order_service.submit_payment(db, user, order["id"], "https://files/virement.pdf"))

        late_session = insert_webinar(db, group="Master Class", master_class_theme="MC-AJOUT", days_ahead=30)
        result = _db_op(order_service.confirm_order(db, order["id"], actor=admin))
        assert result["fulfillment"]["registrations"]["registered"] == [late_session["id"]]

        added = attendee_of(fetch(db, "webinars", late_session["id"]), user["id"])
        assert added["status"] == "CONFIRMED"
        assert added["proof_url"] == order_service.ADMIN_CONFIRMED_PROOF

        for session in sessions:
            attendee = attendee_of(fetch(db, "webinars", session["id"]), user["id"])
            assert attendee["status"] == "CONFIRMED"
            assert attendee["proof_url"] == "https://files/virement.pdf"
        print("✅ Nouvelle session: marqueur admin, sessions existantes: preuve conservée")

    def test_confirmed_attendee_never_downgraded(self, db):
        """Déjà CONFIRMED sur un webinaire: une nouvelle commande ne le rétrograde pas"""
        user = insert_user(db, "PHARMACIEN")
        admin = insert_user(db, "ADMIN")
        webinar = insert_webinar(db, attendees=[{
            "user_id": user["id"], "status": "CONFIRMED", "proof_url": "https://files/ancien.pdf",
            "registered_at": now_iso(), "time_slots": ["MORNING"],
        }])

        order = checkout(db, user, [webinar_item(webinar, ["AFTERNOON"])])["order"]
        submitted = _db_op(order_service.submit_payment(db, user, order["id"], "https://files/nouveau.pdf"))
        assert submitted["registrations"]["unchanged"] == [webinar["id"]]

        attendee = attendee_of(fetch(db, "webinars", webinar["id"]), user["id"])
        assert attendee["status"] == "CONFIRMED"
        assert attendee["proof_url"] == "https://files/ancien.pdf"

        confirmed = _db_op(order_service.confirm_order(db, order["id"], actor=admin))
        assert confirmed["fulfillment"]["registrations"]["unchanged"] == [webinar["id"]]
        attendees = fetch(db, "webinars", webinar["id"])["attendees"]
        assert len(attendees) == 1
        assert attendees[0]["status"] == "CONFIRMED"
        print("✅ Inscrit CONFIRMED jamais rétrogradé")


class TestReadAccess:

    def test_owner_and_order_admin_can_read(self, db):
        owner = insert_user(db, "PHARMACIEN")
        admin_webinar = insert_user(db, "ADMIN_WEBINAR")
        stranger = insert_user(db, "PHARMACIEN")
        order = checkout(db, owner, [webinar_item(insert_webinar(db))])["order"]

        assert _db_op(order_service.get_order_for(db, owner, order["id"]))["id"] == order["id"]
        assert _db_op(order_service.get_order_for(db, admin_webinar, order["id"]))["id"] == order["id"]
        with pytest.raises(ForbiddenError):
            _db_op(order_service.get_order_for(db, stranger, order["id"]))
        print("✅ Lecture: propriétaire et admin uniquement")


class TestReconcile:

    def _confirmed_without_effects(self, db, user, webinar_id, **fields):
        """Commande CONFIRMED dont le fan-out n'a jamais tourné"""
        order = {
            "id": new_id(),
            "user_id": user["id"],
            "items": [
                {"type": "WEBINAR", "webinar_id": webinar_id, "slots": [], "price": 119.0, "tax_applicable": True},
                {"type": "PACK", "pack_id": "MC_PACK_6", "catalog": "master_class", "credits": 6, "price": 595.0, "tax_applicable": True},
            ],
            "total_amount": 715.0,
            "status": "CONFIRMED",
            "payment_proof_url": "https://files/p.png",
            "created_at": now_iso(),
        }
        order.update(fields)
        _db_op(db.orders.insert_one(order))
        return order

    def test_reconcile_replays_fan_out_once(self, db):
        user = insert_user(db, "PHARMACIEN")
        admin = insert_user(db, "ADMIN")
        sessions = insert_master_class(db, sessions=2)
        order = self._confirmed_without_effects(db, user, sessions[0]["id"])

        result = _db_op(order_service.reconcile_order(db, order["id"], actor=admin))
        assert result["already_fulfilled"] is False
        assert fetch(db, "users", user["id"])["master_class_credits"] == 6
        for session in sessions:
            assert attendee_of(fetch(db, "webinars", session["id"]), user["id"])["status"] == "CONFIRMED"

        again = _db_op(order_service.reconcile_order(db, order["id"], actor=admin))
        assert again["already_fulfilled"] is True
        assert fetch(db, "users", user["id"])["master_class_credits"] == 6
        print("✅ Réconciliation rejouée une seule fois")

    def test_claimed_credits_not_granted_twice(self, db):
        user = insert_user(db, "PHARMACIEN")
        admin = insert_user(db, "ADMIN")
        webinar = insert_webinar(db)
        order = self._confirmed_without_effects(db, user, webinar["id"], credits_granted_at=now_iso())

        _db_op(order_service.reconcile_order(db, order["id"], actor=admin))
        assert fetch(db, "users", user["id"])["master_class_credits"] == 0
        assert attendee_of(fetch(db, "webinars", webinar["id"]), user["id"])["status"] == "CONFIRMED"
        print("✅ Crédits déjà revendiqués: pas de second ajout")

    def test_reconcile_requires_confirmed(self, db):
        user = insert_user(db, "PHARMACIEN")
        admin = insert_user(db, "ADMIN")
        order = checkout(db, user, [webinar_item(insert_webinar(db))])["order"]
        with pytest.raises(ConflictError):
            _db_op(order_service.reconcile_order(db, order["id"], actor=admin))
        print("✅ Réconciliation refusée hors CONFIRMED")
