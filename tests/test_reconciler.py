"""
Test cases for the HTTP reconciler
"""

import json
from unittest import TestCase
from unittest.mock import MagicMock

import requests

from scratchcard.config import ScratchConfig
from scratchcard.errors import (AlreadyCredited, AlreadyRevealed, AuthRequired, CardNotFound,
                                NetworkFailure, Timeout, UnknownServerError)
from scratchcard.models import CardStatus
from scratchcard.reconciler import RewardReconciler, error_from_response

BASE_URL = "http://shop.test/api"


def make_response(status_code, body, url=BASE_URL):
    """Builds a real requests.Response with a JSON body"""
    resp = requests.Response()
    resp.status_code = status_code
    resp.url = url
    resp._content = json.dumps(body).encode() if body is not None else b"<html>"  # pylint: disable=protected-access
    resp.headers["Content-Type"] = "application/json"
    return resp


######################################################################
#  E R R O R   M A P P I N G
######################################################################
class TestErrorMapping(TestCase):
    """Mapping HTTP failures onto reward errors"""

    def test_already_revealed(self):
        """It should map a 400 'already revealed' to AlreadyRevealed"""
        err = error_from_response(make_response(400, {"success": False, "message": "Scratch card already revealed"}), "reveal")
        self.assertIsInstance(err, AlreadyRevealed)
        self.assertEqual(err.status, "revealed")
        self.assertEqual(err.status_code, 400)

    def test_already_credited_on_reveal(self):
        """It should report a credited card as AlreadyRevealed with credited status"""
        err = error_from_response(make_response(400, {"success": False, "message": "Scratch card already credited"}), "reveal")
        self.assertIsInstance(err, AlreadyRevealed)
        self.assertEqual(err.status, "credited")

    def test_already_expired(self):
        """It should report an expired card as AlreadyRevealed with expired status"""
        err = error_from_response(make_response(400, {"success": False, "message": "Scratch card already expired"}), "reveal")
        self.assertIsInstance(err, AlreadyRevealed)
        self.assertEqual(err.status, "expired")

    def test_already_credited_on_credit(self):
        """It should map 'already credited' on credit to AlreadyCredited"""
        body = {"success": False, "message": "Scratch card already credited", "data": {"amount": 25}}
        err = error_from_response(make_response(409, body), "credit")
        self.assertIsInstance(err, AlreadyCredited)
        self.assertEqual(err.amount, 25)

    def test_auth(self):
        """It should map 401/403 and token messages to AuthRequired"""
        self.assertIsInstance(error_from_response(make_response(401, {"message": "Unauthorized"}), "reveal"), AuthRequired)
        self.assertIsInstance(error_from_response(make_response(403, {}), "reveal"), AuthRequired)
        self.assertIsInstance(error_from_response(make_response(400, {"message": "Invalid token"}), "credit"), AuthRequired)

    def test_not_found(self):
        """It should map 404 to CardNotFound"""
        err = error_from_response(make_response(404, {"message": "Scratch card not found"}), "reveal")
        self.assertIsInstance(err, CardNotFound)
        self.assertEqual(err.message, "Scratch card not found")

    def test_other(self):
        """It should map everything else to UnknownServerError"""
        err = error_from_response(make_response(500, None), "credit")
        self.assertIsInstance(err, UnknownServerError)
        self.assertEqual(err.message, "Failed to credit scratch card")
        err = error_from_response(make_response(400, {"message": "Scratch card must be revealed before crediting"}), "credit")
        self.assertIsInstance(err, UnknownServerError)


######################################################################
#  R E C O N C I L E R
######################################################################
class TestRewardReconciler(TestCase):
    """RewardReconciler against a mocked session"""

    def setUp(self):
        self.session = MagicMock()
        self.config = ScratchConfig(api_base_url=BASE_URL + "/", api_token="secret", request_timeout=3.0)
        self.reconciler = RewardReconciler(self.config, session=self.session)

    def test_reveal(self):
        """It should POST the card id and return the awarded amount"""
        self.session.request.return_value = make_response(200, {
            "success": True, "message": "Scratch card revealed successfully",
            "data": {"amount": 37, "status": "revealed", "message": "Cashback will be credited"},
        })
        result = self.reconciler.reveal(7)
        self.assertEqual(result, {"amount": 37, "message": "Cashback will be credited", "status": "revealed"})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", BASE_URL + "/scratch-cards/reveal"))
        self.assertEqual(kwargs["json"], {"scratchCardId": 7})
        self.assertEqual(kwargs["timeout"], 3.0)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer secret")

    def test_reveal_without_token(self):
        """It should omit the Authorization header without a token"""
        self.session.request.return_value = make_response(200, {"success": True, "data": {"amount": 5}})
        RewardReconciler(ScratchConfig(api_base_url=BASE_URL), session=self.session).reveal(1)
        self.assertNotIn("Authorization", self.session.request.call_args[1]["headers"])

    def test_reveal_missing_amount(self):
        """It should refuse a reveal response without an amount"""
        self.session.request.return_value = make_response(200, {"success": True, "data": {}})
        self.assertRaises(UnknownServerError, self.reconciler.reveal, 1)

    def test_reveal_success_false(self):
        """It should treat success=false as a server error"""
        self.session.request.return_value = make_response(200, {"success": False, "message": "nope"})
        with self.assertRaises(UnknownServerError) as ctx:
            self.reconciler.reveal(1)
        self.assertEqual(ctx.exception.message, "nope")

    def test_reveal_conflict(self):
        """It should raise AlreadyRevealed for a collision"""
        self.session.request.return_value = make_response(400, {"success": False, "message": "Scratch card already revealed"})
        self.assertRaises(AlreadyRevealed, self.reconciler.reveal, 1)

    def test_timeout(self):
        """It should turn a requests timeout into Timeout"""
        self.session.request.side_effect = requests.ConnectTimeout("slow")
        with self.assertRaises(Timeout) as ctx:
            self.reconciler.reveal(1)
        self.assertTrue(ctx.exception.retryable)

    def test_network_failure(self):
        """It should turn a connection error into NetworkFailure"""
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(NetworkFailure) as ctx:
            self.reconciler.credit(1)
        self.assertNotIsInstance(ctx.exception, Timeout)

    def test_credit(self):
        """It should POST the credit and return the new balance"""
        self.session.request.return_value = make_response(200, {
            "success": True, "data": {"amount": 20, "newBalance": 120.5},
        })
        self.assertEqual(self.reconciler.credit(3), {"amount": 20, "balance": 120.5})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", BASE_URL + "/scratch-cards/credit"))
        self.assertEqual(kwargs["json"], {"scratchCardId": 3})

    def test_credit_conflict(self):
        """It should raise AlreadyCredited for a collision"""
        self.session.request.return_value = make_response(400, {"success": False, "message": "Scratch card already credited"})
        self.assertRaises(AlreadyCredited, self.reconciler.credit, 3)

    def test_list_cards(self):
        """It should list cards with an optional status filter"""
        self.session.request.return_value = make_response(200, {"success": True, "data": {"scratchCards": [
            {"id": 1, "status": "pending", "amount": 10, "orderId": 9, "orderNumber": "ORD-9",
             "createdAt": "2024-05-01T10:00:00Z"},
            {"id": 2, "status": "credited", "amount": 15},
        ]}})
        cards = self.reconciler.list_cards(status="pending")
        self.assertEqual([c.id for c in cards], [1, 2])
        self.assertEqual(cards[0].status, CardStatus.PENDING)
        self.assertIsNone(cards[0].amount)
        self.assertEqual(cards[1].amount, 15)
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", BASE_URL + "/scratch-cards"))
        self.assertEqual(kwargs["params"], {"status": "pending"})

    def test_close(self):
        """It should close the session"""
        self.reconciler.close()
        self.session.close.assert_called_once()
