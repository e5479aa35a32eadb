"""
Route tests: the upstream client is replaced through dependency_overrides,
so no SmartLend instance is needed.
"""

import copy
import unittest
from decimal import Decimal

from fastapi.testclient import TestClient

from gateway.core.infrastructure import get_smartlend_client
from gateway.main import app
from servicing.constants import PAY_IN_ORDER_MESSAGE
from servicing.utils.api_client import UpstreamError


def _emi(emi_id, due_date, status, amount='1000', payment_date=None):
    return {
        'id': emi_id, 'loan_id': 7, 'emi_number': None, 'amount': Decimal(amount),
        'due_date': due_date, 'status': status, 'payment_date': payment_date,
        'transaction_ref': f"TXN-{emi_id}" if status == 'PAID' else None, 'remaining_balance': None,
    }


LOANS = [
    {'id': 7, 'loan_type_name': 'Home Loan', 'customer_name': 'Asha Rao', 'amount': Decimal('4000'),
     'interest_rate': Decimal('12'), 'tenure_months': None, 'tenure_years': None, 'total_emis': None,
     'loan_status': 'APPROVED', 'submitted_at': '2024-12-20T10:00:00', 'purpose': 'Renovation'},
    {'id': 8, 'loan_type_name': 'Car Loan', 'customer_name': 'Asha Rao', 'amount': Decimal('2000'),
     'interest_rate': Decimal('10'), 'tenure_months': 2, 'loan_status': 'CLOSED'},
    {'id': 9, 'loan_type_name': 'Home Loan', 'customer_name': 'Asha Rao', 'amount': Decimal('9000'),
     'loan_status': 'SUBMITTED'},
]

PACKS = {
    7: {'id': 7, 'amount': Decimal('4000'), 'interest_rate': Decimal('12'), 'tenure_years': Decimal('1'),
        'remaining_amount': None, 'emis': [
            _emi(3, '2025-03-05', 'PENDING'),
            _emi(1, '2025-01-05', 'PAID', payment_date='2025-01-04'),
            _emi(4, '2025-04-05', 'PENDING', amount='1050'),
            _emi(2, '2025-02-05', 'PAID', payment_date='2025-02-03'),
        ]},
    8: {'id': 8, 'amount': Decimal('2000'), 'interest_rate': Decimal('10'), 'tenure_months': 2, 'emis': [
        _emi(21, '2025-01-05', 'PAID', amount='1010', payment_date='2025-01-05'),
        _emi(22, '2025-02-05', 'PAID', amount='1010', payment_date='2025-02-05'),
    ]},
}


class FakeSmartLendClient:
    """In-memory stand-in for SmartLendClient."""

    def __init__(self):
        self.loans = copy.deepcopy(LOANS)
        self.packs = copy.deepcopy(PACKS)
        self.paid = []
        self.status_updates = []
        self.loan_type_updates = []
        self.deleted = []
        self.fail_with = None

    async def list_customer_loans(self):
        if self.fail_with:
            raise self.fail_with
        return copy.deepcopy(self.loans)

    async def get_loan_with_emis(self, loan_id):
        return copy.deepcopy(self.packs.get(loan_id, {'id': loan_id, 'emis': []}))

    async def pay_emi(self, emi_id):
        self.paid.append(emi_id)
        for pack in self.packs.values():
            for emi in pack['emis']:
                if emi['id'] == emi_id:
                    emi.update(status='PAID', payment_date='2025-03-01', transaction_ref=f"TXN-{emi_id}")
                    return copy.deepcopy(emi)
        return {}

    async def list_loan_types(self):
        return [{'id': 1, 'name': 'Home Loan', 'interest_rate': Decimal('8.5'),
                 'penalty_rate_percent': Decimal('2'), 'max_tenure_years': 20,
                 'max_loan_amount': Decimal('5000000'), 'max_loans_per_customer': 3}]

    async def update_loan_type(self, loan_type_id, payload):
        self.loan_type_updates.append((loan_type_id, payload))
        return {'id': loan_type_id, 'name': payload['name'],
                'interest_rate': Decimal(str(payload['interestRate'])),
                'max_loan_amount': Decimal(str(payload['maxLoanAmount']))}

    async def list_admin_loans(self):
        return [dict(loan, status_history=[], emis=None) for loan in copy.deepcopy(self.loans)]

    async def get_admin_loan(self, loan_id):
        loan = next(dict(loan) for loan in self.loans if loan['id'] == loan_id)
        loan['emis'] = copy.deepcopy(self.packs.get(loan_id, {}).get('emis'))
        loan['status_history'] = [{'status': 'SUBMITTED', 'comment': 'Applied', 'timestamp': None}]
        return loan

    async def update_loan_status(self, loan_id, status, comment):
        self.status_updates.append((loan_id, status, comment))
        return {'id': loan_id, 'loan_status': status, 'status_history': [], 'emis': None}

    async def delete_admin_loan(self, loan_id):
        self.deleted.append(loan_id)


class GatewayTestCase(unittest.TestCase):
    """Test client with the SmartLend dependency overridden by a fake."""

    def setUp(self):
        self.fake = FakeSmartLendClient()

        async def override():
            yield self.fake

        app.dependency_overrides[get_smartlend_client] = override
        self.client = TestClient(app)
        self.headers = {"Authorization": "Bearer test-token"}

    def tearDown(self):
        app.dependency_overrides.clear()


class TestHealth(GatewayTestCase):
    """Liveness endpoint."""

    def test_health(self):
        """Health reports the service name."""
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["service"], "servicing-gateway")


class TestLoanList(GatewayTestCase):
    """Loan cards and the EMI calendar."""

    def test_hidden_statuses_removed(self):
        """Submitted loans are hidden and cards are grouped by type."""
        resp = self.client.get("/api/loans", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual([loan['id'] for loan in body['loans']], [7, 8])
        self.assertEqual(body['loans'][0]['ref'], 'ln007')
        self.assertEqual(body['loans'][0]['status_label'], 'Approved')
        self.assertEqual(body['loan_types'], ['ALL', 'Home Loan', 'Car Loan'])
        self.assertEqual(body['groups'], {'Home Loan': [7], 'Car Loan': [8]})

    def test_include_hidden_and_type_filter(self):
        """include_hidden keeps submitted loans within the type filter."""
        resp = self.client.get(
            "/api/loans", params={"include_hidden": "true", "loan_type": "Home Loan"}, headers=self.headers
        )
        self.assertEqual([loan['id'] for loan in resp.json()['loans']], [7, 9])
        self.assertEqual(resp.json()['groups'], {'Home Loan': [7, 9]})

    def test_calendar_groups_pending(self):
        """Pending installments are grouped by due date with loan refs."""
        resp = self.client.get("/api/loans/calendar", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        days = resp.json()
        self.assertEqual([day['due_date'] for day in days], ['2025-03-05', '2025-04-05'])
        self.assertEqual(days[0]['emis'][0]['loan_ref'], 'ln007')
        self.assertEqual(days[0]['emis'][0]['loan_type_name'], 'Home Loan')


class TestSchedule(GatewayTestCase):
    """EMI schedule view."""

    def test_summary_and_window(self):
        """Summary figures, window rows and the single payable row."""
        resp = self.client.get("/api/loans/7/emis", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body['next_payable_id'], 3)
        self.assertEqual([row['id'] for row in body['rows']], [2, 3, 4])
        self.assertEqual(body['summary']['paid_count'], 2)
        self.assertEqual(body['summary']['total_payable'], 4050.0)
        self.assertEqual(body['summary']['total_interest'], 50.0)
        self.assertEqual(body['summary']['tenure_months'], 12)
        self.assertEqual(body['summary']['remaining_emis'], 2)
        self.assertFalse(body['summary']['is_cleared'])
        payable = {row['id']: row['payable'] for row in body['rows']}
        self.assertEqual(payable, {2: False, 3: True, 4: False})
        locked = [row for row in body['rows'] if row['locked_hint']]
        self.assertEqual([row['id'] for row in locked], [4])

    def test_filter_does_not_change_payable(self):
        """Display filters do not move the next payable row."""
        resp = self.client.get("/api/loans/7/emis", params={"status": "PAID"}, headers=self.headers)
        body = resp.json()
        self.assertEqual(body['next_payable_id'], 3)
        self.assertEqual([row['id'] for row in body['rows']], [1, 2])

    def test_date_range(self):
        """Inclusive due-date range over the expanded schedule."""
        resp = self.client.get(
            "/api/loans/7/emis",
            params={"due_from": "2025-02-01", "due_to": "2025-03-31", "expanded": "true"},
            headers=self.headers,
        )
        self.assertEqual([row['id'] for row in resp.json()['rows']], [2, 3])

    def test_unknown_status_filter(self):
        """Unknown status filters are rejected."""
        resp = self.client.get("/api/loans/7/emis", params={"status": "OVERDUE"}, headers=self.headers)
        self.assertEqual(resp.status_code, 422)


class TestPayment(GatewayTestCase):
    """Sequential EMI payment."""

    def test_pays_next_installment(self):
        """Paying the next row refreshes the schedule."""
        resp = self.client.post("/api/loans/7/emis/3/pay", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(self.fake.paid, [3])
        self.assertEqual(body['payment']['status'], 'PAID')
        self.assertEqual(body['schedule']['next_payable_id'], 4)
        self.assertEqual(body['schedule']['summary']['paid_count'], 3)

    def test_out_of_order_is_rejected_without_upstream_call(self):
        """Paying ahead is refused before SmartLend is called."""
        resp = self.client.post("/api/loans/7/emis/4/pay", headers=self.headers)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()['detail'], PAY_IN_ORDER_MESSAGE)
        self.assertEqual(resp.json()['next_emi_id'], 3)
        self.assertEqual(self.fake.paid, [])

    def test_paid_installment_is_rejected(self):
        """Paid rows cannot be paid again."""
        resp = self.client.post("/api/loans/7/emis/1/pay", headers=self.headers)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(self.fake.paid, [])

    def test_unknown_emi(self):
        """Unknown EMI ids give 404."""
        resp = self.client.post("/api/loans/7/emis/99/pay", headers=self.headers)
        self.assertEqual(resp.status_code, 404)


class TestDocuments(GatewayTestCase):
    """Receipt and NOC downloads."""

    def test_receipt_for_paid_emi(self):
        """Paid EMIs download a receipt PDF."""
        resp = self.client.get("/api/loans/7/emis/2/receipt", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers['content-type'], 'application/pdf')
        self.assertIn('RCPT-000002.pdf', resp.headers['content-disposition'])
        self.assertTrue(resp.content.startswith(b'%PDF'))

    def test_no_receipt_for_pending_emi(self):
        """Pending EMIs have no receipt."""
        resp = self.client.get("/api/loans/7/emis/3/receipt", headers=self.headers)
        self.assertEqual(resp.status_code, 409)

    def test_noc_for_cleared_loan(self):
        """Cleared loans download a NOC PDF."""
        resp = self.client.get("/api/loans/8/noc", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertIn('NOC_000008.pdf', resp.headers['content-disposition'])
        self.assertTrue(resp.content.startswith(b'%PDF'))

    def test_no_noc_for_open_loan(self):
        """Open loans have no NOC."""
        resp = self.client.get("/api/loans/7/noc", headers=self.headers)
        self.assertEqual(resp.status_code, 409)


class TestAdmin(GatewayTestCase):
    """Admin loan types and loan review."""

    def test_list_loan_types(self):
        """Loan types are listed with float rates."""
        resp = self.client.get("/api/admin/loan-types", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()[0]['interest_rate'], 8.5)

    def test_update_loan_type(self):
        """Updates are sent upstream in SmartLend field names."""
        payload = {"name": "Home Loan", "interest_rate": 9.0, "max_loan_amount": 6000000, "max_tenure_years": 25}
        resp = self.client.put("/api/admin/loan-types/1", json=payload, headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        sent = self.fake.loan_type_updates[0][1]
        self.assertEqual(sent['interestRate'], 9.0)
        self.assertEqual(sent['maxTenureYears'], 25)

    def test_rate_below_floor_rejected(self):
        """Rates under the floor never reach SmartLend."""
        payload = {"name": "Home Loan", "interest_rate": 6.0, "max_loan_amount": 100000}
        resp = self.client.put("/api/admin/loan-types/1", json=payload, headers=self.headers)
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(self.fake.loan_type_updates, [])

    def test_non_positive_max_amount_rejected(self):
        """Max amount must be positive."""
        payload = {"name": "Home Loan", "interest_rate": 8.0, "max_loan_amount": 0}
        resp = self.client.put("/api/admin/loan-types/1", json=payload, headers=self.headers)
        self.assertEqual(resp.status_code, 422)

    def test_status_change_requires_comment(self):
        """Blank comments are rejected."""
        resp = self.client.put(
            "/api/admin/loans/9/status", json={"status": "APPROVED", "comment": "  "}, headers=self.headers
        )
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(self.fake.status_updates, [])

    def test_status_change(self):
        """Status codes are upper-cased and forwarded with the comment."""
        resp = self.client.put(
            "/api/admin/loans/9/status", json={"status": "approved", "comment": "Verified"}, headers=self.headers
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.fake.status_updates, [(9, "APPROVED", "Verified")])
        self.assertEqual(resp.json()['loan_status'], "APPROVED")

    def test_admin_loan_detail_orders_emis(self):
        """Admin detail orders EMIs and marks only the next one payable."""
        resp = self.client.get("/api/admin/loans/7", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        emis = resp.json()['emis']
        self.assertEqual([emi['id'] for emi in emis], [1, 2, 3, 4])
        self.assertEqual(resp.json()['status_history'][0]['comment'], 'Applied')
        self.assertEqual([emi['payable'] for emi in emis], [False, False, True, False])
        self.assertIsNone(emis[2]['locked_hint'])
        self.assertIsNotNone(emis[3]['locked_hint'])

    def test_admin_list(self):
        """Admin list includes hidden statuses."""
        resp = self.client.get("/api/admin/loans", headers=self.headers)
        self.assertEqual([loan['id'] for loan in resp.json()], [7, 8, 9])

    def test_delete(self):
        """Delete forwards upstream and returns 204."""
        resp = self.client.delete("/api/admin/loans/9", headers=self.headers)
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(self.fake.deleted, [9])


class TestErrors(GatewayTestCase):
    """Error mapping."""

    def test_upstream_status_is_forwarded(self):
        """Upstream status and message pass through."""
        self.fake.fail_with = UpstreamError("Access denied", status_code=403)
        resp = self.client.get("/api/loans", headers=self.headers)
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()['detail'], "Access denied")

    def test_missing_token(self):
        """Requests without a bearer token get 401."""
        app.dependency_overrides.clear()
        resp = self.client.get("/api/loans")
        self.assertEqual(resp.status_code, 401)


if __name__ == '__main__':
    unittest.main()
