"""
Pytest configuration and fixtures for all tests.
"""

import json
import os
import sys
from unittest.mock import Mock

import pytest

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

# Set up test environment variables before importing any modules
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('SES_SENDER_EMAIL', 'Medication Intake <intake@example.org>')
os.environ.setdefault('RECIPIENT_EMAIL', 'pharmacy@example.org')
os.environ.setdefault('ALLOWED_ORIGINS', 'https://*.vercel.app,http://localhost:3000')
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'INFO')

ALLOWED_ORIGIN = 'https://intake-form.vercel.app'


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lambda_context():
    """Mock Lambda context."""
    context = Mock()
    context.aws_request_id = "test-request-id"
    context.invoked_function_arn = "arn:aws:lambda:us-west-2:123456789012:function:intake-submit"
    context.function_name = "intake-submit-test"
    return context


@pytest.fixture
def valid_payload():
    """A complete submission using the medication list schema."""
    return {
        'patientName': 'Jane Doe',
        'dateOfBirth': '1980-04-12',
        'mrn': 'MRN-0042',
        'phone': '555-0100',
        'email': 'jane.doe@example.com',
        'pharmacyName': 'Main Street Pharmacy',
        'pharmacyPhone': '555-0199',
        'medications': [
            {'name': 'Lisinopril', 'dosage': '10 mg', 'frequency': 'Once daily'},
            {'name': 'Metformin', 'dosage': '500 mg', 'frequency': 'Twice daily'},
        ],
        'allergies': 'Penicillin',
        'specialInstructions': '',
    }


@pytest.fixture
def make_event():
    """Factory for API Gateway REST (v1) proxy events."""

    def _make_event(
        method='POST',
        body=None,
        origin=ALLOWED_ORIGIN,
        content_type='application/json',
        source_ip='203.0.113.7',
        extra_headers=None
    ):
        headers = {'User-Agent': 'Mozilla/5.0 (pytest)'}
        if origin is not None:
            headers['Origin'] = origin
        if content_type is not None:
            headers['Content-Type'] = content_type
        if extra_headers:
            headers.update(extra_headers)

        if body is not None and not isinstance(body, str):
            body = json.dumps(body)

        return {
            'httpMethod': method,
            'path': '/api/submit',
            'headers': headers,
            'requestContext': {'identity': {'sourceIp': source_ip}},
            'body': body,
            'isBase64Encoded': False,
        }

    return _make_event
