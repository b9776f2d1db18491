"""
Tests for the submission pipeline (SubmissionProcessor).
"""

import json
import logging

import pytest
from unittest.mock import MagicMock
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from config import GatewayConfig
from domain.errors import DeliveryError
from domain.models import ApiRequest, RenderedMessage
from domain.submission_processor import SubmissionProcessor, find_missing_fields

ALLOWED_ORIGIN = 'https://intake-form.vercel.app'


@pytest.fixture
def config():
    return GatewayConfig(
        sender_email='Medication Intake <intake@example.org>',
        recipient_email='pharmacy@example.org',
        rate_limit_max=5,
        rate_limit_window_seconds=3600,
        allowed_origins=('https://*.vercel.app', 'http://localhost:3000'),
        required_fields=('patientName', 'dateOfBirth'),
        environment='test',
    )


@pytest.fixture
def transport():
    return MagicMock(return_value='ses-message-1')


@pytest.fixture
def processor(config, transport, clock):
    return SubmissionProcessor(config=config, transport=transport, clock=clock)


def _request(body=None, method='POST', origin=ALLOWED_ORIGIN,
             content_type='application/json', client_ip='203.0.113.7'):
    headers = {'user-agent': 'Mozilla/5.0 (pytest)'}
    if origin is not None:
        headers['origin'] = origin
    if content_type is not None:
        headers['content-type'] = content_type
    if body is not None and not isinstance(body, str):
        body = json.dumps(body)
    return ApiRequest(method=method, headers=headers, body=body or '', client_ip=client_ip)


def _audit_records(caplog):
    records = []
    for record in caplog.records:
        try:
            data = json.loads(record.getMessage())
        except ValueError:
            continue
        if isinstance(data, dict) and 'event' in data:
            records.append(data)
    return records


class TestSuccessfulSubmission:
    """End-to-end happy path through the pipeline."""

    def test_success_response(self, processor, transport, valid_payload):
        result = processor.handle(_request(valid_payload))

        assert result.status_code == 200
        assert result.body['success'] is True
        assert result.body['message'] == 'Form submitted successfully'
        assert result.body['requestId']
        assert result.body['requestId'].startswith('req_')
        assert result.body['remainingSubmissions'] == 4
        assert result.delivery_id == 'ses-message-1'
        transport.assert_called_once()

    def test_transport_arguments(self, processor, transport, valid_payload):
        result = processor.handle(_request(valid_payload))

        call_kwargs = transport.call_args[1]
        assert call_kwargs['sender'] == 'Medication Intake <intake@example.org>'
        assert call_kwargs['recipient'] == 'pharmacy@example.org'
        assert call_kwargs['subject'] == 'Medication Intake - Jane Doe'
        assert call_kwargs['request_id'] == result.request_id
        assert call_kwargs['reply_to'] == 'jane.doe@example.com'
        assert isinstance(call_kwargs['message'], RenderedMessage)
        assert 'Lisinopril' in call_kwargs['message'].text_body

    def test_cors_headers_on_success(self, processor, valid_payload):
        result = processor.handle(_request(valid_payload))

        assert result.headers['Access-Control-Allow-Origin'] == ALLOWED_ORIGIN
        assert result.headers['Access-Control-Allow-Methods'] == 'POST, OPTIONS'

    def test_remaining_counts_down(self, processor, valid_payload):
        remaining = [
            processor.handle(_request(valid_payload)).body['remainingSubmissions']
            for _ in range(5)
        ]

        assert remaining == [4, 3, 2, 1, 0]

    def test_unknown_fields_pass_through(self, processor, transport, valid_payload):
        valid_payload['referralSource'] = '<b>flyer</b>'

        result = processor.handle(_request(valid_payload))

        assert result.status_code == 200

    def test_submission_time_in_message(self, processor, transport, valid_payload):
        processor.handle(_request(valid_payload))

        message = transport.call_args[1]['message']
        assert '2023-11-14T22:13:20+00:00' in message.text_body


class TestScriptInjection:
    """A script payload is encoded before rendering."""

    def test_script_is_entity_encoded(self, processor, transport, valid_payload):
        valid_payload['specialInstructions'] = '<script>alert(1)</script>'

        result = processor.handle(_request(valid_payload))

        assert result.status_code == 200
        message = transport.call_args[1]['message']
        assert '&lt;script&gt;alert(1)&lt;&#x2F;script&gt;' in message.html_body
        assert '<script>' not in message.html_body

    def test_subject_uses_sanitized_name(self, processor, transport, valid_payload):
        valid_payload['patientName'] = '<Jane>'

        processor.handle(_request(valid_payload))

        assert transport.call_args[1]['subject'] == 'Medication Intake - &lt;Jane&gt;'


class TestPreflightAndMethods:
    """Test OPTIONS handling and unsupported methods."""

    def test_preflight_allowed_origin(self, processor, transport):
        result = processor.handle(_request(method='OPTIONS'))

        assert result.status_code == 204
        assert result.body is None
        assert result.headers['Access-Control-Allow-Origin'] == ALLOWED_ORIGIN
        assert result.headers['Access-Control-Max-Age'] == '86400'
        transport.assert_not_called()

    def test_preflight_disallowed_origin(self, processor):
        result = processor.handle(_request(method='OPTIONS', origin='https://evil.example'))

        assert result.status_code == 204
        assert 'Access-Control-Allow-Origin' not in result.headers

    def test_preflight_does_not_consume_quota(self, processor, valid_payload):
        for _ in range(10):
            processor.handle(_request(method='OPTIONS'))

        result = processor.handle(_request(valid_payload))
        assert result.body['remainingSubmissions'] == 4

    @pytest.mark.parametrize('method', ['GET', 'PUT', 'DELETE', 'PATCH'])
    def test_method_not_allowed(self, processor, transport, method):
        result = processor.handle(_request(method=method))

        assert result.status_code == 405
        assert result.body == {'success': False, 'error': 'Method not allowed'}
        assert result.headers['Allow'] == 'POST, OPTIONS'
        transport.assert_not_called()


class TestOriginCheck:
    """Requests from non-allow-listed origins are rejected."""

    def test_disallowed_origin(self, processor, transport, valid_payload):
        result = processor.handle(_request(valid_payload, origin='https://evil.example'))

        assert result.status_code == 403
        assert result.body == {'success': False, 'error': 'Access denied from this origin'}
        assert 'Access-Control-Allow-Origin' not in result.headers
        transport.assert_not_called()

    def test_missing_origin(self, processor, transport, valid_payload):
        result = processor.handle(_request(valid_payload, origin=None))

        assert result.status_code == 403
        transport.assert_not_called()

    def test_denied_origin_does_not_consume_quota(self, processor, valid_payload):
        for _ in range(10):
            processor.handle(_request(valid_payload, origin='https://evil.example'))

        assert processor.handle(_request(valid_payload)).status_code == 200

    def test_logged_with_hash_and_origin_only(self, processor, valid_payload, caplog):
        with caplog.at_level(logging.INFO):
            processor.handle(_request(valid_payload, origin='https://evil.example'))

        records = _audit_records(caplog)
        assert [r['event'] for r in records] == ['CORS_VIOLATION']
        assert records[0]['origin'] == 'https://evil.example'
        assert records[0]['ipHash']
        assert '203.0.113.7' not in caplog.text
        assert 'Jane Doe' not in caplog.text


class TestRateLimit:
    """Repeated submissions from one client."""

    def test_limit_exceeded(self, processor, transport, valid_payload):
        results = [processor.handle(_request(valid_payload)) for _ in range(6)]

        assert [r.status_code for r in results] == [200] * 5 + [429]
        final = results[-1]
        assert final.body['success'] is False
        assert final.body['retryAfter'] > 0
        assert final.headers['Retry-After'] == str(final.body['retryAfter'])
        assert transport.call_count == 5

    def test_retry_after_reflects_oldest_entry(self, processor, clock, valid_payload):
        for _ in range(5):
            processor.handle(_request(valid_payload))
        clock.advance(600)

        result = processor.handle(_request(valid_payload))

        assert result.body['retryAfter'] == 3000

    def test_allowed_after_window(self, processor, clock, valid_payload):
        for _ in range(6):
            processor.handle(_request(valid_payload))
        clock.advance(3601)

        assert processor.handle(_request(valid_payload)).status_code == 200

    def test_other_clients_unaffected(self, processor, valid_payload):
        for _ in range(6):
            processor.handle(_request(valid_payload))

        result = processor.handle(_request(valid_payload, client_ip='198.51.100.1'))
        assert result.status_code == 200

    def test_logged_without_raw_address(self, processor, valid_payload, caplog):
        for _ in range(5):
            processor.handle(_request(valid_payload))
        caplog.clear()

        with caplog.at_level(logging.INFO):
            processor.handle(_request(valid_payload))

        events = [r['event'] for r in _audit_records(caplog)]
        assert events == ['RATE_LIMIT_EXCEEDED']
        assert '203.0.113.7' not in caplog.text


class TestBodyValidation:
    """Content type, body shape and required fields."""

    def test_wrong_content_type(self, processor, transport, valid_payload):
        result = processor.handle(_request(valid_payload, content_type='text/plain'))

        assert result.status_code == 400
        assert result.body['error'] == 'Invalid content type. Expected application/json'
        transport.assert_not_called()

    def test_content_type_with_charset(self, processor, valid_payload):
        result = processor.handle(
            _request(valid_payload, content_type='application/json; charset=utf-8')
        )

        assert result.status_code == 200

    def test_missing_content_type(self, processor, valid_payload):
        assert processor.handle(_request(valid_payload, content_type=None)).status_code == 400

    @pytest.mark.parametrize('body', ['not json', '[1, 2]', ''])
    def test_malformed_body(self, processor, transport, body):
        result = processor.handle(_request(body))

        assert result.status_code == 400
        assert result.body['error'] == 'Request body must be a JSON object'
        transport.assert_not_called()

    def test_body_too_large(self, config, transport, clock, valid_payload):
        small = GatewayConfig(
            sender_email=config.sender_email,
            recipient_email=config.recipient_email,
            max_body_bytes=100,
        )
        processor = SubmissionProcessor(config=small, transport=transport, clock=clock)
        valid_payload['specialInstructions'] = 'x' * 200

        result = processor.handle(_request(valid_payload))

        assert result.status_code == 413
        transport.assert_not_called()

    def test_deeply_nested_body_rejected(self, processor, transport, valid_payload):
        nested = '"x"'
        for _ in range(400):
            nested = f'[{nested}]'
        body = json.dumps(valid_payload)[:-1] + f', "notes": {nested}}}'

        result = processor.handle(_request(body))

        assert result.status_code == 400
        assert result.body['error'] == 'Request body must be a JSON object'
        transport.assert_not_called()

    def test_nested_extra_fields_accepted(self, processor, transport, valid_payload):
        valid_payload['notes'] = {'history': [['<b>2019</b>']]}

        result = processor.handle(_request(valid_payload))

        assert result.status_code == 200
        transport.assert_called_once()

    def test_missing_required_fields_listed_exactly(self, processor, transport, valid_payload):
        del valid_payload['patientName']
        valid_payload['dateOfBirth'] = '   '

        result = processor.handle(_request(valid_payload))

        assert result.status_code == 400
        assert result.body['missingFields'] == ['patientName', 'dateOfBirth']
        assert result.body['error'] == 'Missing required fields: patientName, dateOfBirth'
        transport.assert_not_called()

    def test_only_missing_field_listed(self, processor, valid_payload):
        valid_payload['dateOfBirth'] = ''

        result = processor.handle(_request(valid_payload))

        assert result.body['missingFields'] == ['dateOfBirth']

    def test_validation_log_has_no_values(self, processor, valid_payload, caplog):
        valid_payload['dateOfBirth'] = ''

        with caplog.at_level(logging.INFO):
            processor.handle(_request(valid_payload))

        records = _audit_records(caplog)
        assert records[0]['event'] == 'VALIDATION_FAILED'
        assert records[0]['missingFields'] == ['dateOfBirth']
        assert 'Jane Doe' not in caplog.text


class TestFindMissingFields:
    """Test required-field detection."""

    def test_blank_values(self):
        data = {'a': None, 'b': '', 'c': '  ', 'd': [], 'e': {}, 'f': 'ok', 'g': 0, 'h': False}

        missing = find_missing_fields(data, ['a', 'b', 'c', 'd', 'e', 'f', 'g', 'h', 'z'])

        assert missing == ['a', 'b', 'c', 'd', 'e', 'z']

    def test_order_follows_configuration(self):
        assert find_missing_fields({}, ['b', 'a']) == ['b', 'a']


class TestServerErrors:
    """Configuration and delivery failures."""

    def test_missing_transport_config(self, transport, clock, valid_payload, caplog):
        processor = SubmissionProcessor(
            config=GatewayConfig(recipient_email='pharmacy@example.org'),
            transport=transport,
            clock=clock
        )
        valid_payload_origin = _request(valid_payload, origin='http://localhost:3000')

        with caplog.at_level(logging.INFO):
            result = processor.handle(valid_payload_origin)

        assert result.status_code == 500
        assert result.body['error'] == 'Server configuration error'
        assert result.body['requestId'] == result.request_id
        transport.assert_not_called()
        records = _audit_records(caplog)
        assert records[0]['event'] == 'CONFIG_MISSING_TRANSPORT'
        assert records[0]['level'] == 'ERROR'

    def test_delivery_error(self, processor, transport, valid_payload, caplog):
        transport.side_effect = DeliveryError('SES transport error: Read timeout')

        with caplog.at_level(logging.INFO):
            result = processor.handle(_request(valid_payload))

        assert result.status_code == 500
        assert result.body == {
            'success': False,
            'error': 'Failed to process submission. Please try again.',
            'requestId': result.request_id,
        }
        assert 'Read timeout' not in json.dumps(result.body)
        records = _audit_records(caplog)
        assert records[0]['event'] == 'DELIVERY_FAILED'
        assert 'Read timeout' in records[0]['error']
        assert 'Jane Doe' not in caplog.text
        transport.assert_called_once()

    def test_unexpected_error(self, processor, transport, valid_payload, caplog):
        transport.side_effect = RuntimeError('boom')

        with caplog.at_level(logging.INFO):
            result = processor.handle(_request(valid_payload))

        assert result.status_code == 500
        assert result.body['success'] is False
        assert result.body['requestId'] == result.request_id
        assert [r['event'] for r in _audit_records(caplog)] == ['SUBMISSION_ERROR']

    def test_success_audit_record(self, processor, valid_payload, caplog):
        with caplog.at_level(logging.INFO):
            result = processor.handle(_request(valid_payload))

        records = _audit_records(caplog)
        assert [r['event'] for r in records] == ['FORM_SUBMITTED']
        assert records[0]['requestId'] == result.request_id
        assert records[0]['emailId'] == 'ses-message-1'
        assert records[0]['remaining'] == 4
        assert len(records[0]['userAgent']) <= 50
        for value in ('Jane Doe', '1980-04-12', 'Lisinopril', 'jane.doe@example.com'):
            assert value not in caplog.text


class TestRequestIds:
    """Request identifiers."""

    def test_format_and_uniqueness(self, processor, valid_payload):
        ids = {processor.handle(_request(valid_payload)).request_id for _ in range(3)}

        assert len(ids) == 3
        for request_id in ids:
            prefix, millis, suffix = request_id.split('_')
            assert prefix == 'req'
            assert millis == '1700000000000'
            assert len(suffix) == 9


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
