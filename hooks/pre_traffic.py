"""
CodeDeploy pre-traffic hook for the intake gateway.

Sends a CORS preflight to the new function version and checks the
response before any traffic shifts. A preflight carries no form data, so
the smoke test never sends mail or touches the rate limit.

The preflight always has to come back as a 204 with the security headers.
The CORS allow-origin header is checked only when SMOKE_TEST_ORIGIN is set,
and then it must echo that origin, so set it to an entry of the function's
ALLOWED_ORIGINS. Without it the preflight is sent from
http://localhost:3000, which production allow-lists usually leave out.
"""

import json
import logging
import os

import boto3

logger = logging.getLogger()
logger.setLevel(logging.INFO)

codedeploy = boto3.client('codedeploy')
lambda_client = boto3.client('lambda')

DEFAULT_SMOKE_TEST_ORIGIN = 'http://localhost:3000'

REQUIRED_HEADERS = (
    'X-Content-Type-Options',
    'X-Frame-Options',
    'Strict-Transport-Security',
    'Content-Security-Policy',
)


class SmokeTestFailure(Exception):
    """The new version answered the preflight incorrectly."""


def build_preflight_event(origin):
    """API Gateway (v1) CORS preflight event."""
    return {
        'httpMethod': 'OPTIONS',
        'path': '/api/submit',
        'headers': {
            'Origin': origin,
            'Access-Control-Request-Method': 'POST',
            'Access-Control-Request-Headers': 'Content-Type',
        },
        'requestContext': {'identity': {'sourceIp': '127.0.0.1'}},
        'body': None,
        'isBase64Encoded': False,
    }


def validate_preflight_response(response_payload, expected_origin=None):
    """
    Raise SmokeTestFailure unless the payload is a 204 with the defensive headers.
    When expected_origin is given, the preflight must also allow that origin.
    """
    status = response_payload.get('statusCode')
    if status != 204:
        raise SmokeTestFailure(f"Invalid response status: {status}")

    headers = response_payload.get('headers') or {}
    absent = [name for name in REQUIRED_HEADERS if name not in headers]
    if absent:
        raise SmokeTestFailure(f"Missing security headers: {', '.join(absent)}")

    if expected_origin and headers.get('Access-Control-Allow-Origin') != expected_origin:
        raise SmokeTestFailure(f"Preflight did not allow smoke test origin {expected_origin}")


def _invoke_target(function_name, origin):
    """Invoke the new version synchronously and return its decoded proxy response."""
    invocation = lambda_client.invoke(
        FunctionName=function_name,
        InvocationType='RequestResponse',
        Payload=json.dumps(build_preflight_event(origin))
    )
    payload = json.loads(invocation['Payload'].read())

    if invocation.get('FunctionError'):
        raise SmokeTestFailure(f"Function returned error: {payload}")
    if invocation.get('StatusCode') != 200:
        raise SmokeTestFailure(f"Unexpected invoke status: {invocation.get('StatusCode')}")

    return payload


def _report(event, status):
    codedeploy.put_lifecycle_event_hook_execution_status(
        deploymentId=event['DeploymentId'],
        lifecycleEventHookExecutionId=event['LifecycleEventHookExecutionId'],
        status=status
    )


def lambda_handler(event, context):
    """
    Run the preflight smoke test and report the outcome to CodeDeploy.
    A Failed status stops the deployment.
    """
    target_function = os.environ.get('TARGET_FUNCTION')
    configured_origin = os.environ.get('SMOKE_TEST_ORIGIN')
    origin = configured_origin or DEFAULT_SMOKE_TEST_ORIGIN
    logger.info(f"Preflight smoke test: deployment={event['DeploymentId']}, target={target_function}")

    try:
        payload = _invoke_target(target_function, origin)
        logger.info(f"Preflight answered with status {payload.get('statusCode')}")
        validate_preflight_response(payload, configured_origin)
    except Exception as e:
        logger.error(f"Preflight smoke test failed: {e}", exc_info=True)
        _report(event, 'Failed')
        return {
            'statusCode': 500,
            'body': json.dumps(f'Pre-traffic validation failed: {e}')
        }

    _report(event, 'Succeeded')
    logger.info("Preflight smoke test passed")
    return {
        'statusCode': 200,
        'body': json.dumps('Pre-traffic validation succeeded')
    }
