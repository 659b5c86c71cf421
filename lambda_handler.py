"""
AWS Lambda handler for the Installment Commission Engine API.

This is the production entry point for AWS Lambda deployments.
For local development, use main.py (Flask app) instead.
"""

import base64
import json
import logging

from commission_engine import CommissionService, EngineSettings
from commission_engine.calculators import Deadline
from commission_engine.errors import CommissionEngineError
from commission_engine.models import CommissionTerms, CompetenceFilter
from commission_engine.output import OutputBuilder

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

settings = EngineSettings.from_env()

# Environment (dev, staging, prod)
ENVIRONMENT = settings.environment

# Lambda is capped at 30s behind API Gateway; stop scanning before that
REPORT_TIMEOUT_SECONDS = 25

# Initialize service (reused across warm invocations)
service = CommissionService.from_settings(settings)
output = OutputBuilder()

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events for:
    - GET /health
    - GET /api
    - POST /simulate
    - POST /commissions
    - GET /reports/competence
    - OPTIONS (CORS preflight)
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    # Route to appropriate handler
    if path == "/health" and http_method == "GET":
        return handle_health()
    elif path == "/api" and http_method == "GET":
        return handle_api_info()
    elif path == "/simulate" and http_method == "POST":
        return handle_with_body(event, handle_simulate)
    elif path == "/commissions" and http_method == "POST":
        return handle_with_body(event, handle_create_commission)
    elif path == "/reports/competence" and http_method == "GET":
        return handle_competence_report(event)
    else:
        return _response(404, {"error": "Not found", "path": path})


def handle_health():
    """Health check endpoint."""
    return _response(200, {"status": "healthy", "environment": ENVIRONMENT})


def handle_api_info():
    """API information endpoint."""
    return _response(
        200,
        {
            "status": "ok",
            "message": "Installment Commission Engine API",
            "version": "1.0",
            "environment": ENVIRONMENT,
            "runtime": "AWS Lambda",
            "endpoints": {
                "simulate": "/simulate [POST]",
                "create_commission": "/commissions [POST]",
                "competence_report": "/reports/competence [GET]",
                "health": "/health [GET]",
            },
        },
    )


def handle_simulate(input_data):
    """Preview a ledger without saving anything."""
    ledger = service.preview_ledger(CommissionTerms.from_dict(input_data.get("terms", input_data)))
    return _response(200, output.simulation(ledger))


def handle_create_commission(input_data):
    """Register a sale and build its commission ledger."""
    client_name = input_data.get("sale", {}).get("client_name", "Unknown")
    logger.info(f"Registering commission for: {client_name}")

    record = service.create_from_dict(input_data)

    logger.info(f"Commission registered: {record.id}")
    return _response(201, output.record(record))


def handle_competence_report(event):
    """Competence report filtered by query string parameters."""
    try:
        params = event.get("queryStringParameters") or {}
        report_filter = CompetenceFilter.from_dict(params)
        report = service.aggregate_competence(report_filter, Deadline(timeout=REPORT_TIMEOUT_SECONDS))
        return _response(200, output.report(report))
    except CommissionEngineError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        return _response(e.status_code, e.to_dict())


def handle_with_body(event, handler):
    """Parse the request body and run a handler, mapping errors to responses."""
    try:
        # Parse request body
        body = event.get("body", "")
        if isinstance(body, str):
            if not body:
                return _response(400, {"error": "No input data provided", "status": "failed"})
            # Handle base64 encoded body (API Gateway)
            if event.get("isBase64Encoded"):
                body = base64.b64decode(body).decode("utf-8")
            input_data = json.loads(body)
        else:
            input_data = body

        return handler(input_data)

    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return _response(400, {"error": f"Invalid JSON: {str(e)}", "status": "failed"})

    except CommissionEngineError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        return _response(e.status_code, e.to_dict())

    except (ValueError, KeyError, TypeError) as e:
        # Malformed payloads (missing fields, invalid types, etc.)
        logger.error(f"Validation error: {str(e)}")
        return _response(400, {"error": f"Validation error: {str(e)}", "status": "validation_failed"})

    except Exception as e:
        # Unexpected errors - log details but return generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return _response(500, {"error": "An unexpected error occurred during processing", "status": "failed"})


def _response(status_code, body):
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(body)}
