"""Tests for AWS Lambda handler."""

import base64
import json

from lambda_handler import lambda_handler


class TestLambdaHandler:
    """Test the Lambda handler routes and responses."""

    def test_health_check(self):
        """GET /health returns healthy status."""
        event = {"httpMethod": "GET", "path": "/health"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "healthy"

    def test_api_info(self):
        """GET /api returns API information."""
        event = {"httpMethod": "GET", "path": "/api"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "ok"
        assert "endpoints" in body

    def test_cors_preflight(self):
        """OPTIONS requests return CORS headers."""
        event = {"httpMethod": "OPTIONS", "path": "/commissions"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        assert "Access-Control-Allow-Origin" in response["headers"]
        assert "Access-Control-Allow-Methods" in response["headers"]

    def test_not_found(self):
        """Unknown paths return 404."""
        event = {"httpMethod": "GET", "path": "/unknown"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 404

    def test_create_commission(self, sample_payload):
        """POST /commissions registers a sale and returns its ledger."""
        event = {"httpMethod": "POST", "path": "/commissions", "body": json.dumps(sample_payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 201
        body = json.loads(response["body"])
        assert body["sale"]["client_name"] == "Maria Souza"
        assert body["ledger"][0]["consultant_net"] == 141.0
        assert body["overall_status"] == "Em Andamento"

    def test_simulate(self, sample_payload):
        """POST /simulate previews a ledger."""
        event = {"httpMethod": "POST", "path": "/simulate", "body": json.dumps(sample_payload["terms"])}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert len(body["ledger"]) == 12
        assert body["totals"]["net_total"] == 2256.0

    def test_http_api_format(self, sample_payload):
        """HTTP API (v2) events carry method and path elsewhere."""
        event = {
            "rawPath": "/simulate",
            "requestContext": {"http": {"method": "POST"}},
            "body": json.dumps(sample_payload["terms"]),
        }
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200

    def test_base64_body(self, sample_payload):
        """Base64 encoded bodies are decoded."""
        encoded = base64.b64encode(json.dumps(sample_payload["terms"]).encode("utf-8")).decode("ascii")
        event = {"httpMethod": "POST", "path": "/simulate", "body": encoded, "isBase64Encoded": True}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200

    def test_missing_body(self):
        """POST without body returns 400."""
        event = {"httpMethod": "POST", "path": "/commissions", "body": ""}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400

    def test_invalid_json(self):
        """Invalid JSON returns 400."""
        event = {"httpMethod": "POST", "path": "/commissions", "body": "not valid json"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert "Invalid JSON" in body["error"]

    def test_validation_error(self, sample_payload):
        """Out-of-range rates return a structured 400."""
        sample_payload["terms"]["default_consultant_rate"] = 120
        event = {"httpMethod": "POST", "path": "/commissions", "body": json.dumps(sample_payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert body["status"] == "validation_failed"
        assert body["field"] == "default_consultant_rate"

    def test_missing_field(self, sample_payload):
        """Missing sections return 400."""
        del sample_payload["sale"]
        event = {"httpMethod": "POST", "path": "/commissions", "body": json.dumps(sample_payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400

    def test_competence_report(self):
        """GET /reports/competence reads query string filters."""
        event = {
            "httpMethod": "GET",
            "path": "/reports/competence",
            "queryStringParameters": {"competence_month": "2024-01"},
        }
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert {"total_sold", "totals", "per_month", "lines"} <= set(body)

    def test_competence_report_bad_filter(self):
        """Malformed filters return 400."""
        event = {
            "httpMethod": "GET",
            "path": "/reports/competence",
            "queryStringParameters": {"paid_from": "ontem"},
        }
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
