from flask import Flask, request, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from commission_engine import CommissionService, EngineSettings
from commission_engine.calculators import Deadline
from commission_engine.errors import CommissionEngineError
from commission_engine.models import CommissionTerms, CompetenceFilter, CutoffPeriod, parse_date, to_int
from commission_engine.output import OutputBuilder
import os
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Reports scanning many records give up after this many seconds
REPORT_TIMEOUT_SECONDS = float(os.environ.get("REPORT_TIMEOUT_SECONDS", 30))

output = OutputBuilder()


def create_app(service: CommissionService | None = None) -> Flask:
    """Build the Flask app around a commission service."""
    app = Flask(__name__)

    # Enable CORS for all routes (the reporting UI calls the API from another origin)
    CORS(app)

    if service is None:
        service = CommissionService.from_settings(EngineSettings.from_env())
    app.config["COMMISSION_SERVICE"] = service

    @app.errorhandler(CommissionEngineError)
    def handle_engine_error(e):
        logger.error(f"{type(e).__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(KeyError)
    def handle_missing_field(e):
        logger.error(f"Validation error: missing field {e}")
        return jsonify({"error": f"Missing field: {e}", "status": "validation_failed"}), 400

    @app.errorhandler(ValueError)
    @app.errorhandler(TypeError)
    def handle_value_error(e):
        logger.error(f"Validation error: {str(e)}")
        return jsonify({"error": str(e), "status": "validation_failed"}), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        if isinstance(e, HTTPException):
            return e
        # Log details but return a generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return jsonify({"error": "An unexpected error occurred during processing", "status": "failed"}), 500

    @app.route("/api", methods=["GET"])
    def api_info():
        """API information endpoint"""
        return jsonify({
            "status": "ok",
            "message": "Installment Commission Engine API",
            "version": "1.0",
            "endpoints": {
                "create_commission": "/commissions [POST]",
                "list_commissions": "/commissions [GET]",
                "commission": "/commissions/<id> [GET, DELETE]",
                "update_terms": "/commissions/<id>/terms [PUT]",
                "ledger": "/commissions/<id>/ledger [GET]",
                "record_payment": "/commissions/<id>/installments/<n>/payment [POST]",
                "set_status": "/commissions/<id>/installments/<n>/status [PUT]",
                "range_payment": "/commissions/<id>/installments/range-payment [POST]",
                "simulate": "/simulate [POST]",
                "competence_report": "/reports/competence [GET]",
                "summary": "/reports/summary [GET]",
                "cutoff_periods": "/cutoff-periods [GET, POST]",
                "cutoff_period": "/cutoff-periods/<id> [PUT, DELETE]",
                "health": "/health [GET]"
            }
        }), 200

    @app.route("/health", methods=["GET"])
    def health():
        """Health check for monitoring"""
        return jsonify({"status": "healthy"}), 200

    @app.route("/commissions", methods=["POST"])
    def create_commission():
        """Register a sale and build its commission ledger"""
        input_data = _json_body()
        client_name = input_data.get("sale", {}).get("client_name", "Unknown")
        logger.info(f"Registering commission for: {client_name}")

        record = service.create_from_dict(input_data)
        return jsonify(output.record(record)), 201

    @app.route("/commissions", methods=["GET"])
    def list_commissions():
        """List records, filtered by sale date, recipient, type, point of sale or status"""
        record_filter = CompetenceFilter.from_dict(request.args.to_dict())
        records = service.list_records(record_filter)
        return jsonify({
            "records": [output.record(r, include_ledger=False) for r in records],
            "summary": output.summary(service.aggregator.summarize(records))
        }), 200

    @app.route("/commissions/<record_id>", methods=["GET"])
    def get_commission(record_id):
        return jsonify(output.record(service.get_record(record_id))), 200

    @app.route("/commissions/<record_id>", methods=["DELETE"])
    def delete_commission(record_id):
        service.delete_record(record_id)
        return jsonify({"status": "deleted", "id": record_id}), 200

    @app.route("/commissions/<record_id>/terms", methods=["PUT"])
    def update_terms(record_id):
        """Replace terms; rebuilds the ledger and reconciles installment states"""
        input_data = _json_body()
        terms = CommissionTerms.from_dict(input_data["terms"])
        record = service.update_commission_terms(record_id, terms, input_data.get("expected_version"))
        return jsonify(output.record(record)), 200

    @app.route("/commissions/<record_id>/ledger", methods=["GET"])
    def get_ledger(record_id):
        return jsonify({"record_id": record_id, "ledger": output.ledger(service.get_ledger(record_id))}), 200

    @app.route("/commissions/<record_id>/installments/<int:number>/payment", methods=["POST"])
    def record_payment(record_id, number):
        input_data = _json_body()
        state = service.record_installment_payment(
            record_id,
            number,
            parse_date(input_data["paid_date"], "paid_date"),
            input_data.get("expected_version")
        )
        return jsonify(output.state(state)), 200

    @app.route("/commissions/<record_id>/installments/<int:number>/status", methods=["PUT"])
    def set_status(record_id, number):
        input_data = _json_body()
        paid_date = input_data.get("paid_date")
        state = service.set_installment_status(
            record_id,
            number,
            input_data["status"],
            parse_date(paid_date, "paid_date") if paid_date else None,
            input_data.get("expected_version")
        )
        return jsonify(output.state(state)), 200

    @app.route("/commissions/<record_id>/installments/range-payment", methods=["POST"])
    def range_payment(record_id):
        input_data = _json_body()
        states = service.mark_installment_range_paid(
            record_id,
            to_int(input_data["start_installment"], "start_installment"),
            to_int(input_data["end_installment"], "end_installment"),
            parse_date(input_data["paid_date"], "paid_date"),
            input_data.get("expected_version")
        )
        return jsonify({"states": [output.state(s) for s in states]}), 200

    @app.route("/simulate", methods=["POST"])
    def simulate():
        """Preview a ledger for terms without saving anything"""
        input_data = _json_body()
        ledger = service.preview_ledger(CommissionTerms.from_dict(input_data.get("terms", input_data)))
        return jsonify(output.simulation(ledger)), 200

    @app.route("/reports/competence", methods=["GET"])
    def competence_report():
        report_filter = CompetenceFilter.from_dict(request.args.to_dict())
        report = service.aggregate_competence(report_filter, Deadline(timeout=REPORT_TIMEOUT_SECONDS))
        return jsonify(output.report(report)), 200

    @app.route("/reports/summary", methods=["GET"])
    def summary_report():
        record_filter = CompetenceFilter.from_dict(request.args.to_dict())
        return jsonify(output.summary(service.summarize_records(record_filter))), 200

    @app.route("/cutoff-periods", methods=["GET"])
    def list_cutoff_periods():
        return jsonify({"periods": [output.cutoff_period(p) for p in service.list_cutoff_periods()]}), 200

    @app.route("/cutoff-periods", methods=["POST"])
    def add_cutoff_period():
        period = service.add_cutoff_period(CutoffPeriod.from_dict(_json_body()))
        return jsonify(output.cutoff_period(period)), 201

    @app.route("/cutoff-periods/<period_id>", methods=["PUT"])
    def update_cutoff_period(period_id):
        period = CutoffPeriod.from_dict(dict(_json_body(), id=period_id))
        return jsonify(output.cutoff_period(service.update_cutoff_period(period))), 200

    @app.route("/cutoff-periods/<period_id>", methods=["DELETE"])
    def delete_cutoff_period(period_id):
        service.delete_cutoff_period(period_id)
        return jsonify({"status": "deleted", "id": period_id}), 200

    return app


def _json_body() -> dict:
    input_data = request.get_json(force=True, silent=True)
    if not input_data:
        raise ValueError("No input data provided")
    return input_data


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=False)
