from flask import jsonify, request

from dbr_planner.api import api_bp
from dbr_planner.datetime_utils import parse_datetime
from dbr_planner.logging_config import get_logger
from dbr_planner.scheduling import service
from dbr_planner.scheduling.errors import PassAlreadyRunning, RepositoryIOError, SchedulingPassError

logger = get_logger(__name__)


def _busy_response(exc: PassAlreadyRunning):
    return jsonify({
        "ok": False,
        "error": exc.message,
        "details": exc.details,
    }), 409


@api_bp.route("/dbr/run", methods=["POST"])
def run_dbr():
    """Run the full DBR pass over all constraint resources."""
    data = request.get_json(silent=True) or {}
    now = None
    if data.get('now'):
        now = parse_datetime(data['now'])
        if now is None:
            return jsonify({"ok": False, "error": f"Unrecognised now '{data['now']}'"}), 400

    try:
        summary = service.run_full_pass(now=now)
    except PassAlreadyRunning as exc:
        return _busy_response(exc)
    except SchedulingPassError as exc:
        logger.error("DBR run failed", stage=exc.stage, rows_processed=exc.rows_processed, error=str(exc))
        return jsonify({
            "ok": False,
            "stage": exc.stage,
            "rowsProcessed": exc.rows_processed,
            "error": exc.message,
        }), 500

    return jsonify({"ok": True, "affected": summary['rows_updated'], **summary}), 200


@api_bp.route("/dbr/reset", methods=["POST"])
def reset_dbr():
    """Restore all order steps from the backup snapshot."""
    try:
        result = service.reset_to_backup()
    except PassAlreadyRunning as exc:
        return _busy_response(exc)
    except RepositoryIOError as exc:
        logger.error("DBR reset failed", error=str(exc))
        return jsonify({"ok": False, "error": exc.message}), 500

    return jsonify({"ok": True, "affected": result['rows_restored'], "run_id": result['run_id']}), 200


@api_bp.route("/dbr/conflicts", methods=["GET"])
def dbr_conflicts():
    """Production orders scheduled on more than one constraint resource."""
    return jsonify(service.list_conflicting_orders()), 200


@api_bp.route("/dbr/status", methods=["GET"])
def dbr_status():
    return jsonify(service.get_pass_lock().get_status()), 200


@api_bp.route("/dbr/runs", methods=["GET"])
def dbr_runs():
    """Most recent DBR operations, newest first."""
    limit = request.args.get('limit', default=20, type=int)
    limit = max(1, min(limit or 20, 200))
    return jsonify({"runs": service.recent_runs(limit)}), 200


@api_bp.route("/priority-list", methods=["GET"])
def priority_list():
    """Paged order steps, optionally filtered by resource(s) or by non-scheduled resources."""
    resources = request.args.getlist('resources')
    if request.args.get('resource'):
        resources.append(request.args['resource'])
    non_scheduled = request.args.get('nonScheduled') in ('1', 'true', 'True')
    page = request.args.get('page', default=1, type=int)
    page_size = request.args.get('pageSize', default=50, type=int)

    try:
        result = service.get_priority_list(resources=resources, non_scheduled=non_scheduled,
                                           page=page, page_size=page_size)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result), 200


@api_bp.route("/priority-list/target-dates", methods=["PATCH"])
def patch_target_dates():
    """Set planner target dates per production order."""
    data = request.get_json(silent=True) or {}
    updates = data.get('updates')
    if not isinstance(updates, list):
        return jsonify({"error": "updates must be a list"}), 400

    try:
        updated = service.update_target_dates(updates)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except PassAlreadyRunning as exc:
        return _busy_response(exc)

    return jsonify({"updated": updated}), 200
