"""Trigger API endpoints."""

from flask import Blueprint, jsonify, request, current_app
from services.common.result import ErrorCode
from services.enums import EventType

trigger_bp = Blueprint('triggers', __name__)


@trigger_bp.route('/triggers', methods=['GET'])
def list_triggers():
    """Active triggers, optionally filtered by ?event_type="""
    trigger_service = current_app.services.get('trigger')
    event_type = request.args.get('event_type')
    if event_type:
        triggers = trigger_service.get_triggers_by_event_type(event_type)
    else:
        triggers = trigger_service.get_active_triggers()
    return jsonify({'triggers': [t.to_payload() for t in triggers]})


@trigger_bp.route('/triggers', methods=['POST'])
def create_trigger():
    """Create a trigger.

    Expected JSON payload:
    {
        "name": "Hot lead",
        "conditions": {"match": "all", "rules": [{"kind": "intent", "values": ["purchase"]}]},
        "action": {"kind": "automation_webhook", "path": "hot-lead"}
    }
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    result = current_app.services.get('trigger').create_trigger(
        name=data.get('name'),
        conditions=data.get('conditions'),
        action=data.get('action'),
        event_type=data.get('event_type', EventType.MESSAGE_RECEIVED.value),
        is_active=data.get('is_active', True),
    )
    if result.is_failure:
        return jsonify(result.error_body()), 400
    return jsonify(result.data.to_payload()), 201


@trigger_bp.route('/triggers/<int:trigger_id>/reset', methods=['POST'])
def reset_trigger(trigger_id):
    result = current_app.services.get('trigger').reset_execution_count(trigger_id)
    if result.is_failure:
        status = 404 if result.error_code == ErrorCode.NOT_FOUND.value else 400
        return jsonify({'error': result.error}), status
    return jsonify(result.data)
