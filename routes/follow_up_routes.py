"""Follow-up rule API endpoints."""

from flask import Blueprint, jsonify, request, current_app

follow_up_bp = Blueprint('follow_ups', __name__)


@follow_up_bp.route('/follow-up-rules', methods=['GET'])
def list_follow_up_rules():
    rules = current_app.services.get('follow_up').get_rules()
    return jsonify({'rules': [r.to_payload() for r in rules]})


@follow_up_bp.route('/follow-up-rules', methods=['POST'])
def create_follow_up_rule():
    """Create an inactivity follow-up rule.

    Expected JSON payload:
    {
        "name": "Three day nudge",
        "message_template": "Hi {{name}}, still interested?",
        "inactivity_hours": 72
    }
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    result = current_app.services.get('follow_up').create_rule(
        name=data.get('name'),
        message_template=data.get('message_template'),
        inactivity_hours=data.get('inactivity_hours', 72),
        is_active=data.get('is_active', True),
    )
    if result.is_failure:
        return jsonify(result.error_body()), 400
    return jsonify(result.data.to_payload()), 201


@follow_up_bp.route('/follow-up-rules/run', methods=['POST'])
def run_follow_ups():
    """Queue a follow-up sweep now instead of waiting for the schedule"""
    from tasks.follow_up_tasks import send_inactivity_follow_ups
    task = send_inactivity_follow_ups.delay()
    return jsonify({'status': 'queued', 'task_id': task.id}), 202
