"""Campaign API endpoints."""

from flask import Blueprint, jsonify, request, current_app
from services.common.result import ErrorCode
from services.enums import CampaignStatus
from utils.datetime_utils import parse_utc_iso

campaign_bp = Blueprint('campaigns', __name__)

_STATUS_FOR_ERROR = {
    ErrorCode.NOT_FOUND.value: 404,
    ErrorCode.ALREADY_RUNNING.value: 409,
    ErrorCode.VALIDATION_ERROR.value: 400,
}


@campaign_bp.route('/campaigns', methods=['POST'])
def create_campaign():
    """Create a campaign.

    Expected JSON payload:
    {
        "name": "Spring promo",
        "message_template": "Hi {{name}}, ...",
        "target_tags": ["vip"],
        "scheduled_at": "2026-03-01T09:00:00Z"
    }

    Returns:
        201: Campaign created (draft, or scheduled when scheduled_at is given)
        400: Validation error
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    scheduled_at = None
    if data.get('scheduled_at'):
        try:
            scheduled_at = parse_utc_iso(data['scheduled_at'])
        except (TypeError, ValueError):
            return jsonify({'error': f"Invalid scheduled_at: {data['scheduled_at']}"}), 400

    campaign_service = current_app.services.get('campaign')
    result = campaign_service.create_campaign(
        name=data.get('name'),
        message_template=data.get('message_template'),
        target_tags=data.get('target_tags'),
        scheduled_at=scheduled_at,
    )
    if result.is_failure:
        return jsonify({'error': result.error}), 400

    return jsonify(result.data.to_payload()), 201


@campaign_bp.route('/campaigns/<int:campaign_id>', methods=['GET'])
def get_campaign(campaign_id):
    campaign = current_app.services.get('campaign').get_campaign(campaign_id)
    if campaign is None:
        return jsonify({'error': f'Campaign {campaign_id} not found'}), 404
    return jsonify(campaign.to_payload())


@campaign_bp.route('/campaigns/<int:campaign_id>/execute', methods=['POST'])
def execute_campaign(campaign_id):
    """Queue a campaign for dispatch.

    Returns:
        202: Dispatch queued
        404: Unknown campaign
        409: Campaign is not in draft or scheduled status
    """
    from tasks.campaign_tasks import execute_campaign as execute_campaign_task

    campaign = current_app.services.get('campaign').get_campaign(campaign_id)
    if campaign is None:
        return jsonify({'error': f'Campaign {campaign_id} not found',
                        'code': ErrorCode.NOT_FOUND.value}), 404
    if campaign.status not in CampaignStatus.dispatchable():
        return jsonify({'error': f'Campaign {campaign_id} is {campaign.status}',
                        'code': ErrorCode.ALREADY_RUNNING.value}), 409

    task = execute_campaign_task.delay(campaign_id)
    current_app.logger.info(f"Queued dispatch of campaign {campaign_id} (task {task.id})")
    return jsonify({'status': 'queued', 'campaign_id': campaign_id, 'task_id': task.id}), 202


@campaign_bp.route('/campaigns/<int:campaign_id>/pause', methods=['POST'])
def pause_campaign(campaign_id):
    result = current_app.services.get('campaign').pause_campaign(campaign_id)
    if result.is_failure:
        return jsonify(result.error_body()), \
            _STATUS_FOR_ERROR.get(result.error_code, 400)
    return jsonify(result.data)
