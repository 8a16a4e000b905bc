"""WhatsApp Cloud API webhook endpoints.

The provider expects a fast 200; every inbound message is handed to the
intake queue and processed asynchronously.
"""

from functools import wraps
from flask import Blueprint, jsonify, request, current_app, abort

webhook_bp = Blueprint('webhooks', __name__)


def verify_whatsapp_signature(f):
    """Decorator to verify the X-Hub-Signature-256 header."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        webhook_service = current_app.services.get('webhook')
        signature = request.headers.get('X-Hub-Signature-256')
        if not webhook_service.verify_signature(request.get_data(), signature):
            abort(403)
        return f(*args, **kwargs)
    return decorated_function


@webhook_bp.route('/whatsapp', methods=['GET'])
def verify_whatsapp_webhook():
    """Meta subscription handshake: echo hub.challenge when the token matches."""
    webhook_service = current_app.services.get('webhook')
    challenge = webhook_service.verify_subscription(
        request.args.get('hub.mode'),
        request.args.get('hub.verify_token'),
        request.args.get('hub.challenge'),
    )
    if challenge is None:
        return 'Forbidden', 403
    return challenge, 200, {'Content-Type': 'text/plain'}


@webhook_bp.route('/whatsapp', methods=['POST'])
@verify_whatsapp_signature
def whatsapp_webhook():
    """Acknowledge immediately, then queue each inbound message."""
    from tasks.intake_tasks import process_inbound_message

    webhook_service = current_app.services.get('webhook')
    payload = request.get_json(silent=True)
    events = webhook_service.parse_events(payload)

    queued = 0
    for event in events:
        try:
            process_inbound_message.delay(event.to_dict())
            queued += 1
        except Exception as e:
            # The provider must still get its 200; it would otherwise redeliver the whole batch
            current_app.logger.error(
                f"Failed to queue inbound message {event.provider_message_id}: {e}", exc_info=True
            )

    if events:
        current_app.logger.info(f"Queued {queued}/{len(events)} inbound WhatsApp message(s)")
    return jsonify({'status': 'received'}), 200
