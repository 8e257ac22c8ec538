"""
API routes for liveness challenges
Cấp thử thách liveness cho client trước khi gửi kết quả nhận diện
"""
from flask import Blueprint, current_app, g, jsonify, request

from app.middleware.auth import role_required
from app.models.access import STAFF_ROLES
from app.utils import get_request_data, parse_bool, pick
from core.liveness import get_challenge, get_random_challenge
from logging_config import get_client_ip, liveness_logger

liveness_api_bp = Blueprint('liveness_api', __name__, url_prefix='/api/liveness')


@liveness_api_bp.route('/challenge', methods=['GET'])
def api_get_challenge():
    """Trả về một thử thách (ngẫu nhiên hoặc theo ?type=) kèm tham số vòng phát hiện."""
    requested = request.args.get('type')
    if requested:
        try:
            challenge = get_challenge(requested.strip().lower())
        except KeyError:
            return jsonify({'success': False, 'message': f"Thử thách không hợp lệ: {requested}"}), 400
    else:
        challenge = get_random_challenge()

    liveness_logger.log_challenge_issued(challenge.id, get_client_ip(request))
    return jsonify({
        'success': True,
        'challenge': challenge.to_dict(),
        'timeout_seconds': current_app.config['CHALLENGE_TIMEOUT_SEC'],
        'detection_interval_ms': current_app.config['DETECTION_INTERVAL_MS'],
    })


@liveness_api_bp.route('/result', methods=['POST'])
@role_required(*STAFF_ROLES)
def api_report_result():
    """Client báo kết quả thử thách để ghi log."""
    data = get_request_data()
    challenge_id = pick(data, 'challenge_id', 'challengeId')
    try:
        challenge = get_challenge(str(challenge_id or ''))
    except KeyError:
        return jsonify({'success': False, 'message': 'Thử thách không hợp lệ'}), 400

    passed = parse_bool(data.get('passed'), default=False)
    try:
        attempts = max(1, int(data.get('attempts') or 1))
    except (TypeError, ValueError):
        attempts = 1

    liveness_logger.log_outcome(challenge.id, passed, attempts)
    current_app.logger.debug("Liveness %s by user %s: %s", challenge.id, g.user.get('id'), passed)
    return jsonify({'success': True})
