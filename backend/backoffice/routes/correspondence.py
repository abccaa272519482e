# Overview: Flask API routes for internal messages and leave requests.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import correspondence_service
from ..services.correspondence_service import CorrespondenceError, CorrespondenceNotFoundError
from backoffice.time_utils import parse_iso_date


correspondence_bp = Blueprint("correspondence", __name__, url_prefix="/api/correspondence")

FOLDERS = {
    "inbox": correspondence_service.inbox,
    "sent": correspondence_service.sent,
    "archived": correspondence_service.archived,
    "trash": correspondence_service.trash,
}


def _message_action(action):
    try:
        msg = action()
        return jsonify(msg.to_dict())
    except CorrespondenceNotFoundError:
        return jsonify({"error": "Message not found"}), 404
    except CorrespondenceError as e:
        return jsonify({"error": str(e)}), 400


# =============================================================================
# MESSAGES
# =============================================================================

@correspondence_bp.get("/messages")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def list_messages_route():
    """Query parameter: folder (inbox | sent | archived | trash), default inbox."""
    folder = request.args.get("folder", "inbox")
    loader = FOLDERS.get(folder)
    if loader is None:
        return jsonify({"error": f"folder must be one of: {', '.join(FOLDERS)}"}), 400
    messages = loader(g.current_user)
    return jsonify({
        "items": [m.to_dict() for m in messages],
        "count": len(messages),
        "unread": sum(1 for m in messages if not m.is_read) if folder == "inbox" else 0,
    })


@correspondence_bp.post("/messages")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def send_message_route():
    """
    Request body:
    {
        "subject": "...",              // required
        "content": "...",              // required
        "receiver_ids": [2, 3],        // or
        "receiver_role": "supervisor", // a role or "all", or
        "is_broadcast": true,
        "parent_message_id": 7         // reply
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        messages = correspondence_service.send_message(
            sender=g.current_user,
            subject=data.get("subject"),
            content=data.get("content"),
            receiver_ids=data.get("receiver_ids"),
            receiver_role=data.get("receiver_role"),
            is_broadcast=bool(data.get("is_broadcast", False)),
            parent_message_id=data.get("parent_message_id"),
        )
        return jsonify({"items": [m.to_dict() for m in messages], "count": len(messages)}), 201
    except CorrespondenceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except CorrespondenceError as e:
        return jsonify({"error": str(e)}), 400


@correspondence_bp.post("/messages/<int:message_id>/read")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def mark_read_route(message_id: int):
    return _message_action(lambda: correspondence_service.mark_read(g.current_user, message_id))


@correspondence_bp.post("/messages/<int:message_id>/archive")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def archive_message_route(message_id: int):
    """Body (optional): {"archived": false} to unarchive."""
    data = request.get_json(silent=True) or {}
    flag = bool(data.get("archived", True))
    return _message_action(lambda: correspondence_service.set_archived(g.current_user, message_id, flag))


@correspondence_bp.post("/messages/<int:message_id>/trash")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def trash_message_route(message_id: int):
    return _message_action(lambda: correspondence_service.move_to_trash(g.current_user, message_id))


@correspondence_bp.post("/messages/<int:message_id>/restore")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def restore_message_route(message_id: int):
    return _message_action(lambda: correspondence_service.restore(g.current_user, message_id))


@correspondence_bp.delete("/messages/<int:message_id>")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def purge_message_route(message_id: int):
    """Permanent delete; the message must already be in the trash."""
    try:
        correspondence_service.purge(g.current_user, message_id)
        return jsonify({"message": "Deleted"}), 200
    except CorrespondenceNotFoundError:
        return jsonify({"error": "Message not found"}), 404
    except CorrespondenceError as e:
        return jsonify({"error": str(e)}), 409


@correspondence_bp.delete("/messages/trash")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def empty_trash_route():
    deleted = correspondence_service.empty_trash(g.current_user)
    return jsonify({"deleted": deleted}), 200


# =============================================================================
# LEAVE REQUESTS
# =============================================================================

@correspondence_bp.get("/leave")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def my_leave_route():
    requests_ = correspondence_service.my_leave_requests(g.current_user)
    return jsonify({"items": [r.to_dict() for r in requests_], "count": len(requests_)})


@correspondence_bp.get("/leave/incoming")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def incoming_leave_route():
    requests_ = correspondence_service.incoming_leave_requests(g.current_user)
    return jsonify({"items": [r.to_dict() for r in requests_], "count": len(requests_)})


@correspondence_bp.post("/leave")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def submit_leave_route():
    """
    Request body:
    {
        "type": "normal",               // normal | sick | emergency
        "start_date": "2024-05-01",
        "end_date": "2024-05-03",
        "reason": "...",
        "target_role": "branch_manager"   // optional
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        start_date = parse_iso_date(data.get("start_date"))
        end_date = parse_iso_date(data.get("end_date"))
    except (AttributeError, ValueError):
        return jsonify({"error": "start_date and end_date must be ISO-8601 dates"}), 400

    try:
        req = correspondence_service.submit_leave(
            user=g.current_user,
            leave_type=data.get("type"),
            start_date=start_date,
            end_date=end_date,
            reason=data.get("reason"),
            target_role=data.get("target_role"),
        )
        return jsonify(req.to_dict()), 201
    except CorrespondenceError as e:
        return jsonify({"error": str(e)}), 400


@correspondence_bp.post("/leave/<int:request_id>/decision")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def decide_leave_route(request_id: int):
    """Body: {"status": "approved" | "rejected", "rejection_note": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        req = correspondence_service.decide_leave(
            manager=g.current_user,
            request_id=request_id,
            status=data.get("status"),
            rejection_note=data.get("rejection_note"),
        )
        return jsonify(req.to_dict())
    except CorrespondenceNotFoundError:
        return jsonify({"error": "Leave request not found"}), 404
    except CorrespondenceError as e:
        return jsonify({"error": str(e)}), 400


@correspondence_bp.post("/leave/<int:request_id>/archive")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def archive_leave_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        req = correspondence_service.set_leave_archived(
            g.current_user, request_id, bool(data.get("archived", True))
        )
        return jsonify(req.to_dict())
    except CorrespondenceNotFoundError:
        return jsonify({"error": "Leave request not found"}), 404


@correspondence_bp.delete("/leave/<int:request_id>")
@require_auth
@require_permission("USE_CORRESPONDENCE")
def trash_leave_route(request_id: int):
    try:
        req = correspondence_service.trash_leave(g.current_user, request_id)
        return jsonify(req.to_dict())
    except CorrespondenceNotFoundError:
        return jsonify({"error": "Leave request not found"}), 404
