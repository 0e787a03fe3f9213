from typing import Any, Dict

from app.requests.domain.models import RequestDetails, RequestLine, StockRequest


def _isoformat(value):
    return value.isoformat() if value else None


def request_line_to_response(line: RequestLine) -> Dict[str, Any]:
    return {
        "id": line.id,
        "item_id": line.item_id,
        "item_name": line.item_name,
        "quantity_requested": line.quantity_requested,
        "quantity_received": line.quantity_received,
        "quantity_returned": line.quantity_returned,
        "current_stock": line.current_stock,
    }


def stock_request_to_response(request: StockRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "request_number": request.request_number,
        "type": request.type,
        "status": request.status,
        "created_by": request.created_by,
        "created_by_id": request.created_by_id,
        "team_leader_name": request.team_leader_name,
        "team_leader_phone": request.team_leader_phone,
        "project_name": request.project_name,
        "isp_name": request.isp_name,
        "location": request.location,
        "deployment_type": request.deployment_type,
        "reason": request.reason,
        "selected_approver_id": request.selected_approver_id,
        "approver_name": request.selected_approver_name,
        "release_by": request.release_by,
        "received_by": request.received_by,
        "reject_reason": request.reject_reason,
        "item_count": request.item_count,
        "items": [request_line_to_response(line) for line in request.items],
        "created_at": _isoformat(request.created_at),
        "updated_at": _isoformat(request.updated_at),
    }


def request_details_to_response(details: RequestDetails) -> Dict[str, Any]:
    response = stock_request_to_response(details.request)
    response["approvals"] = [
        {
            "id": approval.id,
            "approver_name": approval.approver_name,
            "approver_id": approval.approver_id,
            "signature": approval.signature,
            "created_at": _isoformat(approval.created_at),
        }
        for approval in details.approvals
    ]
    response["rejections"] = [
        {
            "id": rejection.id,
            "rejector_name": rejection.rejector_name,
            "rejector_id": rejection.rejector_id,
            "reason": rejection.reason,
            "created_at": _isoformat(rejection.created_at),
        }
        for rejection in details.rejections
    ]
    return response
