"""
In-app notification inbox endpoints
"""

from fastapi import APIRouter, Depends, Query

from .auth import InvestNaijaSystem, get_current_user, get_system, http_error
from ..users import User


router = APIRouter()


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    notifications = system.notifications.get_notifications(user.id, unread_only=unread_only, limit=limit)
    return {
        "success": True,
        "notifications": [n.to_api() for n in notifications],
        "unread_count": system.notifications.get_unread_count(user.id),
        "total": system.notifications.get_total_count(user.id),
    }


@router.put("/read-all")
async def mark_all_as_read(
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    updated = system.notifications.mark_all_as_read(user.id)
    return {"success": True, "updated": updated}


@router.put("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        notification = system.notifications.mark_as_read(user.id, notification_id)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "notification": notification.to_api()}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    user: User = Depends(get_current_user),
    system: InvestNaijaSystem = Depends(get_system)
):
    try:
        system.notifications.delete(user.id, notification_id)
    except ValueError as e:
        raise http_error(e)
    return {"success": True, "message": "Notification deleted"}
