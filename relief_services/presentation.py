"""
Localized (Vietnamese) labels for canonical engine enums.

The engine only ever stores and returns canonical enum values; clients
that need display text look it up here.  Unknown values fall back to the
raw value, a missing value to ``UNKNOWN_LABEL``.
"""

from __future__ import annotations

from enum import Enum

UNKNOWN_LABEL = "Không xác định"

PHASE_STATUS_LABELS: dict[str, str] = {
    "PLANNING": "Đang lên kế hoạch",
    "AWAITING_INGREDIENT_DISBURSEMENT": "Chờ giải ngân nguyên liệu",
    "INGREDIENT_PURCHASE": "Đang mua nguyên liệu",
    "AWAITING_AUDIT": "Chờ kiểm tra chứng từ",
    "AWAITING_COOKING_DISBURSEMENT": "Chờ giải ngân chi phí nấu ăn",
    "COOKING": "Đang nấu ăn",
    "AWAITING_DELIVERY_DISBURSEMENT": "Chờ giải ngân chi phí vận chuyển",
    "DELIVERY": "Đang vận chuyển",
    "COMPLETED": "Hoàn thành",
    "CANCELLED": "Đã hủy",
    "FAILED": "Thất bại",
}

INGREDIENT_REQUEST_STATUS_LABELS: dict[str, str] = {
    "PENDING": "Chờ duyệt",
    "ACCEPTED": "Đã duyệt",
    "REJECTED": "Từ chối",
    "DISBURSED": "Đã giải ngân",
}

REVIEW_STATUS_LABELS: dict[str, str] = {
    "PENDING": "Chờ duyệt",
    "APPROVED": "Đã duyệt",
    "REJECTED": "Từ chối",
}

MEAL_BATCH_STATUS_LABELS: dict[str, str] = {
    "PENDING": "Đang chuẩn bị",
    "READY": "Sẵn sàng",
    "COMPLETED": "Đã giao",
}

DELIVERY_STATUS_LABELS: dict[str, str] = {
    "PENDING": "Chờ nhận",
    "ACCEPTED": "Đã nhận",
    "REJECTED": "Đã từ chối",
    "OUT_FOR_DELIVERY": "Đang giao",
    "COMPLETED": "Hoàn thành",
    "FAILED": "Thất bại",
}

CAMPAIGN_STATUS_LABELS: dict[str, str] = {
    "ACTIVE": "Đang gây quỹ",
    "IN_PROGRESS": "Đang xử lý",
    "COMPLETED": "Hoàn thành",
}

_TABLES: dict[str, dict[str, str]] = {
    "phase": PHASE_STATUS_LABELS,
    "ingredient_request": INGREDIENT_REQUEST_STATUS_LABELS,
    "operation_request": REVIEW_STATUS_LABELS,
    "expense_proof": REVIEW_STATUS_LABELS,
    "meal_batch": MEAL_BATCH_STATUS_LABELS,
    "delivery_task": DELIVERY_STATUS_LABELS,
    "campaign": CAMPAIGN_STATUS_LABELS,
}


def status_label(entity: str, status: str | Enum | None) -> str:
    """Vietnamese label for ``status`` of ``entity`` (e.g. ``"phase"``)."""
    if status is None or status == "":
        return UNKNOWN_LABEL
    key = str(getattr(status, "value", status)).upper()
    return _TABLES[entity].get(key, str(getattr(status, "value", status)))
