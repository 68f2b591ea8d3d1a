"""Locale-aware wording for reservation notifications.

Supported locales are ``en``, ``tw`` and ``jp``; anything else falls back to
English. Bodies are an intro line followed by labelled detail lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from notify_service.core.database import as_utc

from .enums import ReservationStatus

if TYPE_CHECKING:
    from .events import ReservationEventContext

FALLBACK_LOCALE = "en"

_CATALOG: dict[str, dict[str, str]] = {
    "en": {
        "anonymous": "Guest",
        "store": "the store",
        "label_customer": "Customer",
        "label_store": "Store",
        "label_facility": "Facility",
        "label_date_time": "Date/time",
        "label_party_size": "Party size",
        "label_message": "Message",
        "label_from": "From",
        "label_to": "To",
        "subject_created": "New reservation request from {customer}",
        "intro_created": "You have received a new reservation request.",
        "subject_updated": "Reservation updated by {customer}",
        "intro_updated": "A reservation has been updated.",
        "subject_cancelled_store": "Reservation cancelled by {customer}",
        "intro_cancelled_store": "A reservation has been cancelled.",
        "subject_cancelled_customer": "Your reservation has been cancelled",
        "intro_cancelled_customer": "Your reservation has been cancelled.",
        "subject_deleted": "Reservation deleted: {customer}",
        "intro_deleted": "A reservation has been deleted.",
        "subject_confirmed_by_store": "Your reservation is confirmed",
        "intro_confirmed_by_store": "The store has confirmed your reservation.",
        "subject_confirmed_by_customer": "{customer} confirmed the reservation",
        "intro_confirmed_by_customer": "The customer has confirmed the reservation.",
        "subject_status_changed": "Reservation awaiting confirmation: {customer}",
        "intro_status_changed": "A reservation status has changed.",
        "subject_ready": "Your reservation is ready",
        "intro_ready": "Your reservation is ready. We look forward to seeing you.",
        "subject_payment_received": "Payment received for {customer}'s reservation",
        "intro_payment_received": "Payment has been received for a reservation.",
        "subject_unpaid_order_created": "Unpaid reservation order from {customer}",
        "intro_unpaid_order_created": "A reservation order is awaiting payment.",
        "subject_completed": "Your reservation is completed",
        "intro_completed": "Thank you for your visit.",
        "subject_no_show": "You missed your reservation",
        "intro_no_show": "Your reservation was marked as a no-show.",
        "subject_reminder": "Reminder: your reservation at {store}",
        "intro_reminder": "This is a reminder of your upcoming reservation.",
        "status_0": "Pending",
        "status_10": "Awaiting confirmation",
        "status_40": "Ready",
        "status_50": "Completed",
        "status_60": "Cancelled",
        "status_70": "No-show",
    },
    "tw": {
        "anonymous": "訪客",
        "store": "店家",
        "label_customer": "顧客",
        "label_store": "店家",
        "label_facility": "設施",
        "label_date_time": "日期時間",
        "label_party_size": "人數",
        "label_message": "留言",
        "label_from": "原狀態",
        "label_to": "新狀態",
        "subject_created": "來自 {customer} 的新預約申請",
        "intro_created": "您收到一筆新的預約申請。",
        "subject_updated": "{customer} 已更新預約",
        "intro_updated": "有一筆預約已更新。",
        "subject_cancelled_store": "{customer} 已取消預約",
        "intro_cancelled_store": "有一筆預約已取消。",
        "subject_cancelled_customer": "您的預約已取消",
        "intro_cancelled_customer": "您的預約已取消。",
        "subject_deleted": "預約已刪除：{customer}",
        "intro_deleted": "有一筆預約已刪除。",
        "subject_confirmed_by_store": "您的預約已確認",
        "intro_confirmed_by_store": "店家已確認您的預約。",
        "subject_confirmed_by_customer": "{customer} 已確認預約",
        "intro_confirmed_by_customer": "顧客已確認預約。",
        "subject_status_changed": "待確認的預約：{customer}",
        "intro_status_changed": "預約狀態已變更。",
        "subject_ready": "您的預約已準備就緒",
        "intro_ready": "您的預約已準備就緒，期待您的光臨。",
        "subject_payment_received": "已收到 {customer} 的預約付款",
        "intro_payment_received": "已收到一筆預約付款。",
        "subject_unpaid_order_created": "{customer} 的預約訂單尚未付款",
        "intro_unpaid_order_created": "有一筆預約訂單等待付款。",
        "subject_completed": "您的預約已完成",
        "intro_completed": "感謝您的光臨。",
        "subject_no_show": "您錯過了預約",
        "intro_no_show": "您的預約已被標記為未到。",
        "subject_reminder": "提醒：您在 {store} 的預約",
        "intro_reminder": "提醒您即將到來的預約。",
        "status_0": "待處理",
        "status_10": "待確認",
        "status_40": "已就緒",
        "status_50": "已完成",
        "status_60": "已取消",
        "status_70": "未到",
    },
    "jp": {
        "anonymous": "ゲスト",
        "store": "店舗",
        "label_customer": "お客様",
        "label_store": "店舗",
        "label_facility": "施設",
        "label_date_time": "日時",
        "label_party_size": "人数",
        "label_message": "メッセージ",
        "label_from": "変更前",
        "label_to": "変更後",
        "subject_created": "{customer} 様から新しい予約リクエスト",
        "intro_created": "新しい予約リクエストを受け付けました。",
        "subject_updated": "{customer} 様が予約を更新しました",
        "intro_updated": "予約が更新されました。",
        "subject_cancelled_store": "{customer} 様が予約をキャンセルしました",
        "intro_cancelled_store": "予約がキャンセルされました。",
        "subject_cancelled_customer": "ご予約がキャンセルされました",
        "intro_cancelled_customer": "ご予約はキャンセルされました。",
        "subject_deleted": "予約が削除されました：{customer}",
        "intro_deleted": "予約が削除されました。",
        "subject_confirmed_by_store": "ご予約が確定しました",
        "intro_confirmed_by_store": "店舗がご予約を確定しました。",
        "subject_confirmed_by_customer": "{customer} 様が予約を確認しました",
        "intro_confirmed_by_customer": "お客様が予約を確認しました。",
        "subject_status_changed": "確認待ちの予約：{customer}",
        "intro_status_changed": "予約のステータスが変更されました。",
        "subject_ready": "ご予約の準備ができました",
        "intro_ready": "ご予約の準備が整いました。ご来店をお待ちしております。",
        "subject_payment_received": "{customer} 様の予約のお支払いを受け付けました",
        "intro_payment_received": "予約のお支払いを受け付けました。",
        "subject_unpaid_order_created": "{customer} 様の未払いの予約注文",
        "intro_unpaid_order_created": "お支払い待ちの予約注文があります。",
        "subject_completed": "ご予約が完了しました",
        "intro_completed": "ご来店ありがとうございました。",
        "subject_no_show": "ご予約の時間にお越しになりませんでした",
        "intro_no_show": "ご予約は無断キャンセルとして記録されました。",
        "subject_reminder": "リマインダー：{store} のご予約",
        "intro_reminder": "まもなくご予約の日時です。",
        "status_0": "保留中",
        "status_10": "確認待ち",
        "status_40": "準備完了",
        "status_50": "完了",
        "status_60": "キャンセル",
        "status_70": "無断キャンセル",
    },
}


@dataclass(frozen=True, slots=True)
class RenderedMessage:
    subject: str
    body: str


def normalize_locale(locale: str | None) -> str:
    if not locale:
        return FALLBACK_LOCALE
    short = locale.lower().replace("_", "-")
    if short.startswith(("zh-tw", "zh-hant")):
        return "tw"
    if short.startswith("ja"):
        return "jp"
    short = short[:2]
    return short if short in _CATALOG else FALLBACK_LOCALE


def translate(locale: str | None, key: str, **values: object) -> str:
    catalog = _CATALOG[normalize_locale(locale)]
    text = catalog.get(key) or _CATALOG[FALLBACK_LOCALE][key]
    return text.format(**values) if values else text


def format_reservation_time(value: datetime | None) -> str:
    if value is None:
        return "-"
    return as_utc(value).strftime("%Y-%m-%d %H:%M UTC")


def status_label(locale: str | None, status: int | None) -> str:
    if status is None:
        return "-"
    try:
        return translate(locale, f"status_{ReservationStatus(status).value}")
    except ValueError:
        return str(status)


def build_message(
    context: ReservationEventContext,
    message_key: str,
    *,
    locale: str | None,
    store_name: str | None = None,
    for_customer: bool = False,
) -> RenderedMessage:
    """Subject and body for one event variant, e.g. ``cancelled_customer``."""
    customer = context.customer_name or context.customer_email or translate(locale, "anonymous")
    store = store_name or translate(locale, "store")
    subject = translate(locale, f"subject_{message_key}", customer=customer, store=store)

    lines = [translate(locale, f"intro_{message_key}"), ""]
    if for_customer:
        lines.append(f"{translate(locale, 'label_store')}: {store}")
    else:
        lines.append(f"{translate(locale, 'label_customer')}: {customer}")
    if context.facility_name:
        lines.append(f"{translate(locale, 'label_facility')}: {context.facility_name}")
    if message_key == "status_changed":
        lines.append(f"{translate(locale, 'label_from')}: {status_label(locale, context.previous_status)}")
        lines.append(f"{translate(locale, 'label_to')}: {status_label(locale, context.new_status)}")
    lines.append(
        f"{translate(locale, 'label_date_time')}: {format_reservation_time(context.reservation_time)}"
    )
    if context.party_size:
        lines.append(f"{translate(locale, 'label_party_size')}: {context.party_size}")
    if context.message and not for_customer:
        lines.append(f"{translate(locale, 'label_message')}: {context.message}")
    return RenderedMessage(subject=subject, body="\n".join(lines))
