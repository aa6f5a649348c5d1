import os
import logging

import requests

from strategy import PHASE_MARKERS

log = logging.getLogger("scanner")


def telegram_enabled() -> bool:
    return bool(os.getenv("TG_BOT_TOKEN") and os.getenv("TG_CHAT_ID"))


def send_telegram(text: str, session=None):
    token = os.getenv("TG_BOT_TOKEN")
    chat_id = os.getenv("TG_CHAT_ID")
    url = f"https://api.telegram.org/bot{token}/sendMessage"
    res = (session or requests).post(
        url, json={"chat_id": chat_id, "text": text, "disable_web_page_preview": True}, timeout=10
    )
    res.raise_for_status()


def format_alert(alert):
    old = f"{PHASE_MARKERS.get(alert.old_phase, '')} {alert.old_phase}".strip()
    new = f"{PHASE_MARKERS.get(alert.new_phase, '')} {alert.new_phase}".strip()
    return (
        f"Pair: {alert.symbol}\n"
        f"Phase: {old} -> {new}\n"
        f"Price: {alert.price:.6f} | Score: {alert.score:.2f}/10\n"
        f"Time: {alert.timestamp:%Y-%m-%d %H:%M:%S} UTC"
    )


def deliver_alerts(alerts, session=None) -> int:
    """Send each alert; delivery errors are logged, never raised."""
    if not alerts or not telegram_enabled():
        return 0

    sent = 0
    for alert in alerts:
        try:
            send_telegram(format_alert(alert), session=session)
            sent += 1
        except requests.RequestException as e:
            log.error(f"Telegram send failed | {alert.symbol} | {type(e).__name__}: {e}")
    return sent
