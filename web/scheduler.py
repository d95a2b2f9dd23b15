"""Background scheduler for recurring tag expiry checks."""

import logging
import threading

from apscheduler.schedulers.background import BackgroundScheduler

from tagtracker.alert_scheduler import AlertScheduler, ViewerScope

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)

_alerts: dict = {}
_alerts_lock = threading.Lock()
_inboxes: list = []


def init_scheduler(app):
    """Start the background scheduler, the all-locations alert loop and
    the notification dispatch job."""
    from config.settings import NOTIFY_DISPATCH_INTERVAL_SECONDS

    if scheduler.running:
        return

    scheduler.start()

    with app.app_context():
        from web.services import get_notification_dispatcher
        dispatcher = get_notification_dispatcher()
        alerts = get_alert_scheduler(ViewerScope())
        _inboxes.append(alerts.subscribe())

    scheduler.add_job(
        func=_dispatch_notifications,
        args=[dispatcher],
        trigger="interval",
        seconds=NOTIFY_DISPATCH_INTERVAL_SECONDS,
        id="notification_dispatch",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info(
        "Scheduler started: tag checks every %d second(s), dispatch every %d second(s) via %s",
        alerts.interval,
        NOTIFY_DISPATCH_INTERVAL_SECONDS,
        ", ".join(dispatcher.channels) or "no channels",
    )


def get_alert_scheduler(scope: ViewerScope) -> AlertScheduler:
    """Return the alert loop for *scope*, creating it on first use.

    Needs an app context. The loop is only started when the background
    scheduler runs; otherwise callers drive ``tick()`` themselves.
    """
    from config.settings import ALERT_CHECK_INTERVAL_SECONDS
    from web.services import get_data_dir, get_tag_registry

    data_dir = str(get_data_dir())
    key = (data_dir, scope.key)
    with _alerts_lock:
        alerts = _alerts.get(key)
        if alerts is None:
            alerts = AlertScheduler(
                get_tag_registry(),
                scope,
                interval=ALERT_CHECK_INTERVAL_SECONDS,
            )
            _alerts[key] = alerts
        if scheduler.running and not alerts.running:
            alerts.start(scheduler, job_id=f"alerts:{data_dir}:{scope.key}")
        return alerts


def stop_alert_scheduler(scope: ViewerScope) -> bool:
    """Stop and forget the alert loop for *scope* (e.g. on logout)."""
    from web.services import get_data_dir

    with _alerts_lock:
        alerts = _alerts.pop((str(get_data_dir()), scope.key), None)
    if alerts is None:
        return False
    alerts.stop()
    return True


def _dispatch_notifications(dispatcher):
    """Send queued alert signals through the notification channels."""
    for inbox in list(_inboxes):
        try:
            dispatcher.drain(inbox)
        except Exception:
            logger.exception("Notification dispatch failed")
