"""
Notifications app: transactional billing emails.

This app provides:
- NotificationDispatcher, the interface the billing state machine calls
- Celery tasks that render and send the emails

Usage:
    from notifications.dispatcher import NotificationDispatcher

    NotificationDispatcher().notify_payment_failure(user.email, user.get_username())
"""
