"""Multi-channel notification delivery.

A notification is gated by recipient preferences, persisted once, and then
delivered independently on each allowed channel (onsite, email, LINE,
WhatsApp, Telegram, SMS, push). Each channel keeps its own row in the
delivery ledger.

Architecture:
    - preferences/: layered preference resolution with a TTL cache and the gate
    - channels/: one adapter per channel behind a frozen registry
    - queue.py: enqueue, rate-limited dispatch and batch processing
    - tracker.py: the per-channel delivery state machine
    - templates/: localized template rendering
    - service.py: the entry point used by the HTTP router and event routers
    - runtime.py: explicit wiring of the above for one process

Example:
    ```python
    runtime = NotificationRuntime()
    await runtime.start()
    async with runtime.session_factory() as session:
        result = await runtime.service.create_notification(
            session,
            NotificationCreate(
                sender_id="system",
                recipient_id="user-123",
                subject="Order shipped",
                body="Your order is on its way.",
                kind=NotificationKind.ORDER,
                channels=[NotificationChannel.ONSITE, NotificationChannel.LINE],
            ),
        )
        await session.commit()
    ```
"""
