"""
Demonstration scripts for the ban lifecycle.

These functions walk through the main scenarios with a manual clock so that
expiry can be shown without waiting days. Run them from the CLI:

    python cli.py demo temporary-ban
"""

from notifications.channels import WhatsAppChannel, SMSChannel, EmailChannel
from shared.clock import ManualClock
from shared.config import Settings
from shared.data_store import DataStore

from lifecycle.service import BanService, build_ban_service


def _build(whatsapp_fail_rate: float = 0.0) -> BanService:
    settings = Settings(notify_async=False)
    return build_ban_service(
        settings=settings,
        clock=ManualClock(),
        data_store=DataStore(settings.data_dir),
        channels=[WhatsAppChannel(fail_rate=whatsapp_fail_rate), SMSChannel(), EmailChannel()],
    )


def _banner(title: str) -> None:
    print("\n" + "=" * 70)
    print(f"DEMO: {title}")
    print("=" * 70 + "\n")


def _show_deliveries(service: BanService) -> None:
    print("\nDelivery log:")
    for status in service.dispatcher.delivery_log.entries():
        print(f"  {status}")


def run_temporary_ban_demo():
    """
    A 7-day ban that the sweep expires eight days later.
    """
    _banner("Temporary ban and automatic expiry")
    service = _build()
    clock = service.clock
    customer = service.registry.register("Farah Aziz", "012-555 0199", "farah@example.com")

    ban = service.coordinator.impose_ban(customer.id, "Three no-shows in a month", 7, "staff-manager-01")
    print(f"Imposed ban {ban.id[:8]}, ends {ban.ends_at:%d %b %Y}")
    print(f"Status: {service.coordinator.get_customer_status(customer.id).value}")

    clock.advance(days=8)
    print("\n... 8 days later, the sweep runs ...\n")
    result = service.sweeper.run_once()
    print(f"Sweep expired {result.expired_count} ban(s)")
    print(f"Status: {service.coordinator.get_customer_status(customer.id).value}")

    closed = service.coordinator.get_ban_history(customer.id)[-1]
    print(f"Ban closed as {closed.closure.value}, removed_by_id={closed.removed_by_id}")

    _show_deliveries(service)
    service.close()
    return service.dispatcher.delivery_log.entries()


def run_permanent_ban_demo():
    """
    A permanent ban lifted by a different staff member.
    """
    _banner("Permanent ban lifted by staff")
    service = _build()
    customer = service.registry.register("Daniel Wong", "+60 17-222 3344", "daniel@example.com")

    service.coordinator.impose_ban(customer.id, "Abusive behaviour towards staff", 0, "staff-manager-01")
    print(f"Banned customers: {[b.name for b in service.coordinator.get_banned_customers()]}")

    lifted = service.coordinator.lift_ban(customer.id, "staff-admin-02")
    print(f"Lifted by {lifted.removed_by_id}")
    print(f"Status: {service.coordinator.get_customer_status(customer.id).value}")
    print(f"History: {len(service.coordinator.get_ban_history(customer.id))} record(s)")

    _show_deliveries(service)
    service.close()
    return service.dispatcher.delivery_log.entries()


def run_failed_notification_demo():
    """
    The WhatsApp provider is down: the ban still succeeds, the notice is
    retried later.
    """
    _banner("Notification failure does not block the ban")
    service = _build(whatsapp_fail_rate=1.0)
    customer = service.registry.register("Mei Ling", "016-777 8899", "meiling@example.com")

    service.coordinator.impose_ban(customer.id, "Repeated late cancellations", 3, "staff-manager-01")
    print(f"Status: {service.coordinator.get_customer_status(customer.id).value}")
    print(f"Pending notices: {len(service.notifier.pending_notices())}")

    whatsapp = service.dispatcher.get_channel("whatsapp")
    whatsapp.fail_rate = 0.0
    print("\n... provider recovers, retrying ...\n")
    service.notifier.retry_failed()
    print(f"Pending notices: {len(service.notifier.pending_notices())}")

    _show_deliveries(service)
    service.close()
    return service.dispatcher.delivery_log.entries()


DEMOS = {
    "temporary-ban": run_temporary_ban_demo,
    "permanent-ban": run_permanent_ban_demo,
    "failed-notification": run_failed_notification_demo,
}
