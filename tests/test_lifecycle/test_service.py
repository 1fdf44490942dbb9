"""
Tests for the wired service and the demo scenarios.
"""

import time

import pytest

from lifecycle.demo import DEMOS
from lifecycle.service import build_ban_service, default_channels
from notifications.channels import WhatsAppChannel, WhatsAppCloudChannel
from shared.clock import ManualClock
from shared.config import Settings
from shared.data_store import DataStore
from shared.models import BanClosure, CustomerStatus


class TestBanService:

    def test_full_lifecycle(self, service, whatsapp_channel):
        customer = service.registry.register("Farah Aziz", "012-555 0199", "farah@example.com")

        service.coordinator.impose_ban(customer.id, "Three no-shows", 7, "staff-01")
        assert service.coordinator.get_customer_status(customer.id) == CustomerStatus.BANNED

        service.clock.advance(days=8)
        result = service.sweeper.run_once()

        assert customer.id in [b.customer_id for b in result.expired]
        assert service.coordinator.get_customer_status(customer.id) == CustomerStatus.ACTIVE
        [ban] = service.coordinator.get_ban_history(customer.id)
        assert ban.closure == BanClosure.EXPIRED

        bodies = [m.body for m in whatsapp_channel.sent_messages if m.recipient == "60125550199"]
        assert len(bodies) == 2
        assert "suspended" in bodies[0]
        assert "ended on" in bodies[1]

    def test_background_sweep_retries_notices(self, data_dir, clock, alice_customer_id):
        whatsapp = WhatsAppChannel(fail_rate=1.0)
        service = build_ban_service(
            settings=Settings(data_dir=data_dir, notify_async=False, sweep_interval_seconds=0.05),
            clock=clock,
            data_store=DataStore(data_dir),
            channels=[whatsapp],
        )
        try:
            service.coordinator.impose_ban(alice_customer_id, "No-show", 7, "staff-01")
            assert len(service.notifier.pending_notices()) == 1

            whatsapp.fail_rate = 0.0
            service.start()
            deadline = time.monotonic() + 2.0
            while service.notifier.pending_notices() and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            service.close()

        assert service.notifier.pending_notices() == []
        assert whatsapp.find_message_to("60123456701") is not None

    def test_async_notifications(self, data_dir, alice_customer_id):
        whatsapp = WhatsAppChannel(delay=0.05)
        service = build_ban_service(
            settings=Settings(data_dir=data_dir, notify_async=True),
            clock=ManualClock(),
            data_store=DataStore(data_dir),
            channels=[whatsapp],
        )
        try:
            service.coordinator.impose_ban(alice_customer_id, "No-show", 7, "staff-01")
            assert service.event_bus.flush(timeout=2.0)
            assert whatsapp.get_sent_count() == 1
        finally:
            service.close()

    def test_templates_from_file(self, tmp_path, data_dir, alice_customer_id):
        path = tmp_path / "templates.json"
        path.write_text(
            '[{"name": "ban-notice", "content": "{customer_name}: banned {ban_term}", '
            '"parameter_names": ["customer_name", "reason", "ban_term"]}]'
        )
        whatsapp = WhatsAppChannel()
        service = build_ban_service(
            settings=Settings(data_dir=data_dir, notify_async=False, templates_path=path),
            clock=ManualClock(),
            data_store=DataStore(data_dir),
            channels=[whatsapp],
        )
        try:
            service.coordinator.impose_ban(alice_customer_id, "No-show", 0, "staff-01")
        finally:
            service.close()

        assert whatsapp.sent_messages[0].body == "Alice Tan: banned permanently"

    def test_default_channels(self):
        channels = default_channels(Settings())
        assert [c.channel_type for c in channels] == ["whatsapp", "sms", "email"]
        assert isinstance(channels[0], WhatsAppChannel)

    def test_default_channels_with_token(self):
        channels = default_channels(Settings(whatsapp_token="tkn", whatsapp_phone_number_id="123"))
        try:
            assert isinstance(channels[0], WhatsAppCloudChannel)
        finally:
            channels[0].close()


class TestDemos:

    @pytest.mark.parametrize("name", sorted(DEMOS))
    def test_demo_runs(self, name, capsys):
        deliveries = DEMOS[name]()

        assert deliveries
        assert "DEMO:" in capsys.readouterr().out

    def test_failed_notification_demo_recovers(self):
        deliveries = DEMOS["failed-notification"]()

        assert not deliveries[0].is_successful
        assert deliveries[-1].is_successful
