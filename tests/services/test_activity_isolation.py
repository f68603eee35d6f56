"""Activity logger failures never affect the committed operation."""

from datetime import date
from decimal import Decimal

from rental_modules.lease.models import LeaseStatus, NewLease
from rental_services import BillingService


def _service(session_factory, deterministic_clock, billing_config, activity_logger):
    return BillingService(
        session_factory,
        clock=deterministic_clock,
        config=billing_config,
        activity_logger=activity_logger,
        sleep=lambda seconds: None,
    )


class TestActivityIsolation:
    def test_operation_commits_despite_logger_failure(
        self, session_factory, deterministic_clock, billing_config, failing_activity_logger, captured_logs,
        organization, property_, unit, tenant, actor_id,
    ):
        service = _service(session_factory, deterministic_clock, billing_config, failing_activity_logger)

        lease = service.create_lease(
            organization.id, actor_id,
            NewLease(
                property_id=property_.id,
                unit_id=unit.id,
                tenant_user_id=tenant.id,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 12, 31),
                rent_amount=Decimal("45000"),
            ),
        )

        assert failing_activity_logger.calls == 1
        assert service.get_lease(organization.id, lease.id).id == lease.id
        warnings = [r for r in captured_logs() if r["message"] == "activity_log_failed"]
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["target_table"] == "leases"

    def test_every_entry_attempted(
        self, session_factory, deterministic_clock, billing_config, failing_activity_logger,
        organization, create_lease, actor_id,
    ):
        service = _service(session_factory, deterministic_clock, billing_config, failing_activity_logger)
        lease = create_lease(status=LeaseStatus.DRAFT)

        change = service.change_lease_status(
            organization.id, actor_id, lease.id, LeaseStatus.ACTIVE, generate_first_invoice=True,
        )

        assert change.first_invoice is not None
        assert failing_activity_logger.calls == 2

    def test_batch_unaffected(
        self, session_factory, deterministic_clock, billing_config, failing_activity_logger,
        organization, create_lease, actor_id,
    ):
        service = _service(session_factory, deterministic_clock, billing_config, failing_activity_logger)
        create_lease()
        create_lease()

        result = service.batch_generate_invoices(organization.id, actor_id, month=3, year=2024)

        assert result.generated == 2
        assert failing_activity_logger.calls == 2
