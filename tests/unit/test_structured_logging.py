"""Tests for structured logging."""
import pytest

from clinic_booking.logging_config import generate_operation_id, get_logger, setup_structured_logging
from clinic_booking.exceptions import SlotUnavailableError
from tests.utils.booking_helpers import FRIDAY, SUNDAY, at


class TestStructuredLogging:
    """Test structured logging with operation ids."""

    def test_setup_configures_structlog(self):
        """Should configure structlog processors."""
        setup_structured_logging(log_level="INFO")
        logger = get_logger(__name__)

        assert hasattr(logger, 'info')
        assert hasattr(logger, 'error')
        assert hasattr(logger, 'warning')

    def test_logger_methods_work(self):
        """Should have working log methods."""
        setup_structured_logging(log_level="DEBUG")
        logger = get_logger(__name__)

        # These should not raise
        logger.info("Test info message", appointment_id=1)
        logger.warning("Test warning")
        logger.error("Test error")

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            setup_structured_logging(log_level="CHATTY")

    def test_generate_operation_id_format(self):
        """Should generate operation ids with correct format."""
        operation_id = generate_operation_id()

        assert operation_id.startswith("op-")
        assert len(operation_id) == 15  # "op-" (3) + 12 hex chars
        assert operation_id != generate_operation_id()

    def test_scheduler_logs_without_error(self, scheduler, patient):
        """Booking success and rejection paths both log cleanly."""
        setup_structured_logging(log_level="INFO")

        scheduler.book(patient, at(SUNDAY, "09:00"))
        with pytest.raises(SlotUnavailableError):
            scheduler.book(patient, at(FRIDAY, "09:00"))
