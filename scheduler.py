import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings, local_today
from database import session_scope
from recurrence import RecurringEngine


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        self.settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)

    def run_recurring_job(self, source: str = "manual") -> int:
        logger.info(f"recurring_run: source={source}")
        with session_scope() as session:
            created = RecurringEngine(session).catch_up_all(local_today())
        logger.info(f"recurring_run: source={source} instances_created={created}")
        return created

    def start(self) -> None:
        if not self.settings.scheduler_enabled:
            logger.info("Scheduler disabled via BUDGETS_SCHEDULER_ENABLED")
            return

        self.run_recurring_job("startup")

        hour = self.settings.recurring_cron_hour
        minute = self.settings.recurring_cron_minute
        self.scheduler.add_job(
            self.run_recurring_job,
            CronTrigger(hour=hour, minute=minute),
            args=[f"daily_{hour:02d}:{minute:02d}"],
            id="recurring_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.add_job(
            self.run_recurring_job,
            IntervalTrigger(hours=1),
            args=["hourly_safety_net"],
            id="recurring_hourly_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started with daily {hour:02d}:{minute:02d} and hourly safety net"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
