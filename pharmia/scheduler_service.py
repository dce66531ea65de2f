"""
Scheduler pour les tâches automatiques PharmIA
- Balayage des abonnements expirés à 2h (heure de Tunis)
- Purge horaire des sessions expirées
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from pymongo.errors import PyMongoError

from pharmia.config import now_iso
from pharmia.services.subscriptions import sweep_expired_subscriptions

logger = logging.getLogger("scheduler")


class TaskScheduler:
    """Gestionnaire de tâches planifiées. Le handle db est fourni par l'application."""

    def __init__(self, db):
        self.db = db
        self.scheduler = AsyncIOScheduler(timezone="Africa/Tunis")

    def start(self):
        """Démarre le scheduler avec toutes les tâches"""
        self.scheduler.add_job(
            self.sweep_subscriptions,
            CronTrigger(hour=2, minute=0),
            id="subscription_sweep",
            name="Balayage des abonnements expirés",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.purge_expired_sessions,
            CronTrigger(minute=15),
            id="purge_sessions",
            name="Purge des sessions expirées",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info("[SCHEDULER] Démarré avec succès")

    def stop(self):
        """Arrête le scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("[SCHEDULER] Arrêté")

    # ==================== TÂCHES PLANIFIÉES ====================

    async def sweep_subscriptions(self) -> int:
        from pharmia.email_service import email_service

        try:
            expired = await sweep_expired_subscriptions(self.db)
        except PyMongoError as e:
            logger.error(f"[SCHEDULER] Échec du balayage des abonnements: {e}")
            return 0

        logger.info(f"[SCHEDULER] Balayage terminé: {expired} abonnement(s) désactivé(s)")
        if expired:
            email_service.send_sweep_report(expired)
        return expired

    async def purge_expired_sessions(self) -> int:
        try:
            result = await self.db.sessions.delete_many({"expires_at": {"$lte": now_iso()}})
        except PyMongoError as e:
            logger.error(f"[SCHEDULER] Échec de la purge des sessions: {e}")
            return 0

        if result.deleted_count:
            logger.info(f"[SCHEDULER] {result.deleted_count} session(s) expirée(s) supprimée(s)")
        return result.deleted_count
