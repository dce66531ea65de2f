"""
Service d'emails SendGrid pour PharmIA
- Confirmation de commande (propriétaire)
- Rapport du balayage des abonnements (administrateur)
"""

import os
import logging
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

logger = logging.getLogger("email_service")

# Configuration
SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
SENDER_EMAIL = os.environ.get('SENDER_EMAIL', 'noreply@pharmia.tn')
ADMIN_ALERT_EMAIL = os.environ.get('ADMIN_ALERT_EMAIL', '')


def format_tnd(amount) -> str:
    return f"{float(amount or 0):.3f} TND"


class EmailService:
    """Service centralisé pour l'envoi d'emails"""

    def __init__(self, api_key: str = SENDGRID_API_KEY, sender: str = SENDER_EMAIL, alert_recipient: str = ADMIN_ALERT_EMAIL):
        self.api_key = api_key
        self.sender = sender
        self.alert_recipient = alert_recipient

    def _send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        """Envoie un email via SendGrid. Un échec est journalisé, jamais propagé."""
        if not self.api_key:
            logger.warning(f"SENDGRID_API_KEY non configurée, email ignoré: {subject}")
            return False
        if not to_email:
            logger.warning(f"Destinataire absent, email ignoré: {subject}")
            return False

        try:
            message = Mail(
                from_email=Email(self.sender, "PharmIA"),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content)
            )

            sg = SendGridAPIClient(self.api_key)
            response = sg.send(message)

            if response.status_code in [200, 202]:
                logger.info(f"Email envoyé à {to_email}: {subject}")
                return True
            logger.error(f"Erreur envoi email: {response.status_code}")
            return False

        except Exception as e:
            logger.error(f"Exception envoi email: {str(e)}")
            return False

    # ==================== COMMANDES ====================

    def send_order_confirmation(self, to_email: str, first_name: str, order: dict) -> bool:
        subject = f"PharmIA - Commande confirmée ({format_tnd(order.get('total_amount'))})"

        rows = ""
        for item in order.get("items", []):
            label = item.get("title") or item.get("name") or item.get("pack_id") or item.get("webinar_id")
            rows += f"<tr><td>{label}</td><td style=\"text-align:right\">{format_tnd(item.get('price'))}</td></tr>"

        stamp_row = ""
        if order.get("stamp_duty"):
            stamp_row = f"<tr><td>Timbre fiscal</td><td style=\"text-align:right\">{format_tnd(order['stamp_duty'])}</td></tr>"

        html_content = f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; background-color: #f5f5f5; padding: 20px;">
            <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 8px; padding: 24px;">
                <h2 style="color: #0f766e;">Bonjour {first_name or ''},</h2>
                <p>Votre commande <strong>{order.get('id')}</strong> est confirmée.</p>
                <table style="width: 100%; border-collapse: collapse;">
                    {rows}
                    {stamp_row}
                    <tr><td><strong>Total</strong></td><td style="text-align:right"><strong>{format_tnd(order.get('total_amount'))}</strong></td></tr>
                </table>
                <p>Vos inscriptions aux webinaires et vos crédits sont disponibles dans votre espace.</p>
            </div>
        </body>
        </html>
        """

        return self._send_email(to_email, subject, html_content)

    # ==================== ADMINISTRATION ====================

    def send_sweep_report(self, expired_count: int) -> bool:
        subject = f"PharmIA - {expired_count} abonnement(s) expiré(s)"
        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <p>Le balayage nocturne a désactivé <strong>{expired_count}</strong> abonnement(s) arrivé(s) à échéance.</p>
        </body>
        </html>
        """
        return self._send_email(self.alert_recipient, subject, html_content)


# Instance globale
email_service = EmailService()
