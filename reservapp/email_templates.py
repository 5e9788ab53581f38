"""
Email bodies
Short HTML strings, one builder per email kind, looked up by template name
"""

from html import escape
from typing import Callable, Optional

from .config import APP_URL


def format_clp(amount: Optional[int]) -> str:
    """$12.990 style CLP amounts"""
    return "$" + f"{int(amount or 0):,}".replace(",", ".")


def get_base_template(title: str, body: str, cta_url: Optional[str] = None, cta_label: Optional[str] = None) -> str:
    """Wrap a body with the common header and optional call to action"""
    cta = ""
    if cta_url and cta_label:
        cta = f'<p><a href="{escape(cta_url)}">{escape(cta_label)}</a></p>'
    return f"<h1>{escape(title)}</h1>{body}{cta}<p>Equipo Reservapp</p>"


def _greeting(name: Optional[str]) -> str:
    return f"<p>Hola {escape(name)},</p>" if name else "<p>Hola,</p>"


def verify_email_template(data: dict) -> str:
    return get_base_template(
        "Verifica tu correo",
        _greeting(data.get("name")) + "<p>Confirma tu correo para activar tu cuenta. El enlace vence en 24 horas.</p>",
        data["verification_url"],
        "Verificar correo",
    )


def password_reset_template(data: dict) -> str:
    return get_base_template(
        "Restablece tu contraseña",
        _greeting(data.get("name")) + "<p>Recibimos una solicitud para restablecer tu contraseña.</p>",
        data["reset_url"],
        "Restablecer contraseña",
    )


def payment_reminder_template(data: dict) -> str:
    body = _greeting(data.get("name")) + (
        f"<p>Tu pago de {format_clp(data.get('amount'))} del plan {escape(data.get('plan_name', ''))} "
        f"vence en {data.get('days_until_due')} día(s), el {escape(data.get('due_date', ''))}.</p>"
    )
    return get_base_template("Recordatorio de pago", body, data.get("payment_url"), "Pagar ahora")


def payment_success_template(data: dict) -> str:
    body = _greeting(data.get("name")) + (
        f"<p>Recibimos tu pago de {format_clp(data.get('amount'))} del plan "
        f"{escape(data.get('plan_name', ''))}.</p>"
    )
    return get_base_template("Pago recibido", body)


def payment_overdue_template(data: dict) -> str:
    body = _greeting(data.get("name")) + (
        f"<p>Tu pago del plan {escape(data.get('plan_name', ''))} está vencido.</p>"
        f"<p>Monto base: {format_clp(data.get('base_amount'))}<br>"
        f"Recargo por mora: {format_clp(data.get('penalty_fee'))}<br>"
        f"Total: {format_clp(data.get('total_amount'))}</p>"
        f"<p>Regulariza tu pago antes del {escape(data.get('grace_period_end', ''))} para evitar la suspensión.</p>"
    )
    return get_base_template("Pago vencido", body, data.get("payment_url"), "Pagar ahora")


def subscription_activated_template(data: dict) -> str:
    body = _greeting(data.get("name")) + (
        f"<p>Tu suscripción al plan {escape(data.get('plan_name', ''))} está activa.</p>"
    )
    return get_base_template("Suscripción activada", body, f"{APP_URL}/dashboard", "Ir al panel")


def subscription_suspended_template(data: dict) -> str:
    body = _greeting(data.get("name")) + (
        f"<p>Tu suscripción al plan {escape(data.get('plan_name', ''))} fue suspendida.</p>"
    )
    return get_base_template("Suscripción suspendida", body, f"{APP_URL}/subscription/pay", "Regularizar pago")


def subscription_cancelled_template(data: dict) -> str:
    body = _greeting(data.get("name")) + (
        f"<p>Cancelamos tu suscripción al plan {escape(data.get('plan_name', ''))}. "
        f"Mantienes acceso hasta el {escape(data.get('access_until', ''))}.</p>"
    )
    return get_base_template("Suscripción cancelada", body, f"{APP_URL}/dashboard/subscribe", "Reactivar")


def reservation_confirmed_template(data: dict) -> str:
    body = _greeting(data.get("name")) + (
        f"<p>Tu reserva \"{escape(data.get('title', ''))}\" en {escape(data.get('resource_name', ''))} "
        f"quedó confirmada para el {escape(data.get('start_time', ''))}.</p>"
    )
    return get_base_template("Reserva confirmada", body, f"{APP_URL}/dashboard/reservations", "Ver mis reservas")


def reservation_cancelled_template(data: dict) -> str:
    body = _greeting(data.get("name")) + (
        f"<p>Tu reserva \"{escape(data.get('title', ''))}\" en {escape(data.get('resource_name', ''))} "
        f"del {escape(data.get('start_time', ''))} fue cancelada.</p>"
    )
    return get_base_template("Reserva cancelada", body, f"{APP_URL}/dashboard/reservations", "Ver mis reservas")


TEMPLATES: dict[str, Callable[[dict], str]] = {
    "verify-email": verify_email_template,
    "password-reset": password_reset_template,
    "payment-reminder": payment_reminder_template,
    "payment-success": payment_success_template,
    "payment-overdue": payment_overdue_template,
    "subscription-activated": subscription_activated_template,
    "subscription-suspended": subscription_suspended_template,
    "subscription-cancelled": subscription_cancelled_template,
    "reservation-confirmed": reservation_confirmed_template,
    "reservation-cancelled": reservation_cancelled_template,
}


def render_template(template_name: str, data: dict) -> str:
    template = TEMPLATES.get(template_name)
    if template is None:
        raise ValueError(f"Unknown template: {template_name}")
    return template(data)
