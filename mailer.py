# mailer.py
import smtplib
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate

from flask import current_app, render_template

from core import logger


def send_email_smtp(to_addr, subject, html, text=None):
    """Send one HTML email. Returns False instead of raising on failure."""
    cfg = current_app.config
    if not cfg.get("SMTP_HOST") or not cfg.get("MAIL_FROM"):
        logger.error("SMTP not configured; cannot send email to %s", to_addr)
        return False
    sender = cfg["MAIL_FROM"]
    domain = sender.rsplit("@", 1)[-1].strip(">") if "@" in sender else "localhost"

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to_addr
    msg["Date"] = formatdate(usegmt=True)
    msg["Message-ID"] = f"<{uuid.uuid4()}@{domain}>"
    if text:
        msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))

    try:
        with smtplib.SMTP(cfg["SMTP_HOST"], cfg.get("SMTP_PORT", 587), timeout=20) as server:
            server.starttls()
            if cfg.get("SMTP_USER"):
                server.login(cfg["SMTP_USER"], cfg.get("SMTP_PASS", ""))
            server.sendmail(sender, [to_addr], msg.as_string())
    except (smtplib.SMTPException, OSError):
        logger.exception("failed to send email to %s", to_addr)
        return False
    logger.info("email sent to %s: %s", to_addr, subject)
    return True


def send_free_pdf(email, book_title, pdf_url, author=""):
    html = render_template("email/free_pdf.html", book_title=book_title, pdf_url=pdf_url, author=author)
    text = f"Thank you for downloading {book_title}. Download it here: {pdf_url}"
    return send_email_smtp(email, f"Your free PDF: {book_title}", html, text)


def send_order_confirmation(order):
    html = render_template("email/order_confirmation.html", order=order)
    return send_email_smtp(order.email, f"Order confirmed: {order.id[-8:]}", html)
