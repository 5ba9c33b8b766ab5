"""
Email service for admin verification codes.
Builds fastapi-mail messages; delivery happens on the notification queue.
"""
from fastapi_mail import MessageSchema, MessageType

import config


class EmailService:
    """Builds outgoing emails."""

    @staticmethod
    def verification_code_message(to_email: str, code: str) -> MessageSchema:
        """
        Build the admin login verification email.

        Args:
            to_email: Admin email address
            code: One-time code to include

        Returns:
            MessageSchema ready for FastMail.send_message
        """
        minutes = config.OTP_EXPIRY_MINUTES
        subject = f"Admin Login Verification Code - {config.SMTP_FROM_NAME}"
        html_body = f"""
        <html>
        <body style="font-family: 'Segoe UI', Arial, sans-serif; line-height: 1.6; color: #1f2937;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2 style="color: #404040;">Admin Portal Verification</h2>
                <p>Hello Admin,</p>
                <p>We received a request to access your admin account. Use the code below to continue your login.</p>
                <div style="background-color: #f0f0f0; border-left: 4px solid #404040; padding: 20px; text-align: center; margin: 20px 0; border-radius: 6px;">
                    <h1 style="color: #404040; font-size: 36px; margin: 0; letter-spacing: 6px;">{code}</h1>
                </div>
                <p>This code expires in <strong>{minutes} minutes</strong>.</p>
                <p style="background-color: #fef3c7; border: 1px solid #fcd34d; border-radius: 6px; padding: 12px; font-size: 13px; color: #78350f;">
                    Never share this code with anyone. If you did not request it, change your password immediately.
                </p>
                <p style="color: #6b7280; font-size: 12px;">This is an automated message. Please do not reply.</p>
            </div>
        </body>
        </html>
        """
        return MessageSchema(
            subject=subject,
            recipients=[to_email],
            body=html_body,
            subtype=MessageType.html,
        )
