"""
HTML bodies for transactional emails.

Each builder is a pure function returning (subject, html).
"""
from datetime import datetime, timezone
from html import escape
from typing import Optional, Tuple

LAYOUT = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{app_name}</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6;
           color: #1c1917; margin: 0; padding: 0; background-color: #fafaf9; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 40px 20px; }}
    .card {{ background-color: #ffffff; border-radius: 16px; padding: 40px; box-shadow: 0 4px 6px -1px rgba(0, 0, 0, 0.1); }}
    .logo {{ font-size: 28px; font-weight: bold; color: #1c1917; text-decoration: none; margin-bottom: 32px; display: block; }}
    .logo span {{ color: #a8a29e; }}
    h1 {{ font-size: 24px; font-weight: 600; margin: 0 0 16px; color: #1c1917; }}
    p {{ margin: 0 0 16px; color: #44403c; }}
    .button {{ display: inline-block; background-color: #1c1917; color: #ffffff !important; text-decoration: none;
              padding: 14px 32px; border-radius: 50px; font-weight: 600; margin: 24px 0; }}
    .link {{ word-break: break-all; color: #78716c; font-size: 14px; }}
    .footer {{ text-align: center; margin-top: 32px; padding-top: 24px; border-top: 1px solid #e7e5e4;
              color: #a8a29e; font-size: 14px; }}
    .preheader {{ display: none; max-width: 0; max-height: 0; overflow: hidden; font-size: 1px; line-height: 1px; color: #fafaf9; }}
  </style>
</head>
<body>
  <span class="preheader">{preheader}</span>
  <div class="container">
    <div class="card">
      <a href="{app_url}" class="logo">HJ <span>Fashion</span></a>
      {content}
      <div class="footer">
        <p>&copy; {year} {app_name}. All rights reserved.</p>
        <p>This email was sent to you as a registered member of {app_name}.</p>
      </div>
    </div>
  </div>
</body>
</html>
"""


def layout(content: str, preheader: str, app_name: str, app_url: str) -> str:
    return LAYOUT.format(
        content=content,
        preheader=escape(preheader),
        app_name=escape(app_name),
        app_url=escape(app_url, quote=True),
        year=datetime.now(timezone.utc).year,
    )


def _greeting_name(first_name: Optional[str]) -> str:
    return escape(first_name) if first_name else "there"


def _signature(app_name: str) -> str:
    return f"<p>Best regards,<br>The {escape(app_name)} Team</p>"


def verification(token: str, first_name: Optional[str], app_name: str, app_url: str) -> Tuple[str, str]:
    url = escape(f"{app_url}/verify-email?token={token}", quote=True)
    content = f"""
    <h1>Verify Your Email</h1>
    <p>Hi {_greeting_name(first_name)},</p>
    <p>Welcome to {escape(app_name)}! Please verify your email address by clicking the button below:</p>
    <a href="{url}" class="button">Verify Email</a>
    <p>Or copy and paste this link in your browser:</p>
    <p class="link">{url}</p>
    <p><strong>This link will expire in 24 hours.</strong></p>
    <p>If you didn't create an account with {escape(app_name)}, you can safely ignore this email.</p>
    {_signature(app_name)}
    """
    subject = f"Verify your {app_name} email address"
    return subject, layout(content, "Please verify your email address", app_name, app_url)


def password_reset(token: str, first_name: Optional[str], app_name: str, app_url: str) -> Tuple[str, str]:
    url = escape(f"{app_url}/reset-password?token={token}", quote=True)
    content = f"""
    <h1>Reset Your Password</h1>
    <p>Hi {_greeting_name(first_name)},</p>
    <p>We received a request to reset your password for your {escape(app_name)} account.
       Click the button below to create a new password:</p>
    <a href="{url}" class="button">Reset Password</a>
    <p>Or copy and paste this link in your browser:</p>
    <p class="link">{url}</p>
    <p><strong>This link will expire in 1 hour.</strong></p>
    <p>If you didn't request a password reset, you can safely ignore this email. Your password will remain unchanged.</p>
    {_signature(app_name)}
    """
    subject = f"Reset your {app_name} password"
    return subject, layout(content, f"Reset your password for {app_name}", app_name, app_url)


def welcome(first_name: Optional[str], app_name: str, app_url: str) -> Tuple[str, str]:
    content = f"""
    <h1>Welcome to {escape(app_name)}!</h1>
    <p>Hi {_greeting_name(first_name)},</p>
    <p>Thank you for joining {escape(app_name)}. We're excited to have you as part of our community!</p>
    <p>Here's what you can do now:</p>
    <ul style="color: #44403c; margin: 16px 0; padding-left: 20px;">
      <li>Browse our exclusive collections</li>
      <li>Save your favorite items to your wishlist</li>
      <li>Enjoy a faster checkout experience</li>
      <li>Track your orders easily</li>
    </ul>
    <a href="{escape(app_url, quote=True)}/shop" class="button">Start Shopping</a>
    <p>If you have any questions, feel free to reach out to our support team.</p>
    {_signature(app_name)}
    """
    return f"Welcome to {app_name}!", layout(content, f"Welcome to {app_name}!", app_name, app_url)


def password_changed(first_name: Optional[str], app_name: str, app_url: str) -> Tuple[str, str]:
    content = f"""
    <h1>Password Changed Successfully</h1>
    <p>Hi {_greeting_name(first_name)},</p>
    <p>This is a confirmation that the password for your {escape(app_name)} account has been successfully changed.</p>
    <p>If you did not make this change, please contact our support team immediately or reset your password:</p>
    <a href="{escape(app_url, quote=True)}/forgot-password" class="button">Reset Password</a>
    {_signature(app_name)}
    """
    subject = f"Your {app_name} password has been changed"
    return subject, layout(content, "Your password has been changed", app_name, app_url)
