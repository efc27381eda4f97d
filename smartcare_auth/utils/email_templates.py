# smartcare_auth/utils/email_templates.py

from datetime import datetime
from html import escape

APPROVAL_SUBJECT = "New Login Attempt Detected - Smart Care"


def approval_email_html(
    approve_url: str,
    deny_url: str,
    browser: str,
    os_name: str,
    location: str,
    sent_at: datetime,
    ttl_minutes: int,
) -> str:
    return f"""
<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>New Login Attempt</title>
  </head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: linear-gradient(135deg, #f59e0b 0%, #d97706 100%); padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
      <h1 style="color: white; margin: 0;">🔐 New Login Attempt</h1>
    </div>
    <div style="background: #f9fafb; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
      <p style="font-size: 16px;">Hello,</p>
      <p style="font-size: 16px;">We detected a new login attempt to your Smart Care account from a device we don't recognize.</p>
      <div style="background: white; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #f59e0b;">
        <h3 style="margin-top: 0; color: #1f2937;">Device Information:</h3>
        <table style="width: 100%; border-collapse: collapse;">
          <tr><td style="padding: 8px 0; font-weight: bold; color: #6b7280;">Browser:</td><td>{escape(browser)}</td></tr>
          <tr><td style="padding: 8px 0; font-weight: bold; color: #6b7280;">Operating System:</td><td>{escape(os_name)}</td></tr>
          <tr><td style="padding: 8px 0; font-weight: bold; color: #6b7280;">Location (IP):</td><td>{escape(location)}</td></tr>
          <tr><td style="padding: 8px 0; font-weight: bold; color: #6b7280;">Time:</td><td>{sent_at.strftime("%Y-%m-%d %H:%M UTC")}</td></tr>
        </table>
      </div>
      <p style="font-size: 16px; margin-bottom: 30px;">If this was you, please approve this login attempt. If not, please deny it immediately.</p>
      <div style="text-align: center; margin: 30px 0;">
        <a href="{escape(approve_url)}" style="display: inline-block; background: #10b981; color: white; padding: 14px 28px; text-decoration: none; border-radius: 6px; font-weight: bold; margin-right: 10px;">✅ Approve Login</a>
        <a href="{escape(deny_url)}" style="display: inline-block; background: #ef4444; color: white; padding: 14px 28px; text-decoration: none; border-radius: 6px; font-weight: bold;">❌ Deny Login</a>
      </div>
      <div style="background: #fef3c7; border-left: 4px solid #f59e0b; padding: 15px; margin: 20px 0; border-radius: 4px;">
        <p style="margin: 0; font-size: 14px; color: #92400e;">
          <strong>⚠️ Security Notice:</strong> This approval link will expire in {ttl_minutes} minutes. If you didn't attempt to log in, please deny this request immediately.
        </p>
      </div>
      <p style="font-size: 14px; color: #6b7280;">Best regards,<br><strong>Smart Care Security Team</strong></p>
    </div>
  </body>
</html>
"""


def approval_email_text(
    approve_url: str,
    deny_url: str,
    browser: str,
    os_name: str,
    location: str,
    sent_at: datetime,
    ttl_minutes: int,
) -> str:
    return f"""New Login Attempt Detected - Smart Care

Hello,

We detected a new login attempt to your Smart Care account from a device we don't recognize.

Device Information:
- Browser: {browser}
- Operating System: {os_name}
- Location (IP): {location}
- Time: {sent_at.strftime("%Y-%m-%d %H:%M UTC")}

If this was you, please approve this login attempt by clicking the link below:
{approve_url}

If this was NOT you, please deny it immediately:
{deny_url}

This approval link will expire in {ttl_minutes} minutes.

Best regards,
Smart Care Security Team
"""
